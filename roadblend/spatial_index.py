from __future__ import annotations

import math
from typing import Dict, List, Tuple

from roadblend.models import Point, RoadNetwork, SectionRef

DEFAULT_CELL_SIZE_M = 50.0


class SpatialGrid:
    """Uniform bucket grid keyed by integer cell coordinates.

    Payloads are dense integer indices owned by the caller. Queries return
    candidates from every cell overlapping the query square, so callers must
    prune by exact distance.
    """

    def __init__(self, cell_size: float = DEFAULT_CELL_SIZE_M) -> None:
        if not cell_size > 0.0:
            raise ValueError("cell_size_invalid")
        self.cell_size = float(cell_size)
        self._cells: Dict[Tuple[int, int], List[int]] = {}

    def _cell(self, x: float, y: float) -> Tuple[int, int]:
        return int(math.floor(x / self.cell_size)), int(math.floor(y / self.cell_size))

    def insert(self, point: Point, payload: int) -> None:
        key = self._cell(point[0], point[1])
        self._cells.setdefault(key, []).append(payload)

    def query_radius(self, point: Point, radius: float) -> List[int]:
        x, y = point
        cx0, cy0 = self._cell(x - radius, y - radius)
        cx1, cy1 = self._cell(x + radius, y + radius)
        out: List[int] = []
        for cx in range(cx0, cx1 + 1):
            for cy in range(cy0, cy1 + 1):
                bucket = self._cells.get((cx, cy))
                if bucket:
                    out.extend(bucket)
        return out

    def __len__(self) -> int:
        return sum(len(v) for v in self._cells.values())


class CrossSectionIndex:
    def __init__(self, network: RoadNetwork, cell_size: float = DEFAULT_CELL_SIZE_M) -> None:
        self.grid = SpatialGrid(cell_size)
        self.refs: List[SectionRef] = []
        self.points: List[Point] = []
        for ref, cs in network.iter_sections():
            self.grid.insert(cs.center, len(self.refs))
            self.refs.append(ref)
            self.points.append(cs.center)

    def within(self, point: Point, radius: float) -> List[Tuple[SectionRef, float]]:
        hits = []
        for idx in self.grid.query_radius(point, radius):
            px, py = self.points[idx]
            d = math.hypot(px - point[0], py - point[1])
            if d <= radius:
                hits.append((idx, d))
        hits.sort(key=lambda t: (t[1], t[0]))
        return [(self.refs[idx], d) for idx, d in hits]


__all__ = ["CrossSectionIndex", "DEFAULT_CELL_SIZE_M", "SpatialGrid"]

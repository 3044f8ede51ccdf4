from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from itertools import combinations
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from roadblend.junctions.roundabout import detect_roundabout_junctions, find_rings
from roadblend.models import (
    COMPLEX,
    CROSSROADS,
    ENDPOINT,
    MIDSPLINE_CROSSING,
    ROUNDABOUT,
    T_JUNCTION,
    Y_JUNCTION,
    Junction,
    JunctionContributor,
    Point,
    RoadNetwork,
    SectionRef,
    Spline,
)
from roadblend.spatial_index import DEFAULT_CELL_SIZE_M, CrossSectionIndex, SpatialGrid
from roadblend.union_find import UnionFind

LOG = logging.getLogger("junction_detector")

DEFAULT_DETECTION_RADIUS_M = 20.0
MIDSPLINE_SAMPLE_TARGET = 100


@dataclass
class _Endpoint:
    spline_id: int
    index: int
    point: Point
    radius: float
    is_start: bool
    is_end: bool


def _spline_radius(spline: Spline, default_radius: float) -> float:
    r = spline.junction_detection_radius_m
    if r is not None and r > 0:
        return float(r)
    return float(default_radius)


def _is_end_index(spline: Spline, index: int) -> bool:
    return index == 0 or index == len(spline.sections) - 1


def junction_centroid(network: RoadNetwork, contributors: Iterable[JunctionContributor]) -> Point:
    xs = []
    ys = []
    for c in contributors:
        x, y = network.section(c.ref).center
        xs.append(x)
        ys.append(y)
    if not xs:
        return (0.0, 0.0)
    return (sum(xs) / len(xs), sum(ys) / len(ys))


def classify_junction(contributors: List[JunctionContributor]) -> str:
    spline_ids = {c.spline_id for c in contributors}
    if len(spline_ids) == 1 and len(contributors) == 1:
        return ENDPOINT
    if any(c.is_continuous for c in contributors):
        return T_JUNCTION
    n = len(spline_ids)
    if n == 2:
        return Y_JUNCTION
    if 3 <= n <= 4:
        return CROSSROADS
    return COMPLEX


def _collect_endpoints(network: RoadNetwork, default_radius: float, skip: Set[SectionRef]) -> List[_Endpoint]:
    out: List[_Endpoint] = []
    for s in network.splines:
        n = len(s.sections)
        if n == 0:
            LOG.debug("spline %s has no cross-sections", s.spline_id)
            continue
        if s.is_roundabout:
            continue
        r = _spline_radius(s, default_radius)
        ends = [(0, True, n == 1)] if n == 1 else [(0, True, False), (n - 1, False, True)]
        for idx, is_start, is_end in ends:
            if (s.spline_id, idx) in skip:
                continue
            out.append(_Endpoint(s.spline_id, idx, s.sections[idx].center, r, is_start, is_end))
    return out


def _cluster_endpoints(endpoints: List[_Endpoint]) -> List[Junction]:
    if not endpoints:
        return []
    max_radius = max(e.radius for e in endpoints)
    grid = SpatialGrid(max(max_radius, DEFAULT_CELL_SIZE_M))
    for i, e in enumerate(endpoints):
        grid.insert(e.point, i)

    uf = UnionFind(len(endpoints))
    for i, e in enumerate(endpoints):
        for j in grid.query_radius(e.point, max_radius):
            if j <= i:
                continue
            o = endpoints[j]
            d = math.hypot(e.point[0] - o.point[0], e.point[1] - o.point[1])
            if d <= max(e.radius, o.radius):
                uf.union(i, j)

    junctions = []
    for members in uf.groups().values():
        contributors = [
            JunctionContributor(endpoints[m].spline_id, endpoints[m].index, endpoints[m].is_start, endpoints[m].is_end)
            for m in members
        ]
        junctions.append(Junction(contributors=contributors))
    return junctions


def _detect_t_junctions(
    network: RoadNetwork,
    junctions: List[Junction],
    index: CrossSectionIndex,
    default_radius: float,
) -> int:
    added = 0
    for j in junctions:
        center = junction_centroid(network, j.contributors)
        radius = max([default_radius] + [_spline_radius(network.spline(c.spline_id), default_radius) for c in j.contributors])
        done: Set[int] = set()
        for (spline_id, idx), _d in index.within(center, radius):
            if spline_id in done:
                continue
            spline = network.spline(spline_id)
            if _is_end_index(spline, idx):
                continue
            if j.has_continuous_for(spline_id):
                done.add(spline_id)
                continue
            if j.has_endpoint_for(spline_id):
                LOG.debug("spline %s already ends at junction, continuous contributor skipped", spline_id)
                done.add(spline_id)
                continue
            j.contributors.append(JunctionContributor(spline_id, idx))
            done.add(spline_id)
            added += 1
    return added


def _connected_pairs(junctions: Iterable[Junction]) -> Set[Tuple[int, int]]:
    pairs: Set[Tuple[int, int]] = set()
    for j in junctions:
        for a, b in combinations(sorted(j.spline_ids()), 2):
            pairs.add((a, b))
    return pairs


def _detect_midspline_crossings(
    network: RoadNetwork,
    existing: List[Junction],
    index: CrossSectionIndex,
    radius: float,
) -> List[Junction]:
    connected = _connected_pairs(existing)
    processed: Set[Tuple[int, int]] = set()
    crossings: List[Junction] = []
    for s in network.splines:
        n = len(s.sections)
        if n < 3:
            continue
        stride = max(1, n // MIDSPLINE_SAMPLE_TARGET)
        best: Dict[int, Tuple[float, int, SectionRef]] = {}
        for i in range(1, n - 1, stride):
            for ref, d in index.within(s.sections[i].center, radius):
                other_id, other_idx = ref
                if other_id == s.spline_id:
                    continue
                if _is_end_index(network.spline(other_id), other_idx):
                    continue
                cur = best.get(other_id)
                if cur is None or d < cur[0]:
                    best[other_id] = (d, i, ref)

        for other_id in sorted(best):
            _d, i, ref = best[other_id]
            pair = (min(s.spline_id, other_id), max(s.spline_id, other_id))
            if pair in processed:
                continue
            processed.add(pair)
            if pair in connected:
                continue
            a = s.sections[i].center
            b = network.section(ref).center
            pos = ((a[0] + b[0]) / 2.0, (a[1] + b[1]) / 2.0)
            if any(math.hypot(pos[0] - c.position[0], pos[1] - c.position[1]) < 0.5 * radius for c in crossings):
                continue
            crossings.append(
                Junction(
                    position=pos,
                    junction_type=MIDSPLINE_CROSSING,
                    contributors=[JunctionContributor(s.spline_id, i), JunctionContributor(other_id, ref[1])],
                )
            )
    return crossings


def detect_junctions(network: RoadNetwork, detection_radius_m: float = DEFAULT_DETECTION_RADIUS_M) -> List[Junction]:
    if network.section_count == 0:
        LOG.info("junctions: no cross-sections")
        return []
    index = CrossSectionIndex(network, DEFAULT_CELL_SIZE_M)

    rings = find_rings(network)
    roundabouts = detect_roundabout_junctions(network, rings, detection_radius_m)
    bound = {c.ref for j in roundabouts for c in j.contributors if c.is_endpoint}

    endpoints = _collect_endpoints(network, detection_radius_m, bound)
    junctions = _cluster_endpoints(endpoints)
    t_added = _detect_t_junctions(network, junctions, index, detection_radius_m)
    crossings = _detect_midspline_crossings(network, junctions + roundabouts, index, detection_radius_m)

    junctions = junctions + roundabouts + crossings
    for jid, j in enumerate(junctions):
        if j.junction_type not in (MIDSPLINE_CROSSING, ROUNDABOUT):
            j.junction_type = classify_junction(j.contributors)
        j.junction_id = jid
        j.position = junction_centroid(network, j.contributors)

    counts: Dict[str, int] = {}
    for j in junctions:
        counts[j.junction_type] = counts.get(j.junction_type, 0) + 1
    LOG.info(
        "junctions: %d from %d endpoints (t_contributors=%d crossings=%d roundabouts=%d) %s",
        len(junctions),
        len(endpoints),
        t_added,
        len(crossings),
        len(roundabouts),
        counts,
    )
    return junctions


def find_junction(junctions: List[Junction], junction_id: int) -> Optional[Junction]:
    for j in junctions:
        if j.junction_id == junction_id:
            return j
    return None


def exclude_junctions(
    junctions: List[Junction],
    exclude: Union[Iterable[int], Callable[[Junction], bool], None],
) -> int:
    """Mark junctions as excluded by id or by predicate; returns how many are excluded."""
    if exclude is None:
        return 0
    if callable(exclude):
        for j in junctions:
            if exclude(j):
                j.is_excluded = True
    else:
        for jid in exclude:
            j = find_junction(junctions, int(jid))
            if j is None:
                LOG.warning("excluded junction %s not found", jid)
                continue
            j.is_excluded = True
    count = sum(1 for j in junctions if j.is_excluded)
    if count:
        LOG.info("junctions: %d excluded from harmonization", count)
    return count


__all__ = [
    "DEFAULT_DETECTION_RADIUS_M",
    "classify_junction",
    "detect_junctions",
    "exclude_junctions",
    "find_junction",
    "junction_centroid",
]

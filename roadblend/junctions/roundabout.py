from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

from roadblend.models import (
    BIDIRECTIONAL,
    ENTRY,
    EXIT,
    ROUNDABOUT,
    Junction,
    JunctionContributor,
    Point,
    RoadNetwork,
    RoundaboutConnection,
    Spline,
)

LOG = logging.getLogger("roundabout")


@dataclass
class RoundaboutRing:
    spline_id: int
    center: Point
    radius: float
    connections: List[RoundaboutConnection] = field(default_factory=list)

    @classmethod
    def from_spline(cls, spline: Spline) -> Optional["RoundaboutRing"]:
        if len(spline.sections) < 3:
            return None
        xs = [cs.center[0] for cs in spline.sections]
        ys = [cs.center[1] for cs in spline.sections]
        cx = sum(xs) / len(xs)
        cy = sum(ys) / len(ys)
        radius = sum(math.hypot(x - cx, y - cy) for x, y in zip(xs, ys)) / len(xs)
        if radius <= 0.0:
            return None
        return cls(spline_id=spline.spline_id, center=(cx, cy), radius=radius)

    def mean_connection_spacing_deg(self) -> float:
        if len(self.connections) < 2:
            return 0.0
        angles = sorted(c.angle_deg for c in self.connections)
        total = 0.0
        for i, a in enumerate(angles):
            diff = angles[(i + 1) % len(angles)] - a
            if diff < 0:
                diff += 360.0
            total += diff
        return total / len(angles)


def find_rings(network: RoadNetwork) -> List[RoundaboutRing]:
    rings = []
    for s in network.splines:
        if not s.is_roundabout:
            continue
        ring = RoundaboutRing.from_spline(s)
        if ring is None:
            LOG.debug("roundabout spline %s too short for a ring", s.spline_id)
            continue
        rings.append(ring)
    return rings


def _connection_direction(road: Spline, is_start: bool) -> str:
    if not road.oneway:
        return BIDIRECTIONAL
    # a one-way road that ends on the ring drives into it
    return EXIT if is_start else ENTRY


def _nearest_index(spline: Spline, point: Point) -> int:
    best = 0
    best_d = math.inf
    for i, cs in enumerate(spline.sections):
        d = math.hypot(cs.center[0] - point[0], cs.center[1] - point[1])
        if d < best_d:
            best = i
            best_d = d
    return best


def detect_roundabout_junctions(
    network: RoadNetwork,
    rings: List[RoundaboutRing],
    detection_radius_m: float,
) -> List[Junction]:
    junctions: List[Junction] = []
    for ring in rings:
        ring_spline = network.spline(ring.spline_id)
        for road in network.splines:
            if road.spline_id == ring.spline_id or road.is_roundabout or not road.sections:
                continue
            radius = road.junction_detection_radius_m or detection_radius_m
            last = len(road.sections) - 1
            ends = [(0, True)] if last == 0 else [(0, True), (last, False)]
            for idx, is_start in ends:
                p = road.sections[idx].center
                dc = math.hypot(p[0] - ring.center[0], p[1] - ring.center[1])
                if abs(dc - ring.radius) > radius:
                    continue
                ring_idx = _nearest_index(ring_spline, p)
                ring_cs = ring_spline.sections[ring_idx]
                angle = math.degrees(math.atan2(ring_cs.center[1] - ring.center[1], ring_cs.center[0] - ring.center[0]))
                conn = RoundaboutConnection(
                    ring_spline_id=ring.spline_id,
                    road_spline_id=road.spline_id,
                    angle_deg=angle % 360.0,
                    distance_along_ring=ring_cs.distance_along,
                    direction=_connection_direction(road, is_start),
                    is_road_start=is_start,
                    ring_center=ring.center,
                    ring_radius=ring.radius,
                )
                ring.connections.append(conn)
                junctions.append(
                    Junction(
                        position=((p[0] + ring_cs.center[0]) / 2.0, (p[1] + ring_cs.center[1]) / 2.0),
                        junction_type=ROUNDABOUT,
                        contributors=[
                            JunctionContributor(ring.spline_id, ring_idx),
                            JunctionContributor(road.spline_id, idx, is_start, (not is_start) or last == 0),
                        ],
                        roundabout=conn,
                    )
                )
        LOG.debug(
            "ring %s: %d connections, mean spacing %.0f deg",
            ring.spline_id,
            len(ring.connections),
            ring.mean_connection_spacing_deg(),
        )
    return junctions


__all__ = ["RoundaboutRing", "detect_roundabout_junctions", "find_rings"]

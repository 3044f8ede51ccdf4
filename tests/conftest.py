from __future__ import annotations

import math
from typing import List, Optional, Tuple

import pytest

from roadblend.models import CrossSection, RoadNetwork, Spline


def straight_sections(
    start: Tuple[float, float],
    end: Tuple[float, float],
    spacing: float = 1.0,
    elevation: float = 10.0,
    curvature: float = 0.0,
) -> List[CrossSection]:
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    length = math.hypot(dx, dy)
    n = max(1, int(round(length / spacing)))
    tx, ty = dx / length, dy / length
    out = []
    for i in range(n + 1):
        t = i / n
        out.append(
            CrossSection(
                center=(start[0] + dx * t, start[1] + dy * t),
                tangent=(tx, ty),
                normal=(-ty, tx),
                distance_along=length * t,
                curvature=curvature,
                target_elevation=elevation,
            )
        )
    return out


def straight_spline(
    spline_id: int,
    start: Tuple[float, float],
    end: Tuple[float, float],
    elevation: float = 10.0,
    priority: int = 0,
    width: float = 8.0,
    blend_range: float = 15.0,
    curvature: float = 0.0,
    spacing: float = 1.0,
    radius: Optional[float] = None,
) -> Spline:
    return Spline(
        spline_id=spline_id,
        sections=straight_sections(start, end, spacing, elevation, curvature),
        priority=priority,
        road_width_m=width,
        blend_range_m=blend_range,
        junction_detection_radius_m=radius,
    )


def ring_spline(spline_id: int, center: Tuple[float, float], radius: float, step_deg: float = 5.0) -> Spline:
    sections = []
    n = int(round(360.0 / step_deg))
    for i in range(n):
        a = math.radians(i * step_deg)
        cx = center[0] + radius * math.cos(a)
        cy = center[1] + radius * math.sin(a)
        tangent = (-math.sin(a), math.cos(a))
        sections.append(
            CrossSection(
                center=(cx, cy),
                tangent=tangent,
                normal=(-tangent[1], tangent[0]),
                distance_along=radius * a,
                curvature=1.0 / radius,
                target_elevation=10.0,
            )
        )
    return Spline(spline_id=spline_id, sections=sections, is_roundabout=True, road_width_m=7.0)


@pytest.fixture
def crossing_network() -> RoadNetwork:
    return RoadNetwork(
        [
            straight_spline(0, (10.0, 50.0), (90.0, 50.0), elevation=5.0, width=6.0),
            straight_spline(1, (50.0, 10.0), (50.0, 90.0), elevation=5.0, width=6.0),
        ]
    )


@pytest.fixture
def t_network() -> RoadNetwork:
    return RoadNetwork(
        [
            straight_spline(0, (0.0, 50.0), (100.0, 50.0), elevation=10.0, priority=5),
            straight_spline(1, (50.0, 52.0), (50.0, 100.0), elevation=12.0, priority=3),
        ]
    )


@pytest.fixture
def three_way_network() -> RoadNetwork:
    return RoadNetwork(
        [
            straight_spline(0, (50.0, 50.0), (0.0, 50.0), elevation=10.0),
            straight_spline(1, (51.0, 50.0), (100.0, 50.0), elevation=11.0),
            straight_spline(2, (50.0, 51.0), (50.0, 100.0), elevation=12.0),
        ]
    )

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional

from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import mapping

from roadblend._io import read_json, write_json
from roadblend.banking.superelevation import banked_normal
from roadblend.models import BankingParams, CrossSection, Junction, RoadNetwork, Spline

LOG = logging.getLogger("network_io")


def _finite_pair(value: Any) -> Optional[tuple]:
    if value is None or len(value) != 2:
        return None
    x, y = float(value[0]), float(value[1])
    if not (math.isfinite(x) and math.isfinite(y)):
        return None
    return (x, y)


def _unit(v: tuple) -> Optional[tuple]:
    n = math.hypot(v[0], v[1])
    if n <= 1e-12:
        return None
    return (v[0] / n, v[1] / n)


def _section_from_dict(d: Dict[str, Any]) -> Optional[CrossSection]:
    center = _finite_pair(d.get("center"))
    tangent = _finite_pair(d.get("tangent"))
    if center is None or tangent is None:
        return None
    tangent = _unit(tangent)
    if tangent is None:
        return None
    normal = _finite_pair(d.get("normal"))
    normal = _unit(normal) if normal is not None else (-tangent[1], tangent[0])
    if normal is None:
        return None
    elevation = d.get("elevation")
    elevation = float("nan") if elevation is None else float(elevation)
    curvature = float(d.get("curvature", 0.0))
    if not math.isfinite(curvature):
        curvature = 0.0
    return CrossSection(
        center=center,
        tangent=tangent,
        normal=normal,
        distance_along=float(d.get("distance_along", float("nan"))),
        curvature=curvature,
        target_elevation=elevation,
        bank_angle=float(d.get("bank_angle", 0.0)),
        is_excluded=bool(d.get("excluded", False)),
    )


def _fill_distance_along(sections: List[CrossSection]) -> None:
    if all(math.isfinite(cs.distance_along) for cs in sections):
        return
    acc = 0.0
    for i, cs in enumerate(sections):
        if i > 0:
            prev = sections[i - 1].center
            acc += math.hypot(cs.center[0] - prev[0], cs.center[1] - prev[1])
        cs.distance_along = acc


def spline_from_dict(d: Dict[str, Any], defaults: Optional[Dict[str, Any]] = None) -> Spline:
    defaults = defaults or {}
    raw_sections = d.get("sections") or []
    sections = []
    dropped = 0
    for raw in raw_sections:
        cs = _section_from_dict(raw)
        if cs is None:
            dropped += 1
            continue
        sections.append(cs)
    if dropped:
        LOG.debug("spline %s: dropped %d cross-sections with invalid geometry", d.get("id"), dropped)
    _fill_distance_along(sections)

    banking = d.get("banking")
    radius = d.get("junction_detection_radius_m")
    return Spline(
        spline_id=int(d["id"]),
        sections=sections,
        priority=int(d.get("priority", 0)),
        road_width_m=float(d.get("road_width_m", defaults.get("ROAD_WIDTH_M", 8.0))),
        blend_range_m=float(d.get("blend_range_m", defaults.get("TERRAIN_AFFECTED_RANGE_M", 15.0))),
        blend_function=str(d.get("blend_function", defaults.get("BLEND_FUNCTION", "cosine"))),
        junction_detection_radius_m=None if radius is None else float(radius),
        banking=BankingParams(**banking) if isinstance(banking, dict) else None,
        is_roundabout=bool(d.get("is_roundabout", False)),
        oneway=bool(d.get("oneway", False)),
        name=str(d.get("name", "")),
    )


def network_from_dict(payload: Dict[str, Any], defaults: Optional[Dict[str, Any]] = None) -> RoadNetwork:
    if "splines" not in payload:
        raise KeyError("Missing required keys: ['splines']")
    splines = [spline_from_dict(s, defaults) for s in payload["splines"]]
    net = RoadNetwork(splines)
    LOG.info("network: %d splines, %d cross-sections", len(net.splines), net.section_count)
    return net


def load_network(path: Path, defaults: Optional[Dict[str, Any]] = None) -> RoadNetwork:
    return network_from_dict(read_json(path), defaults)


def _num(v: Optional[float]) -> Optional[float]:
    if v is None or not math.isfinite(v):
        return None
    return round(float(v), 4)


def section_to_dict(cs: CrossSection) -> Dict[str, Any]:
    return {
        "center": [cs.center[0], cs.center[1]],
        "tangent": [cs.tangent[0], cs.tangent[1]],
        "normal": [cs.normal[0], cs.normal[1]],
        "distance_along": _num(cs.distance_along),
        "curvature": cs.curvature,
        "elevation": _num(cs.target_elevation),
        "bank_angle": cs.bank_angle,
        "surface_normal": [round(c, 6) for c in banked_normal(cs)],
        "left_edge_elevation": _num(cs.left_edge_elevation),
        "right_edge_elevation": _num(cs.right_edge_elevation),
        "constrained_left": _num(cs.constrained_left),
        "constrained_right": _num(cs.constrained_right),
        "banking_behavior": cs.banking_behavior,
        "banking_factor": round(cs.banking_factor, 4),
        "higher_priority_spline_id": cs.higher_priority_spline_id,
        "distance_to_nearest_junction": _num(cs.distance_to_nearest_junction),
        "excluded": cs.is_excluded,
    }


def network_to_dict(network: RoadNetwork) -> Dict[str, Any]:
    splines = []
    for s in network.splines:
        splines.append(
            {
                "id": s.spline_id,
                "name": s.name,
                "priority": s.priority,
                "road_width_m": s.road_width_m,
                "blend_range_m": s.blend_range_m,
                "blend_function": s.blend_function,
                "junction_detection_radius_m": s.junction_detection_radius_m,
                "is_roundabout": s.is_roundabout,
                "oneway": s.oneway,
                "sections": [section_to_dict(cs) for cs in s.sections],
            }
        )
    return {"splines": splines}


def dump_cross_sections(path: Path, network: RoadNetwork) -> None:
    write_json(path, network_to_dict(network))


def junctions_to_geojson(junctions: List[Junction]) -> Dict[str, Any]:
    features = []
    for j in junctions:
        props: Dict[str, Any] = {
            "junction_id": j.junction_id,
            "junction_type": j.junction_type,
            "is_excluded": j.is_excluded,
            "harmonized_elevation": _num(j.harmonized_elevation),
            "spline_ids": j.spline_ids(),
            "contributors": [
                {"spline_id": c.spline_id, "index": c.index, "start": c.is_spline_start, "end": c.is_spline_end}
                for c in j.contributors
            ],
        }
        if j.roundabout is not None:
            props["ring_spline_id"] = j.roundabout.ring_spline_id
            props["angle_deg"] = round(j.roundabout.angle_deg, 3)
            props["direction"] = j.roundabout.direction
        features.append({"type": "Feature", "geometry": mapping(ShapelyPoint(j.position)), "properties": props})
    return {"type": "FeatureCollection", "features": features}


def write_junctions_geojson(path: Path, junctions: List[Junction]) -> None:
    write_json(path, junctions_to_geojson(junctions))


__all__ = [
    "dump_cross_sections",
    "junctions_to_geojson",
    "load_network",
    "network_from_dict",
    "network_to_dict",
    "section_to_dict",
    "spline_from_dict",
    "write_junctions_geojson",
]

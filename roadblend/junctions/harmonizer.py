from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from roadblend.banking.adapter import CHANGE_EPS_M, path_distances
from roadblend.banking.surface import banked_elevation
from roadblend.blending.blend_functions import smootherstep
from roadblend.models import (
    ENDPOINT,
    MIDSPLINE_CROSSING,
    ROUNDABOUT,
    T_JUNCTION,
    CrossSection,
    Junction,
    JunctionContributor,
    RoadNetwork,
    SectionRef,
    Spline,
)

LOG = logging.getLogger("junction_harmonizer")

SMALL_ELEVATION_DIFFERENCE_M = 0.5
SLOPE_SAMPLE_SPAN = 3
MIN_SLOPE_OFFSET_M = 0.1
ALIGNED_PAIR_MIN_DEG = 140.0
SIMILAR_LENGTH_RATIO = 0.8
SIMILAR_CROSSING_LENGTH_RATIO = 0.7
MIN_INFLUENCE = 0.001


@dataclass
class TaperParams:
    enabled: bool = True
    distance_m: float = 30.0
    terrain_blend_strength: float = 0.3

    def validate(self) -> List[str]:
        errors = []
        if self.distance_m <= 0:
            errors.append("distance_m must be greater than 0")
        if not 0.0 <= self.terrain_blend_strength <= 1.0:
            errors.append("terrain_blend_strength must be between 0 and 1")
        return errors


@dataclass
class JunctionElevations:
    network: RoadNetwork
    junctions: List[Junction]
    stats: Dict[str, float] = field(default_factory=dict)


def _finite(values: Sequence[float]) -> List[float]:
    return [v for v in values if math.isfinite(v)]


def _section(network: RoadNetwork, c: JunctionContributor) -> CrossSection:
    return network.section(c.ref)


def _elevation(network: RoadNetwork, c: JunctionContributor) -> float:
    return _section(network, c).target_elevation


def spline_length(spline: Spline) -> float:
    total = 0.0
    for a, b in zip(spline.sections, spline.sections[1:]):
        total += math.hypot(b.center[0] - a.center[0], b.center[1] - a.center[1])
    return total


def local_slope(sections: Sequence[CrossSection], index: int, span: int = SLOPE_SAMPLE_SPAN) -> float:
    """Rise over run between the sections ``span`` steps either side of ``index``."""
    lo = max(0, index - span)
    hi = min(len(sections) - 1, index + span)
    if lo == hi:
        return 0.0
    a, b = sections[lo], sections[hi]
    run = math.hypot(b.center[0] - a.center[0], b.center[1] - a.center[1])
    if run < MIN_SLOPE_OFFSET_M:
        return 0.0
    slope = (b.target_elevation - a.target_elevation) / run
    return slope if math.isfinite(slope) else 0.0


def _approach(network: RoadNetwork, c: JunctionContributor) -> Tuple[float, float]:
    # direction leaving the junction along the contributing road
    tx, ty = _section(network, c).tangent
    if c.is_spline_end and not c.is_spline_start:
        return (-tx, -ty)
    return (tx, ty)


def approach_angle_deg(network: RoadNetwork, a: JunctionContributor, b: JunctionContributor) -> float:
    ax, ay = _approach(network, a)
    bx, by = _approach(network, b)
    dot = min(max(ax * bx + ay * by, -1.0), 1.0)
    return math.degrees(math.acos(dot))


def _length_weighted(network: RoadNetwork, contributors: List[JunctionContributor]) -> float:
    pairs = [(_elevation(network, c), spline_length(network.spline(c.spline_id))) for c in contributors]
    pairs = [(e, w) for e, w in pairs if math.isfinite(e)]
    if not pairs:
        return math.nan
    total = sum(w for _e, w in pairs)
    if total < 1e-3:
        return sum(e for e, _w in pairs) / len(pairs)
    return sum(e * w for e, w in pairs) / total


def _aligned_pair(
    network: RoadNetwork, contributors: List[JunctionContributor]
) -> Optional[Tuple[JunctionContributor, JunctionContributor]]:
    best = None
    best_angle = ALIGNED_PAIR_MIN_DEG
    for i in range(len(contributors)):
        for j in range(i + 1, len(contributors)):
            angle = approach_angle_deg(network, contributors[i], contributors[j])
            if angle >= best_angle:
                best_angle = angle
                best = (contributors[i], contributors[j])
    return best


def _dominant_of_two(network: RoadNetwork, contributors: List[JunctionContributor], similar_ratio: float) -> float:
    ranked = sorted(contributors, key=lambda c: -spline_length(network.spline(c.spline_id)))
    dominant, secondary = ranked[0], ranked[1]
    long_len = spline_length(network.spline(dominant.spline_id))
    short_len = spline_length(network.spline(secondary.spline_id))
    e_dom = _elevation(network, dominant)
    e_sec = _elevation(network, secondary)
    if long_len <= 0 or short_len / long_len > similar_ratio:
        values = _finite([e_dom, e_sec])
        return sum(values) / len(values) if values else math.nan
    return e_dom if math.isfinite(e_dom) else e_sec


def equal_priority_elevation(network: RoadNetwork, junction: Junction) -> float:
    """Elevation for a junction whose roads all share one priority.

    Two roads: the longer one wins unless the lengths are within 20%, then
    they meet halfway. Three or more: the most opposed pair (at least
    140 degrees apart) is treated as the through road and averaged,
    otherwise every road is weighted by its length.
    """
    contributors = junction.contributors
    if len(contributors) == 1:
        return _elevation(network, contributors[0])
    if len(contributors) == 2:
        return _dominant_of_two(network, contributors, SIMILAR_LENGTH_RATIO)
    pair = _aligned_pair(network, contributors)
    if pair is not None:
        values = _finite([_elevation(network, pair[0]), _elevation(network, pair[1])])
        if values:
            return sum(values) / len(values)
    return _length_weighted(network, contributors)


def _priorities(network: RoadNetwork, junction: Junction) -> List[int]:
    return [network.spline(c.spline_id).priority for c in junction.contributors]


def multiway_elevation(network: RoadNetwork, junction: Junction) -> float:
    if not junction.contributors:
        return math.nan
    if len(set(_priorities(network, junction))) == 1 and len(junction.contributors) >= 2:
        return equal_priority_elevation(network, junction)
    jx, jy = junction.position
    total = 0.0
    acc = 0.0
    for c in junction.contributors:
        cs = _section(network, c)
        if not math.isfinite(cs.target_elevation):
            continue
        d = math.hypot(cs.center[0] - jx, cs.center[1] - jy)
        w = network.spline(c.spline_id).priority / (d + 0.1)
        total += w
        acc += cs.target_elevation * w
    if total > 0:
        return acc / total
    values = _finite([_elevation(network, c) for c in junction.contributors])
    return sum(values) / len(values) if values else math.nan


def crossing_elevation(network: RoadNetwork, junction: Junction) -> float:
    contributors = junction.contributors
    if not contributors:
        return math.nan
    if len(set(_priorities(network, junction))) == 1 and len(contributors) >= 2:
        if len(contributors) == 2:
            return _dominant_of_two(network, contributors, SIMILAR_CROSSING_LENGTH_RATIO)
        return _length_weighted(network, contributors)
    # squared priority so the main road dominates the crossing
    total = 0.0
    acc = 0.0
    for c in contributors:
        e = _elevation(network, c)
        if not math.isfinite(e):
            continue
        w = float(network.spline(c.spline_id).priority) ** 2
        total += w
        acc += e * w
    if total > 0:
        return acc / total
    values = _finite([_elevation(network, c) for c in contributors])
    return sum(values) / len(values) if values else math.nan


def t_junction_elevation(network: RoadNetwork, junction: Junction) -> float:
    """Continuous road's surface where the terminating road meets it.

    The primary (highest-priority continuous) road is evaluated at the
    terminating endpoint, including its bank and its local grade. Roads
    within half a meter of it meet at the priority-weighted average,
    otherwise the primary road wins and the terminating roads ramp onto it.
    """
    continuous = [c for c in junction.contributors if c.is_continuous]
    terminating = [c for c in junction.contributors if c.is_endpoint]
    if not continuous:
        return multiway_elevation(network, junction)

    primary = max(continuous, key=lambda c: network.spline(c.spline_id).priority)
    primary_spline = network.spline(primary.spline_id)
    primary_cs = primary_spline.sections[primary.index]
    e_c = primary_cs.target_elevation
    if not math.isfinite(e_c):
        return multiway_elevation(network, junction)

    if terminating:
        end = _section(network, terminating[0]).center
        surface = banked_elevation(primary_cs, end, primary_spline.half_width)
        along = (end[0] - primary_cs.center[0]) * primary_cs.tangent[0] + (end[1] - primary_cs.center[1]) * primary_cs.tangent[1]
        if abs(along) > MIN_SLOPE_OFFSET_M:
            surface += along * local_slope(primary_spline.sections, primary.index)
        if math.isfinite(surface):
            e_c = surface

    term_priority = 0.0
    term_acc = 0.0
    for c in terminating:
        e = _elevation(network, c)
        if not math.isfinite(e):
            continue
        p = float(network.spline(c.spline_id).priority)
        term_priority += p
        term_acc += e * p
    e_t = term_acc / term_priority if term_priority > 0 else e_c

    if abs(e_c - e_t) >= SMALL_ELEVATION_DIFFERENCE_M:
        return e_c
    cont_priority = float(sum(network.spline(c.spline_id).priority for c in continuous))
    total = cont_priority + term_priority
    if total <= 0:
        return e_c
    return (e_c * cont_priority + e_t * term_priority) / total


def sample_terrain(terrain: np.ndarray, point: Tuple[float, float], meters_per_pixel: float) -> float:
    h, w = terrain.shape
    col = min(max(int(round(point[0] / meters_per_pixel)), 0), w - 1)
    row = min(max(int(round(point[1] / meters_per_pixel)), 0), h - 1)
    return float(terrain[row, col])


def endpoint_elevation(
    network: RoadNetwork,
    junction: Junction,
    terrain: Optional[np.ndarray],
    meters_per_pixel: float,
    taper: TaperParams,
) -> float:
    road = _elevation(network, junction.contributors[0])
    if terrain is None or not math.isfinite(road):
        return road
    ground = sample_terrain(terrain, junction.position, meters_per_pixel)
    return road * (1.0 - taper.terrain_blend_strength) + ground * taper.terrain_blend_strength


def junction_elevation(
    network: RoadNetwork,
    junction: Junction,
    terrain: Optional[np.ndarray] = None,
    meters_per_pixel: float = 1.0,
    taper: Optional[TaperParams] = None,
) -> float:
    if not junction.contributors:
        return math.nan
    kind = junction.junction_type
    if kind == ENDPOINT:
        return endpoint_elevation(network, junction, terrain, meters_per_pixel, taper or TaperParams())
    if kind in (T_JUNCTION, ROUNDABOUT):
        return t_junction_elevation(network, junction)
    if kind == MIDSPLINE_CROSSING:
        return crossing_elevation(network, junction)
    return multiway_elevation(network, junction)


def _propagated(junction: Junction) -> List[JunctionContributor]:
    # the through road of a T keeps its profile
    if junction.junction_type in (T_JUNCTION, ROUNDABOUT):
        return [c for c in junction.contributors if c.is_endpoint]
    return list(junction.contributors)


def propagate_junction_elevations(network: RoadNetwork, junctions: List[Junction], blend_distance_m: float) -> int:
    """Pull each road toward the elevation of every junction it meets.

    Influences fade with a quintic ramp over ``blend_distance_m`` of path
    distance. Where ramps overlap the junction elevations are averaged by
    weight, so neighbouring junctions never overwrite each other.
    """
    if blend_distance_m <= 0:
        return 0
    influences: Dict[SectionRef, List[Tuple[float, float]]] = {}
    for j in junctions:
        if j.is_excluded or j.junction_type == ENDPOINT or not math.isfinite(j.harmonized_elevation):
            continue
        for c in _propagated(j):
            sections = network.spline(c.spline_id).sections
            for i, d in enumerate(path_distances(sections, c.index)):
                if d >= blend_distance_m:
                    continue
                weight = 1.0 - float(smootherstep(d / blend_distance_m))
                if weight > MIN_INFLUENCE:
                    influences.setdefault((c.spline_id, i), []).append((j.harmonized_elevation, weight))

    modified = 0
    overlapping = 0
    for ref, items in influences.items():
        cs = network.section(ref)
        if cs.is_excluded or not math.isfinite(cs.target_elevation):
            continue
        total = sum(w for _e, w in items)
        if total < MIN_INFLUENCE:
            continue
        if len(items) > 1:
            overlapping += 1
        target = sum(e * w for e, w in items) / total
        strength = min(total, 1.0)
        new = target * strength + cs.target_elevation * (1.0 - strength)
        if abs(new - cs.target_elevation) > CHANGE_EPS_M:
            cs.target_elevation = new
            modified += 1
    if overlapping:
        LOG.debug("%d cross-sections blend overlapping junction influences", overlapping)
    return modified


def taper_endpoints(
    network: RoadNetwork,
    junctions: List[Junction],
    terrain: np.ndarray,
    meters_per_pixel: float,
    taper: TaperParams,
) -> int:
    """Ease dead ends toward the terrain under them over ``taper.distance_m``."""
    tapered = 0
    for j in junctions:
        if j.is_excluded or j.junction_type != ENDPOINT:
            continue
        ground = sample_terrain(terrain, j.position, meters_per_pixel)
        for c in j.contributors:
            sections = network.spline(c.spline_id).sections
            for i, d in enumerate(path_distances(sections, c.index)):
                if d >= taper.distance_m:
                    continue
                cs = sections[i]
                if cs.is_excluded or not math.isfinite(cs.target_elevation):
                    continue
                original = cs.target_elevation
                blend = float(smootherstep(d / taper.distance_m))
                at_end = original * (1.0 - taper.terrain_blend_strength) + ground * taper.terrain_blend_strength
                cs.target_elevation = at_end * (1.0 - blend) + original * blend
                if abs(cs.target_elevation - original) > CHANGE_EPS_M:
                    tapered += 1
    return tapered


def harmonize_junction_elevations(
    network: RoadNetwork,
    junctions: List[Junction],
    blend_distance_m: float = 30.0,
    taper: Optional[TaperParams] = None,
    terrain: Optional[np.ndarray] = None,
    meters_per_pixel: float = 1.0,
) -> JunctionElevations:
    """Give every junction one elevation and blend its roads onto it.

    Works on copies of ``network`` and ``junctions``. Dead-end tapering runs
    only when a terrain heightmap is given.
    """
    taper = taper or TaperParams()
    net = network.copy()
    owned = copy.deepcopy(junctions)
    before = {ref: cs.target_elevation for ref, cs in net.iter_sections()}

    # higher-priority junctions first
    ordered = sorted(owned, key=lambda j: (-max(_priorities(net, j), default=0), j.junction_id))
    for j in ordered:
        if j.is_excluded:
            j.harmonized_elevation = math.nan
            continue
        j.harmonized_elevation = junction_elevation(net, j, terrain, meters_per_pixel, taper)
        LOG.debug("junction %s (%s): elevation %.2f", j.junction_id, j.junction_type, j.harmonized_elevation)

    propagated = propagate_junction_elevations(net, ordered, blend_distance_m)
    tapered = 0
    if terrain is not None and taper.enabled:
        tapered = taper_endpoints(net, ordered, terrain, meters_per_pixel, taper)

    modified = 0
    max_change = 0.0
    for ref, cs in net.iter_sections():
        old = before[ref]
        if not (math.isfinite(old) and math.isfinite(cs.target_elevation)):
            continue
        change = abs(cs.target_elevation - old)
        if change > CHANGE_EPS_M:
            modified += 1
            max_change = max(max_change, change)

    stats = {
        "propagated_sections": propagated,
        "tapered_sections": tapered,
        "harmonized_sections": modified,
        "max_elevation_change_m": round(max_change, 4),
    }
    LOG.info("junction elevations: %s", stats)
    return JunctionElevations(network=net, junctions=owned, stats=stats)


__all__ = [
    "JunctionElevations",
    "SMALL_ELEVATION_DIFFERENCE_M",
    "TaperParams",
    "approach_angle_deg",
    "crossing_elevation",
    "equal_priority_elevation",
    "harmonize_junction_elevations",
    "junction_elevation",
    "local_slope",
    "multiway_elevation",
    "propagate_junction_elevations",
    "sample_terrain",
    "spline_length",
    "t_junction_elevation",
    "taper_endpoints",
]

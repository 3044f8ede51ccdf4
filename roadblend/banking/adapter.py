from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from roadblend.banking.priority import BankingPlan
from roadblend.banking.superelevation import update_edge_elevations
from roadblend.banking.surface import banked_elevation, constrain_edges
from roadblend.blending.blend_functions import smootherstep
from roadblend.models import (
    ADAPT_TO_HIGHER_PRIORITY,
    SUPPRESS_BANKING,
    CrossSection,
    Junction,
    Point,
    RoadNetwork,
    Spline,
)

LOG = logging.getLogger("junction_banking_adapter")

MIN_OFFSET_M = 0.01
CHANGE_EPS_M = 0.001
EQUAL_PRIORITY_TOLERANCE_M = 0.05


@dataclass
class HarmonizedNetwork:
    network: RoadNetwork
    junctions: List[Junction]
    stats: Dict[str, int] = field(default_factory=dict)


def _dist(a: Point, b: Point) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def path_distances(sections: Sequence[CrossSection], index: int) -> List[float]:
    out = [0.0] * len(sections)
    for i in range(index - 1, -1, -1):
        out[i] = out[i + 1] + _dist(sections[i].center, sections[i + 1].center)
    for i in range(index + 1, len(sections)):
        out[i] = out[i - 1] + _dist(sections[i].center, sections[i - 1].center)
    return out


def ramp_elevation(
    sections: Sequence[CrossSection],
    junction_index: int,
    target_elevation: float,
    transition_m: float,
    behavior: str,
) -> List[Tuple[int, float]]:
    """Pull ``sections`` toward ``target_elevation`` at ``junction_index``.

    The offset is fully applied at the junction section and fades out with a
    quintic smootherstep over ``transition_m`` of path distance. Returns
    ``(index, weight)`` for every section that changed.
    """
    if transition_m <= 0:
        return []
    base = sections[junction_index].target_elevation
    offset = target_elevation - base
    changed = []
    for i, d in enumerate(path_distances(sections, junction_index)):
        if d > transition_m:
            continue
        cs = sections[i]
        if cs.banking_behavior != behavior or not math.isfinite(cs.target_elevation):
            continue
        weight = 1.0 - smootherstep(d / transition_m)
        new = cs.target_elevation + offset * weight
        if abs(new - cs.target_elevation) > CHANGE_EPS_M:
            cs.target_elevation = new
            changed.append((i, weight))
    return changed


def _nearest(sections: Sequence[CrossSection], point: Point) -> Tuple[int, float]:
    best = -1
    best_d = math.inf
    for i, cs in enumerate(sections):
        d = _dist(cs.center, point)
        if d < best_d:
            best = i
            best_d = d
    return best, best_d


def _adapt_to_higher_priority(network: RoadNetwork, transition_m: float) -> int:
    adjusted = 0
    for spline in network.splines:
        groups: Dict[int, List[int]] = {}
        for i, cs in enumerate(spline.sections):
            if cs.banking_behavior == ADAPT_TO_HIGHER_PRIORITY and cs.higher_priority_spline_id is not None:
                groups.setdefault(cs.higher_priority_spline_id, []).append(i)

        for higher_id, indices in sorted(groups.items()):
            higher = network.spline(higher_id)
            if not higher.sections:
                continue
            junction_idx = min(indices, key=lambda i: _nearest(higher.sections, spline.sections[i].center)[1])
            junction_cs = spline.sections[junction_idx]
            ref_idx, _d = _nearest(higher.sections, junction_cs.center)
            ref = higher.sections[ref_idx]
            surface = banked_elevation(ref, junction_cs.center, higher.half_width)
            if not math.isfinite(surface):
                surface = ref.target_elevation
            diff = surface - junction_cs.target_elevation
            if abs(diff) < MIN_OFFSET_M:
                continue
            LOG.debug(
                "spline %s -> %s: junction %.2f surface %.2f diff %.2f bank %.1f deg",
                spline.spline_id,
                higher_id,
                junction_cs.target_elevation,
                surface,
                diff,
                math.degrees(ref.bank_angle),
            )
            changed = ramp_elevation(spline.sections, junction_idx, surface, transition_m, ADAPT_TO_HIGHER_PRIORITY)
            for i, weight in changed:
                constrain_edges(spline.sections[i], ref, weight, spline.half_width, higher.half_width)
            adjusted += len(changed)
    return adjusted


def _top_priority_ids(network: RoadNetwork, junction: Junction) -> List[int]:
    ids = junction.spline_ids()
    if not ids:
        return []
    best = max(network.spline(sid).priority for sid in ids)
    return [sid for sid in ids if network.spline(sid).priority == best]


def _suppressed_junctions(network: RoadNetwork, junctions: List[Junction], transition_m: float) -> List[Junction]:
    out = []
    for j in junctions:
        if j.is_excluded or len(j.contributors) < 2:
            continue
        # lower-priority roads at a tie adapt separately, only the tied top group is averaged
        top = _top_priority_ids(network, j)
        if len(top) < 2:
            continue
        ok = True
        for sid in top:
            sections = network.spline(sid).sections
            idx, d = _nearest(sections, j.position)
            if idx < 0 or d > transition_m or sections[idx].banking_behavior != SUPPRESS_BANKING:
                ok = False
                break
        if ok:
            out.append(j)
    return out


def _smooth_equal_priority(plan: BankingPlan, network: RoadNetwork) -> int:
    adjusted = 0
    for j in _suppressed_junctions(network, plan.junctions, plan.transition_m):
        transition = plan.junction_transitions.get(j.junction_id, plan.transition_m)
        entries: List[Tuple[Spline, int, float]] = []
        for sid in _top_priority_ids(network, j):
            spline = network.spline(sid)
            idx, _d = _nearest(spline.sections, j.position)
            entries.append((spline, idx, spline.sections[idx].target_elevation))
        if len(entries) < 2:
            continue
        average = sum(e[2] for e in entries) / len(entries)
        spread = max(abs(e[2] - average) for e in entries)
        if spread < EQUAL_PRIORITY_TOLERANCE_M:
            continue
        LOG.debug("junction %s: average %.2f spread %.2f", j.junction_id, average, spread)
        for spline, idx, elev in entries:
            if abs(average - elev) < MIN_OFFSET_M:
                continue
            adjusted += len(ramp_elevation(spline.sections, idx, average, transition, SUPPRESS_BANKING))
    return adjusted


def adapt_junction_elevations(plan: BankingPlan, transition_m: Optional[float] = None) -> HarmonizedNetwork:
    transition = plan.transition_m if transition_m is None else transition_m
    net = plan.network.copy()
    # tied top roads settle first so lower roads adapt onto the averaged surface
    smoothed = _smooth_equal_priority(plan, net)
    adapted = _adapt_to_higher_priority(net, transition)
    for spline in net.splines:
        for cs in spline.sections:
            update_edge_elevations(cs, spline.half_width)
    stats = dict(plan.stats, adapted_sections=adapted, equalized_sections=smoothed)
    LOG.info("junction elevations: adapted=%d equalized=%d", adapted, smoothed)
    return HarmonizedNetwork(network=net, junctions=plan.junctions, stats=stats)


__all__ = [
    "CHANGE_EPS_M",
    "EQUAL_PRIORITY_TOLERANCE_M",
    "HarmonizedNetwork",
    "MIN_OFFSET_M",
    "adapt_junction_elevations",
    "path_distances",
    "ramp_elevation",
]

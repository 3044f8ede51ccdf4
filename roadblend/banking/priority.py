from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from roadblend.models import (
    ADAPT_TO_HIGHER_PRIORITY,
    BANKING_BEHAVIORS,
    ENDPOINT,
    MAINTAIN_BANKING,
    NORMAL,
    SUPPRESS_BANKING,
    Junction,
    RoadNetwork,
)

LOG = logging.getLogger("junction_banking")

DEFAULT_TRANSITION_M = 30.0
TIE_WIDTH_FACTOR = 1.5
MIN_TIE_TRANSITION_M = 10.0


@dataclass
class BankingPlan:
    network: RoadNetwork
    junctions: List[Junction]
    transition_m: float
    # transition actually used per junction id (ties use a reduced one)
    junction_transitions: Dict[int, float] = field(default_factory=dict)
    stats: Dict[str, int] = field(default_factory=dict)


def transition_factor(distance: float, transition_m: float) -> float:
    if transition_m <= 0:
        return 1.0
    t = min(max(distance / transition_m, 0.0), 1.0)
    return 0.5 - 0.5 * math.cos(t * math.pi)


def _reset(network: RoadNetwork) -> None:
    for _ref, cs in network.iter_sections():
        cs.banking_behavior = NORMAL
        cs.banking_factor = 1.0
        cs.distance_to_nearest_junction = math.inf
        cs.higher_priority_spline_id = None


def _apply(
    network: RoadNetwork,
    spline_id: int,
    junction: Junction,
    behavior: str,
    transition_m: float,
    higher_id: Optional[int] = None,
) -> int:
    written = 0
    jx, jy = junction.position
    for cs in network.spline(spline_id).sections:
        d = math.hypot(cs.center[0] - jx, cs.center[1] - jy)
        if d > transition_m:
            continue
        if d < cs.distance_to_nearest_junction:
            cs.distance_to_nearest_junction = d
        factor = transition_factor(d, transition_m)
        # lower factor means stronger junction influence; equal influence keeps the earlier junction
        if cs.banking_behavior == NORMAL or (1.0 - factor) > (1.0 - cs.banking_factor):
            cs.banking_behavior = behavior
            cs.banking_factor = factor
            cs.higher_priority_spline_id = higher_id
            written += 1
    return written


def assign_junction_banking(
    network: RoadNetwork,
    junctions: List[Junction],
    transition_m: float = DEFAULT_TRANSITION_M,
) -> BankingPlan:
    net = network.copy()
    owned = copy.deepcopy(junctions)
    _reset(net)
    plan = BankingPlan(network=net, junctions=owned, transition_m=transition_m)

    ties = 0
    dominated = 0
    for j in sorted(owned, key=lambda x: x.junction_id):
        if j.is_excluded:
            continue
        spline_ids = j.spline_ids()
        if j.junction_type == ENDPOINT or len(spline_ids) == 1:
            for sid in spline_ids:
                _apply(net, sid, j, SUPPRESS_BANKING, transition_m)
            plan.junction_transitions[j.junction_id] = transition_m
            continue

        by_priority: Dict[int, List[int]] = {}
        for sid in spline_ids:
            by_priority.setdefault(net.spline(sid).priority, []).append(sid)
        top = by_priority[max(by_priority)]

        if len(top) > 1:
            widest = max(net.spline(sid).road_width_m for sid in top)
            tie_transition = max(TIE_WIDTH_FACTOR * widest, MIN_TIE_TRANSITION_M)
            for sid in top:
                _apply(net, sid, j, SUPPRESS_BANKING, tie_transition)
            for sid in spline_ids:
                if sid not in top:
                    _apply(net, sid, j, ADAPT_TO_HIGHER_PRIORITY, transition_m, top[0])
            plan.junction_transitions[j.junction_id] = tie_transition
            ties += 1
            continue

        dominant = top[0]
        _apply(net, dominant, j, MAINTAIN_BANKING, transition_m)
        for sid in spline_ids:
            if sid != dominant:
                _apply(net, sid, j, ADAPT_TO_HIGHER_PRIORITY, transition_m, dominant)
        plan.junction_transitions[j.junction_id] = transition_m
        dominated += 1

    counts = {b: 0 for b in BANKING_BEHAVIORS}
    for _ref, cs in net.iter_sections():
        counts[cs.banking_behavior] += 1
    plan.stats = dict(counts, tie_junctions=ties, priority_junctions=dominated)
    LOG.info("junction banking: %s", plan.stats)
    return plan


__all__ = [
    "BankingPlan",
    "DEFAULT_TRANSITION_M",
    "MIN_TIE_TRANSITION_M",
    "TIE_WIDTH_FACTOR",
    "assign_junction_banking",
    "transition_factor",
]

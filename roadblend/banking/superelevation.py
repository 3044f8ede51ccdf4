from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from roadblend.banking.priority import BankingPlan
from roadblend.models import (
    ADAPT_TO_HIGHER_PRIORITY,
    SUPPRESS_BANKING,
    BankingParams,
    CrossSection,
)

LOG = logging.getLogger("superelevation")

PRESETS: Dict[str, BankingParams] = {
    "highway": BankingParams(enabled=True, max_bank_angle_deg=8.0, strength=0.7, falloff=0.5, transition_length_m=40.0),
    "race_track": BankingParams(enabled=True, max_bank_angle_deg=15.0, strength=1.0, falloff=0.4, transition_length_m=25.0),
    "rural_road": BankingParams(enabled=True, max_bank_angle_deg=5.0, strength=0.4, falloff=0.8, transition_length_m=20.0),
}


def banking_preset(name: str) -> BankingParams:
    key = name.strip().lower()
    if key not in PRESETS:
        raise KeyError(f"banking_preset_unknown:{name}")
    return replace(PRESETS[key])


def bank_angle_from_curvature(curvature: float, params: BankingParams) -> float:
    factor = min(abs(curvature) * params.curvature_scale, 1.0) * params.strength
    sign = (curvature > 0) - (curvature < 0)
    return sign * factor * math.radians(params.max_bank_angle_deg)


def _falloff_blend(sections: Sequence[CrossSection], raw: List[float], params: BankingParams) -> List[float]:
    length = params.transition_length_m
    window = 2.0 * length
    out = []
    n = len(sections)
    for i in range(n):
        here = sections[i].distance_along
        acc = 0.0
        total = 0.0
        j = i
        while j >= 0 and here - sections[j].distance_along <= window:
            w = max(0.0, 1.0 - (here - sections[j].distance_along) * params.falloff / length)
            if w > 1e-3:
                acc += raw[j] * w
                total += w
            j -= 1
        j = i + 1
        while j < n and sections[j].distance_along - here <= window:
            w = max(0.0, 1.0 - (sections[j].distance_along - here) * params.falloff / length)
            if w > 1e-3:
                acc += raw[j] * w
                total += w
            j += 1
        out.append(acc / total if total > 0 else raw[i])
    return out


def compute_bank_angles(sections: Sequence[CrossSection], params: BankingParams) -> None:
    if not params.enabled or len(sections) < 2:
        for cs in sections:
            cs.bank_angle = 0.0
        return
    raw = [bank_angle_from_curvature(cs.curvature, params) for cs in sections]
    for cs, angle in zip(sections, _falloff_blend(sections, raw, params)):
        cs.bank_angle = angle


def apply_junction_adjustments(sections: Sequence[CrossSection]) -> None:
    for cs in sections:
        # both fade to flat at the junction; an adapting road leaves the ramp to its elevation profile
        if cs.banking_behavior in (SUPPRESS_BANKING, ADAPT_TO_HIGHER_PRIORITY):
            cs.bank_angle *= cs.banking_factor


def update_edge_elevations(cs: CrossSection, half_width: float) -> None:
    delta = half_width * math.sin(cs.bank_angle)
    cs.left_edge_elevation = cs.target_elevation - delta
    cs.right_edge_elevation = cs.target_elevation + delta


def banked_normal(cs: CrossSection) -> Tuple[float, float, float]:
    s = math.sin(cs.bank_angle)
    return (-cs.normal[0] * s, -cs.normal[1] * s, math.cos(cs.bank_angle))


def apply_bank_angles(plan: BankingPlan, default_params: Optional[BankingParams] = None) -> BankingPlan:
    defaults = default_params or BankingParams()
    net = plan.network.copy()
    banked = 0
    for spline in net.splines:
        params = spline.banking or defaults
        compute_bank_angles(spline.sections, params)
        if params.enabled and len(spline.sections) >= 2:
            apply_junction_adjustments(spline.sections)
            banked += 1
        for cs in spline.sections:
            update_edge_elevations(cs, spline.half_width)

    peak = max((abs(cs.bank_angle) for _ref, cs in net.iter_sections()), default=0.0)
    LOG.info("banking: %d/%d splines banked, peak %.2f deg", banked, len(net.splines), math.degrees(peak))
    return BankingPlan(
        network=net,
        junctions=plan.junctions,
        transition_m=plan.transition_m,
        junction_transitions=dict(plan.junction_transitions),
        stats=dict(plan.stats, banked_splines=banked),
    )


__all__ = [
    "PRESETS",
    "apply_bank_angles",
    "apply_junction_adjustments",
    "bank_angle_from_curvature",
    "banked_normal",
    "banking_preset",
    "compute_bank_angles",
    "update_edge_elevations",
]

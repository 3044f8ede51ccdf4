from __future__ import annotations

from .adapter import HarmonizedNetwork, adapt_junction_elevations, ramp_elevation
from .priority import BankingPlan, assign_junction_banking, transition_factor
from .superelevation import (
    apply_bank_angles,
    bank_angle_from_curvature,
    banking_preset,
    compute_bank_angles,
    update_edge_elevations,
)

__all__ = [
    "BankingPlan",
    "HarmonizedNetwork",
    "adapt_junction_elevations",
    "apply_bank_angles",
    "assign_junction_banking",
    "bank_angle_from_curvature",
    "banking_preset",
    "compute_bank_angles",
    "ramp_elevation",
    "transition_factor",
    "update_edge_elevations",
]

from __future__ import annotations

from .blend_functions import BLEND_FUNCTIONS, apply_blend
from .distance_field import compute_distance_field, edt_1d
from .elevation_map import ElevationMap, build_elevation_map
from .post_smooth import SmoothingParams, post_smooth
from .protected_blend import BlendStats, apply_protected_blending
from .road_mask import CoreOwnership, build_core_mask, build_core_ownership

__all__ = [
    "BLEND_FUNCTIONS",
    "BlendStats",
    "CoreOwnership",
    "ElevationMap",
    "SmoothingParams",
    "apply_blend",
    "apply_protected_blending",
    "build_core_mask",
    "build_core_ownership",
    "build_elevation_map",
    "compute_distance_field",
    "edt_1d",
    "post_smooth",
]

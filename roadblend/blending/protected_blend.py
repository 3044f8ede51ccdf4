from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
import shapely
from shapely.strtree import STRtree

from roadblend.blending._chunks import run_chunked
from roadblend.blending.blend_functions import apply_blend
from roadblend.blending.elevation_map import ElevationMap
from roadblend.blending.road_mask import CoreOwnership, usable_section
from roadblend.models import RoadNetwork, Spline

LOG = logging.getLogger("protected_blend")

CHANGE_EPS_M = 0.001


@dataclass
class BlendStats:
    modified_pixels: int = 0
    core_pixels: int = 0
    shoulder_pixels: int = 0
    protected_pixels: int = 0

    def __add__(self, other: "BlendStats") -> "BlendStats":
        return BlendStats(
            self.modified_pixels + other.modified_pixels,
            self.core_pixels + other.core_pixels,
            self.shoulder_pixels + other.shoulder_pixels,
            self.protected_pixels + other.protected_pixels,
        )


def _owner_distance(spline: Spline, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
    sections = [cs for cs in spline.sections if usable_section(cs)]
    if not sections or xs.size == 0:
        return np.full(xs.shape, np.inf)
    cx = np.array([cs.center[0] for cs in sections])
    cy = np.array([cs.center[1] for cs in sections])
    nx = np.array([cs.normal[0] for cs in sections])
    ny = np.array([cs.normal[1] for cs in sections])
    tx = np.array([cs.tangent[0] for cs in sections])
    ty = np.array([cs.tangent[1] for cs in sections])
    tree = STRtree(shapely.points(cx, cy))
    idx = tree.nearest(shapely.points(xs, ys))
    dx = xs - cx[idx]
    dy = ys - cy[idx]
    lateral = np.abs(dx * nx[idx] + dy * ny[idx])
    along = dx * tx[idx] + dy * ty[idx]
    # past either end of the road the distance becomes radial
    beyond = ((idx == 0) & (along < 0)) | ((idx == len(sections) - 1) & (along > 0))
    if len(sections) == 1:
        beyond = np.ones(xs.shape, dtype=bool)
    return np.where(beyond, np.hypot(dx, dy), lateral)


def owner_distance_field(emap: ElevationMap, network: RoadNetwork, meters_per_pixel: float) -> np.ndarray:
    """Distance from each owned pixel to its owner's centreline (inf elsewhere)."""
    out = np.full(emap.owner.shape, np.inf, dtype=np.float64)
    mpp = float(meters_per_pixel)
    for spline in network.splines:
        rows, cols = np.nonzero(emap.owner == spline.spline_id)
        if rows.size == 0:
            continue
        out[rows, cols] = _owner_distance(spline, cols * mpp, rows * mpp)
    return out


def _blend_rows(
    r0: int,
    r1: int,
    original: np.ndarray,
    result: np.ndarray,
    distance_field: np.ndarray,
    owner_distance: np.ndarray,
    emap: ElevationMap,
    core: CoreOwnership,
    half_width: np.ndarray,
    curves: Dict[int, str],
) -> BlendStats:
    owner = emap.owner[r0:r1]
    target = emap.elevation[r0:r1].astype(np.float64)
    active = (owner >= 0) & np.isfinite(target)
    if not active.any():
        return BlendStats()

    orig = original[r0:r1]
    d_owner = owner_distance[r0:r1]
    r = half_width[r0:r1]
    b = emap.blend_range[r0:r1].astype(np.float64)
    protected = core.mask[r0:r1] & active
    in_core = active & (protected | (distance_field[r0:r1] <= 0.0) | (d_owner <= r))
    shoulder = active & ~in_core & (d_owner <= r + b)

    new = orig.astype(np.float64).copy()
    new[in_core] = target[in_core]
    if shoulder.any():
        t = np.clip((d_owner - r) / np.where(b > 0, b, 1.0), 0.0, 1.0)
        blend = np.zeros_like(t)
        for spline_id, curve in curves.items():
            sel = shoulder & (owner == spline_id)
            if sel.any():
                blend[sel] = apply_blend(t[sel], curve)
        new[shoulder] = target[shoulder] * (1.0 - blend[shoulder]) + orig[shoulder] * blend[shoulder]

    touched = in_core | shoulder
    changed = touched & (np.abs(new - orig) > CHANGE_EPS_M)
    out = result[r0:r1]
    out[in_core] = new[in_core]
    out[changed] = new[changed]
    return BlendStats(
        modified_pixels=int(changed.sum()),
        core_pixels=int(in_core.sum()),
        shoulder_pixels=int(shoulder.sum()),
        protected_pixels=int(protected.sum()),
    )


def apply_protected_blending(
    heightmap: np.ndarray,
    distance_field: np.ndarray,
    emap: ElevationMap,
    core: CoreOwnership,
    network: RoadNetwork,
    meters_per_pixel: float,
    workers: Optional[int] = None,
) -> Tuple[np.ndarray, BlendStats]:
    """Paint road cores and blend shoulders into a copy of ``heightmap``.

    A core pixel always takes its owner's target elevation; shoulders fade
    from the owner's elevation back to the terrain with the owner's blend
    curve. Rows are split across worker threads, each writing only its own
    range.
    """
    if heightmap.shape != distance_field.shape or heightmap.shape != emap.owner.shape:
        raise ValueError("shape_mismatch")
    result = heightmap.copy()
    owner_distance = owner_distance_field(emap, network, meters_per_pixel)

    half_width = np.zeros(heightmap.shape, dtype=np.float64)
    curves: Dict[int, str] = {}
    for spline in network.splines:
        half_width[emap.owner == spline.spline_id] = spline.half_width
        curves[spline.spline_id] = spline.blend_function

    parts = run_chunked(
        heightmap.shape[0],
        lambda a, b: _blend_rows(a, b, heightmap, result, distance_field, owner_distance, emap, core, half_width, curves),
        workers,
    )
    stats = BlendStats()
    for p in parts:
        stats = stats + p
    LOG.info(
        "protected blending: modified=%d core=%d shoulder=%d protected=%d",
        stats.modified_pixels,
        stats.core_pixels,
        stats.shoulder_pixels,
        stats.protected_pixels,
    )
    return result, stats


__all__ = ["BlendStats", "apply_protected_blending", "owner_distance_field"]

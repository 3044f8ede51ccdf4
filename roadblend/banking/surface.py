from __future__ import annotations

import math
from typing import Optional

import numpy as np

from roadblend.models import CrossSection, Point

BANKING_THRESHOLD = 1e-4


def has_banking(cs: CrossSection) -> bool:
    return abs(cs.bank_angle) > BANKING_THRESHOLD


def lateral_offset(cs: CrossSection, point: Point) -> float:
    return (point[0] - cs.center[0]) * cs.normal[0] + (point[1] - cs.center[1]) * cs.normal[1]


def edge_elevation(cs: CrossSection, right: bool, half_width: float) -> float:
    value = cs.effective_right if right else cs.effective_left
    if value is not None:
        return value
    delta = half_width * math.sin(cs.bank_angle)
    return cs.target_elevation + delta if right else cs.target_elevation - delta


def elevation_at_offset(cs: CrossSection, lateral: float, half_width: float) -> float:
    if cs.has_constraint and half_width > 0:
        left = edge_elevation(cs, False, half_width)
        right = edge_elevation(cs, True, half_width)
        u = min(max((lateral + half_width) / (2.0 * half_width), 0.0), 1.0)
        return left + (right - left) * u
    return cs.target_elevation + lateral * math.sin(cs.bank_angle)


def banked_elevation(cs: CrossSection, point: Point, half_width: Optional[float] = None) -> float:
    """Road surface height of ``cs`` evaluated at a world point.

    The point is projected onto the cross-section line; with ``half_width``
    the lateral offset is clamped to the road edges.
    """
    if not has_banking(cs) and not cs.has_constraint:
        return cs.target_elevation
    lateral = lateral_offset(cs, point)
    if half_width is not None:
        lateral = min(max(lateral, -half_width), half_width)
    return elevation_at_offset(cs, lateral, half_width or 0.0)


def segment_has_banking(cs1: CrossSection, cs2: CrossSection) -> bool:
    return has_banking(cs1) or has_banking(cs2) or cs1.has_constraint or cs2.has_constraint


def segment_surface(
    cs1: CrossSection,
    cs2: CrossSection,
    xs: np.ndarray,
    ys: np.ndarray,
    half_width1: float,
    half_width2: float,
) -> np.ndarray:
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    (x1, y1), (x2, y2) = cs1.center, cs2.center
    sx, sy = x2 - x1, y2 - y1
    seg_len = math.hypot(sx, sy)
    if seg_len < 1e-3:
        t = np.zeros_like(xs)
    else:
        t = np.clip(((xs - x1) * sx + (ys - y1) * sy) / (seg_len * seg_len), 0.0, 1.0)

    cx = x1 + sx * t
    cy = y1 + sy * t
    nx = cs1.normal[0] + (cs2.normal[0] - cs1.normal[0]) * t
    ny = cs1.normal[1] + (cs2.normal[1] - cs1.normal[1]) * t
    norm = np.hypot(nx, ny)
    norm = np.where(norm < 1e-9, 1.0, norm)
    lateral = ((xs - cx) * nx + (ys - cy) * ny) / norm

    if cs1.has_constraint or cs2.has_constraint:
        hw = half_width1 + (half_width2 - half_width1) * t
        left = edge_elevation(cs1, False, half_width1) + (edge_elevation(cs2, False, half_width2) - edge_elevation(cs1, False, half_width1)) * t
        right = edge_elevation(cs1, True, half_width1) + (edge_elevation(cs2, True, half_width2) - edge_elevation(cs1, True, half_width1)) * t
        u = np.clip((lateral + hw) / np.maximum(2.0 * hw, 1e-9), 0.0, 1.0)
        return left + (right - left) * u

    elev = cs1.target_elevation + (cs2.target_elevation - cs1.target_elevation) * t
    bank = cs1.bank_angle + (cs2.bank_angle - cs1.bank_angle) * t
    return elev + lateral * np.sin(bank)


def constrain_edges(
    cs: CrossSection,
    reference: CrossSection,
    weight: float,
    half_width: float,
    reference_half_width: Optional[float] = None,
) -> bool:
    """Pin the edges of ``cs`` toward the banked surface of ``reference``.

    ``weight`` 1 puts both edges on the reference surface, 0 leaves them
    untouched. Returns False when the weight is negligible.
    """
    if weight < 1e-3:
        return False
    nx, ny = cs.normal
    left_pos = (cs.center[0] - nx * half_width, cs.center[1] - ny * half_width)
    right_pos = (cs.center[0] + nx * half_width, cs.center[1] + ny * half_width)
    ref_left = banked_elevation(reference, left_pos, reference_half_width)
    ref_right = banked_elevation(reference, right_pos, reference_half_width)
    delta = half_width * math.sin(cs.bank_angle)
    natural_left = cs.target_elevation - delta
    natural_right = cs.target_elevation + delta
    cs.constrained_left = ref_left * weight + natural_left * (1.0 - weight)
    cs.constrained_right = ref_right * weight + natural_right * (1.0 - weight)
    return True


__all__ = [
    "BANKING_THRESHOLD",
    "banked_elevation",
    "constrain_edges",
    "edge_elevation",
    "elevation_at_offset",
    "has_banking",
    "lateral_offset",
    "segment_has_banking",
    "segment_surface",
]

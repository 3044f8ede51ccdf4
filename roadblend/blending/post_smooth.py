from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from roadblend.models import RoadNetwork

LOG = logging.getLogger("post_smooth")

GAUSSIAN = "gaussian"
BOX = "box"
BILATERAL = "bilateral"
SMOOTHING_KINDS = (GAUSSIAN, BOX, BILATERAL)


@dataclass
class SmoothingParams:
    enabled: bool = False
    kind: str = GAUSSIAN
    kernel_size: int = 7
    sigma: float = 1.5
    mask_extension_m: float = 6.0
    iterations: int = 1

    def validate(self) -> List[str]:
        errors = []
        if self.kind not in SMOOTHING_KINDS:
            errors.append(f"kind must be one of {list(SMOOTHING_KINDS)}")
        if self.kernel_size < 3 or self.kernel_size % 2 == 0:
            errors.append("kernel_size must be an odd number >= 3")
        if self.sigma <= 0:
            errors.append("sigma must be greater than 0")
        if self.mask_extension_m < 0:
            errors.append("mask_extension_m must not be negative")
        if self.iterations < 1:
            errors.append("iterations must be at least 1")
        return errors


def smoothing_mask(distance_field: np.ndarray, network: RoadNetwork, extension_m: float) -> np.ndarray:
    if not network.splines:
        return np.zeros(distance_field.shape, dtype=bool)
    max_half = max(s.half_width for s in network.splines)
    return distance_field <= max_half + extension_m


def _bilateral(img: np.ndarray, kernel_size: int, sigma: float) -> np.ndarray:
    r = kernel_size // 2
    sigma_range = sigma * 0.5
    h, w = img.shape
    padded = np.pad(img, r, mode="constant", constant_values=np.nan)
    acc = np.zeros_like(img)
    total = np.zeros_like(img)
    for ky in range(-r, r + 1):
        for kx in range(-r, r + 1):
            nb = padded[r + ky : r + ky + h, r + kx : r + kx + w]
            valid = np.isfinite(nb)
            spatial = np.exp(-(kx * kx + ky * ky) / (2.0 * sigma * sigma))
            diff = np.where(valid, img - nb, 0.0)
            weight = np.where(valid, spatial * np.exp(-(diff * diff) / (2.0 * sigma_range * sigma_range)), 0.0)
            acc += np.where(valid, nb, 0.0) * weight
            total += weight
    return np.where(total > 0, acc / np.where(total > 0, total, 1.0), img)


def post_smooth(
    heightmap: np.ndarray,
    distance_field: Optional[np.ndarray],
    network: RoadNetwork,
    params: SmoothingParams,
) -> np.ndarray:
    """Smooth only the road and shoulder pixels of ``heightmap``.

    The distance field of the blend that produced ``heightmap`` selects the
    pixels; everything else is returned unchanged.
    """
    if not params.enabled:
        return heightmap.copy()
    if distance_field is None:
        raise RuntimeError("distance_field_missing")
    if distance_field.shape != heightmap.shape:
        raise ValueError("shape_mismatch")
    errors = params.validate()
    if errors:
        raise ValueError("; ".join(errors))

    from scipy import ndimage as ndi

    mask = smoothing_mask(distance_field, network, params.mask_extension_m)
    out = heightmap.astype(np.float64).copy()
    for it in range(params.iterations):
        if params.kind == GAUSSIAN:
            radius = params.kernel_size // 2
            smoothed = ndi.gaussian_filter(out, sigma=params.sigma, truncate=radius / params.sigma, mode="nearest")
        elif params.kind == BOX:
            smoothed = ndi.uniform_filter(out, size=params.kernel_size, mode="nearest")
        else:
            smoothed = _bilateral(out, params.kernel_size, params.sigma)
        out[mask] = smoothed[mask]
        LOG.debug("post smoothing iteration %d/%d", it + 1, params.iterations)
    LOG.info("post smoothing: %s on %d pixels x%d", params.kind, int(mask.sum()), params.iterations)
    return out.astype(heightmap.dtype, copy=False)


__all__ = ["BILATERAL", "BOX", "GAUSSIAN", "SMOOTHING_KINDS", "SmoothingParams", "post_smooth", "smoothing_mask"]

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
from rasterio.features import rasterize
from rasterio.transform import Affine
from shapely.geometry import LineString, Polygon

from roadblend.banking.surface import segment_has_banking, segment_surface
from roadblend.models import CrossSection, RoadNetwork, is_valid_elevation

LOG = logging.getLogger("road_mask")


@dataclass
class CoreOwnership:
    mask: np.ndarray
    owner: np.ndarray
    elevation: np.ndarray
    protected_pixels: int
    contested_pixels: int


def pixel_transform(meters_per_pixel: float) -> Affine:
    # pixel (row, col) is centred on world (col * mpp, row * mpp)
    mpp = float(meters_per_pixel)
    return Affine(mpp, 0.0, -0.5 * mpp, 0.0, mpp, -0.5 * mpp)


def usable_section(cs: CrossSection) -> bool:
    return not cs.is_excluded and is_valid_elevation(cs.target_elevation)


def _edge_points(cs: CrossSection, half_width: float) -> Tuple[Tuple[float, float], Tuple[float, float]]:
    cx, cy = cs.center
    nx, ny = cs.normal
    return (cx - nx * half_width, cy - ny * half_width), (cx + nx * half_width, cy + ny * half_width)


def build_core_mask(network: RoadNetwork, shape: Tuple[int, int], meters_per_pixel: float) -> np.ndarray:
    shapes = []
    skipped = 0
    for spline in network.splines:
        if spline.half_width <= 0:
            continue
        for cs in spline.sections:
            if not usable_section(cs):
                skipped += 1
                continue
            left, right = _edge_points(cs, spline.half_width)
            shapes.append((LineString([left, right]), 1))
    LOG.debug("core mask: %d cross-sections rasterized, %d skipped", len(shapes), skipped)
    if not shapes:
        return np.zeros(shape, dtype=bool)
    burned = rasterize(
        shapes,
        out_shape=shape,
        transform=pixel_transform(meters_per_pixel),
        fill=0,
        dtype="uint8",
    )
    return burned.astype(bool)


def _window(quads: List[Polygon], shape: Tuple[int, int], mpp: float) -> Tuple[int, int, int, int]:
    minx = min(q.bounds[0] for q in quads)
    miny = min(q.bounds[1] for q in quads)
    maxx = max(q.bounds[2] for q in quads)
    maxy = max(q.bounds[3] for q in quads)
    h, w = shape
    c0 = max(0, int(math.floor(minx / mpp)) - 1)
    r0 = max(0, int(math.floor(miny / mpp)) - 1)
    c1 = min(w, int(math.ceil(maxx / mpp)) + 2)
    r1 = min(h, int(math.ceil(maxy / mpp)) + 2)
    return r0, r1, c0, c1


def build_core_ownership(
    network: RoadNetwork,
    shape: Tuple[int, int],
    meters_per_pixel: float,
    protection_buffer_m: float = 0.0,
) -> CoreOwnership:
    """Fill every spline's road core and record which spline owns each pixel.

    Splines are visited by descending priority (input order breaks ties) and a
    pixel keeps its first owner, so contested pixels go to the dominant road.
    Inside one spline the earlier segment wins.
    """
    mpp = float(meters_per_pixel)
    mask = np.zeros(shape, dtype=bool)
    owner = np.full(shape, -1, dtype=np.int32)
    elevation = np.full(shape, np.nan, dtype=np.float32)
    base = pixel_transform(mpp)
    contested = 0

    order = sorted(range(len(network.splines)), key=lambda i: (-network.splines[i].priority, i))
    for i in order:
        spline = network.splines[i]
        sections = [cs for cs in spline.sections if usable_section(cs)]
        if len(sections) < 2:
            continue
        hw = spline.half_width + max(0.0, protection_buffer_m)
        quads = []
        for k in range(len(sections) - 1):
            a_left, a_right = _edge_points(sections[k], hw)
            b_left, b_right = _edge_points(sections[k + 1], hw)
            quad = Polygon([a_left, a_right, b_right, b_left])
            if quad.is_empty or quad.area <= 0.0:
                continue
            quads.append((quad, k + 1))
        if not quads:
            continue

        r0, r1, c0, c1 = _window([q for q, _ in quads], shape, mpp)
        if r0 >= r1 or c0 >= c1:
            continue
        labels = rasterize(
            list(reversed(quads)),
            out_shape=(r1 - r0, c1 - c0),
            transform=base * Affine.translation(c0, r0),
            fill=0,
            dtype="int32",
        )
        rows, cols = np.nonzero(labels)
        if rows.size == 0:
            continue
        seg = labels[rows, cols] - 1
        rows = rows + r0
        cols = cols + c0
        free = owner[rows, cols] < 0
        contested += int((~free).sum())
        rows, cols, seg = rows[free], cols[free], seg[free]

        elev = np.empty(rows.shape, dtype=np.float64)
        xs = cols * mpp
        ys = rows * mpp
        for k in np.unique(seg):
            sel = seg == k
            a, b = sections[k], sections[k + 1]
            if segment_has_banking(a, b):
                elev[sel] = segment_surface(a, b, xs[sel], ys[sel], spline.half_width, spline.half_width)
            else:
                elev[sel] = 0.5 * (a.target_elevation + b.target_elevation)

        mask[rows, cols] = True
        owner[rows, cols] = spline.spline_id
        elevation[rows, cols] = elev

    protected = int(mask.sum())
    LOG.info("core ownership: %d pixels protected, %d contested", protected, contested)
    return CoreOwnership(mask=mask, owner=owner, elevation=elevation, protected_pixels=protected, contested_pixels=contested)


__all__ = [
    "CoreOwnership",
    "build_core_mask",
    "build_core_ownership",
    "pixel_transform",
    "usable_section",
]

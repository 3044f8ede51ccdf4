from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np
import shapely
from shapely.strtree import STRtree

from roadblend.blending.road_mask import CoreOwnership, usable_section
from roadblend.models import RoadNetwork

LOG = logging.getLogger("elevation_map")

SINGLE_SPLINE = "single_spline"
NETWORK = "network"
INTERPOLATION_MODES = (SINGLE_SPLINE, NETWORK)
MIN_WEIGHT_DIST_SQ = 0.01


@dataclass
class ElevationMap:
    elevation: np.ndarray
    owner: np.ndarray
    blend_range: np.ndarray
    core_pixels: int
    blend_pixels: int


@dataclass
class _SectionTable:
    x: np.ndarray
    y: np.ndarray
    elevation: np.ndarray
    spline_id: np.ndarray
    priority: np.ndarray
    blend_range: np.ndarray


def _section_table(network: RoadNetwork) -> _SectionTable:
    xs, ys, zs, ids, prio, ranges = [], [], [], [], [], []
    for spline in network.splines:
        for cs in spline.sections:
            if not usable_section(cs):
                continue
            xs.append(cs.center[0])
            ys.append(cs.center[1])
            zs.append(cs.target_elevation)
            ids.append(spline.spline_id)
            prio.append(spline.priority)
            ranges.append(spline.blend_range_m)
    return _SectionTable(
        x=np.asarray(xs, dtype=np.float64),
        y=np.asarray(ys, dtype=np.float64),
        elevation=np.asarray(zs, dtype=np.float64),
        spline_id=np.asarray(ids, dtype=np.int64),
        priority=np.asarray(prio, dtype=np.int64),
        blend_range=np.asarray(ranges, dtype=np.float64),
    )


def _idw(pairs: np.ndarray, d2: np.ndarray, values: np.ndarray, n: int) -> np.ndarray:
    w = 1.0 / np.maximum(d2, MIN_WEIGHT_DIST_SQ)
    num = np.bincount(pairs, weights=w * values, minlength=n)
    den = np.bincount(pairs, weights=w, minlength=n)
    out = np.full(n, np.nan, dtype=np.float64)
    ok = den > 0
    out[ok] = num[ok] / den[ok]
    return out


def _first_per_input(inputs: np.ndarray, order_keys: Tuple[np.ndarray, ...], n: int) -> np.ndarray:
    # np.lexsort sorts by the last key first
    order = np.lexsort(order_keys + (inputs,))
    _, first = np.unique(inputs[order], return_index=True)
    best = np.full(n, -1, dtype=np.int64)
    best[inputs[order][first]] = order[first]
    return best


def build_elevation_map(
    network: RoadNetwork,
    core: CoreOwnership,
    distance_field: np.ndarray,
    meters_per_pixel: float,
    mode: str = SINGLE_SPLINE,
) -> ElevationMap:
    """Per-pixel target elevation and owner for road cores and their shoulders.

    Core pixels copy the ownership result. Shoulder pixels near the core mask
    interpolate the section elevations by inverse distance, either from the
    nearest spline only or from every section in reach.
    """
    if mode not in INTERPOLATION_MODES:
        raise ValueError(f"interpolation_mode_unknown:{mode}")
    if distance_field.shape != core.owner.shape:
        raise ValueError("shape_mismatch")

    elevation = core.elevation.copy()
    owner = core.owner.copy()
    blend_range = np.zeros(owner.shape, dtype=np.float32)
    for spline in network.splines:
        blend_range[owner == spline.spline_id] = spline.blend_range_m
    core_pixels = int(core.mask.sum())

    table = _section_table(network)
    if table.x.size == 0:
        return ElevationMap(elevation, owner, blend_range, core_pixels, 0)

    max_half = max(s.half_width for s in network.splines)
    max_range = max(s.blend_range_m for s in network.splines)
    search = max_half + max_range
    rows, cols = np.nonzero((~core.mask) & (distance_field <= search))
    if rows.size == 0:
        return ElevationMap(elevation, owner, blend_range, core_pixels, 0)

    mpp = float(meters_per_pixel)
    px = cols * mpp
    py = rows * mpp
    pixels = shapely.points(px, py)
    tree = STRtree(shapely.points(table.x, table.y))
    n = rows.size

    (hit_in, hit_tree), hit_d = tree.query_nearest(pixels, max_distance=search, return_distance=True, all_matches=False)
    nearest = np.full(n, -1, dtype=np.int64)
    nearest_d = np.full(n, np.inf, dtype=np.float64)
    nearest[hit_in] = hit_tree
    nearest_d[hit_in] = hit_d

    pair_in, pair_tree = tree.query(pixels, predicate="dwithin", distance=search)
    d2 = (table.x[pair_tree] - px[pair_in]) ** 2 + (table.y[pair_tree] - py[pair_in]) ** 2

    if mode == SINGLE_SPLINE:
        has = nearest[pair_in] >= 0
        keep = has & (table.spline_id[pair_tree] == table.spline_id[np.maximum(nearest[pair_in], 0)])
        values = _idw(pair_in[keep], d2[keep], table.elevation[pair_tree[keep]], n)
        dominant = nearest
    else:
        values = _idw(pair_in, d2, table.elevation[pair_tree], n)
        dominant = np.full(n, -1, dtype=np.int64)
        if pair_in.size:
            best = _first_per_input(pair_in, (d2, -table.priority[pair_tree]), n)
            ok = best >= 0
            dominant[ok] = pair_tree[best[ok]]

    ok = (dominant >= 0) & np.isfinite(values)
    dom = np.maximum(dominant, 0)
    reach = max_half + table.blend_range[dom]
    ok &= nearest_d <= reach

    r, c = rows[ok], cols[ok]
    elevation[r, c] = values[ok]
    owner[r, c] = table.spline_id[dom[ok]]
    blend_range[r, c] = table.blend_range[dom[ok]]
    blend_pixels = int(ok.sum())
    LOG.info("elevation map: %d core pixels, %d shoulder pixels (%s)", core_pixels, blend_pixels, mode)
    return ElevationMap(elevation, owner, blend_range, core_pixels, blend_pixels)


__all__ = ["ElevationMap", "INTERPOLATION_MODES", "NETWORK", "SINGLE_SPLINE", "build_elevation_map"]

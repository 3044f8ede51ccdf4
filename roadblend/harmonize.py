from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, Union

import numpy as np

from roadblend._io import ensure_dir, load_yaml, new_run_id
from roadblend._report import junction_summary, write_run_card
from roadblend.banking.adapter import HarmonizedNetwork, adapt_junction_elevations
from roadblend.banking.priority import assign_junction_banking
from roadblend.banking.superelevation import apply_bank_angles
from roadblend.blending.distance_field import compute_distance_field
from roadblend.blending.elevation_map import ElevationMap, build_elevation_map
from roadblend.blending.post_smooth import post_smooth
from roadblend.blending.protected_blend import BlendStats, apply_protected_blending
from roadblend.blending.road_mask import CoreOwnership, build_core_mask, build_core_ownership
from roadblend.config import (
    apply_defaults,
    banking_params_from_config,
    get_params_hash,
    resolve_config,
    smoothing_params_from_config,
    taper_params_from_config,
)
from roadblend.junctions.detector import detect_junctions, exclude_junctions
from roadblend.junctions.harmonizer import harmonize_junction_elevations
from roadblend.models import Junction, RoadNetwork
from roadblend.network_io import dump_cross_sections, load_network, write_junctions_geojson

LOG = logging.getLogger("harmonize")


@dataclass
class BlendResult:
    heightmap: np.ndarray
    distance_field: np.ndarray
    core: CoreOwnership
    elevation_map: ElevationMap
    stats: BlendStats


def harmonize_network(
    network: RoadNetwork,
    cfg: Optional[Dict[str, Any]] = None,
    heightmap: Optional[np.ndarray] = None,
    meters_per_pixel: float = 1.0,
    exclude: Union[Iterable[int], Callable[[Junction], bool], None] = None,
) -> HarmonizedNetwork:
    """Detect junctions, settle junction elevations, assign and compute banking, then adapt.

    ``exclude`` takes junction ids or a predicate and overrides
    ``EXCLUDED_JUNCTION_IDS``; excluded junctions are reported but not
    harmonized. Dead ends taper toward ``heightmap`` when one is given. The
    input network is left untouched; every stage works on its own copy.
    """
    cfg = apply_defaults(cfg or {})
    radius = float(cfg["JUNCTION_DETECTION_RADIUS_M"])
    transition = float(cfg["JUNCTION_BLEND_DISTANCE_M"])
    banking = banking_params_from_config(cfg)

    junctions = detect_junctions(network, radius)
    exclude_junctions(junctions, exclude if exclude is not None else cfg["EXCLUDED_JUNCTION_IDS"])
    if not cfg["ENABLE_JUNCTION_HARMONIZATION"]:
        LOG.info("junction harmonization disabled, %d junctions reported only", len(junctions))
        plan = apply_bank_angles(assign_junction_banking(network, [], transition), banking)
        result = adapt_junction_elevations(plan)
        return HarmonizedNetwork(network=result.network, junctions=junctions, stats=result.stats)

    elevated = harmonize_junction_elevations(
        network,
        junctions,
        transition,
        taper_params_from_config(cfg),
        heightmap,
        meters_per_pixel,
    )
    plan = assign_junction_banking(elevated.network, elevated.junctions, transition)
    plan = apply_bank_angles(plan, banking)
    result = adapt_junction_elevations(plan)
    result.stats.update(elevated.stats)
    return result


def blend_terrain(
    heightmap: np.ndarray,
    harmonized: HarmonizedNetwork,
    meters_per_pixel: float,
    cfg: Optional[Dict[str, Any]] = None,
) -> BlendResult:
    cfg = apply_defaults(cfg or {})
    if heightmap.ndim != 2:
        raise ValueError("heightmap_not_2d")
    network = harmonized.network
    workers = int(cfg["WORKERS"]) or None
    shape = heightmap.shape

    core_mask = build_core_mask(network, shape, meters_per_pixel)
    core = build_core_ownership(network, shape, meters_per_pixel, float(cfg["PROTECTION_BUFFER_M"]))
    distance = compute_distance_field(core_mask | core.mask, meters_per_pixel, workers)
    emap = build_elevation_map(network, core, distance, meters_per_pixel, str(cfg["ELEVATION_INTERPOLATION"]))
    blended, stats = apply_protected_blending(heightmap, distance, emap, core, network, meters_per_pixel, workers)
    return BlendResult(heightmap=blended, distance_field=distance, core=core, elevation_map=emap, stats=stats)


def smooth_terrain(result: BlendResult, network: RoadNetwork, cfg: Optional[Dict[str, Any]] = None) -> np.ndarray:
    params = smoothing_params_from_config(apply_defaults(cfg or {}))
    return post_smooth(result.heightmap, result.distance_field, network, params)


def _read_heightmap(path: Path):
    import rasterio

    with rasterio.open(path) as ds:
        band = ds.read(1).astype(np.float32)
        profile = ds.profile.copy()
        mpp = abs(float(ds.transform.a))
    return band, profile, mpp


def _write_heightmap(path: Path, heightmap: np.ndarray, profile: Dict[str, Any]) -> None:
    import rasterio

    path.parent.mkdir(parents=True, exist_ok=True)
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=heightmap.shape[0],
        width=heightmap.shape[1],
        count=1,
        dtype="float32",
        crs=profile.get("crs"),
        transform=profile.get("transform"),
        nodata=profile.get("nodata"),
        compress="deflate",
    ) as dst:
        dst.write(heightmap.astype("float32"), 1)
        dst.set_band_description(1, "harmonized_elevation")


def main() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", default="", help="harmonization config yaml")
    ap.add_argument("--network", required=True, help="road network json")
    ap.add_argument("--heightmap", required=True, help="input heightmap GeoTIFF")
    ap.add_argument("--out-dir", default="", help="output directory (default runs/<run_id>)")
    ap.add_argument("--debug-image", action="store_true", help="write ownership debug png")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    network_path = Path(args.network)
    heightmap_path = Path(args.heightmap)
    for p in (network_path, heightmap_path):
        if not p.exists():
            LOG.error("missing input: %s", p)
            return 2

    out_dir = ensure_dir(Path(args.out_dir) if args.out_dir else Path("runs") / new_run_id())
    base_cfg = load_yaml(Path(args.config)) if args.config else {}
    try:
        cfg = resolve_config(base_cfg, out_dir)
    except (KeyError, ValueError) as exc:
        LOG.error("invalid config: %s", exc)
        return 2

    network = load_network(network_path, cfg)
    heightmap, profile, mpp = _read_heightmap(heightmap_path)
    LOG.info("heightmap %dx%d at %.3f m/px", heightmap.shape[1], heightmap.shape[0], mpp)

    harmonized = harmonize_network(network, cfg, heightmap, mpp)
    result = blend_terrain(heightmap, harmonized, mpp, cfg)
    final = smooth_terrain(result, harmonized.network, cfg)

    _write_heightmap(out_dir / "heightmap.tif", final, profile)
    write_junctions_geojson(out_dir / "junctions.geojson", harmonized.junctions)
    dump_cross_sections(out_dir / "cross_sections.json", harmonized.network)
    if args.debug_image:
        from roadblend.debug_image import write_debug_image

        write_debug_image(out_dir / "ownership.png", result.elevation_map.owner, harmonized.junctions, mpp)

    write_run_card(
        out_dir / "run_card.md",
        {
            "network": str(network_path),
            "heightmap": str(heightmap_path),
            "meters_per_pixel": mpp,
            "params_hash": get_params_hash(cfg),
            "splines": len(harmonized.network.splines),
            "cross_sections": harmonized.network.section_count,
            "junctions": junction_summary(harmonized.junctions),
            "banking": harmonized.stats,
            "blend": {
                "modified_pixels": result.stats.modified_pixels,
                "core_pixels": result.stats.core_pixels,
                "shoulder_pixels": result.stats.shoulder_pixels,
                "protected_pixels": result.stats.protected_pixels,
                "contested_pixels": result.core.contested_pixels,
            },
        },
    )
    LOG.info("outputs written to %s", out_dir)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import hashlib
import json
from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List

import yaml

from roadblend.banking.superelevation import banking_preset
from roadblend.blending.blend_functions import BLEND_FUNCTIONS
from roadblend.blending.elevation_map import INTERPOLATION_MODES
from roadblend.blending.post_smooth import SmoothingParams
from roadblend.junctions.harmonizer import TaperParams
from roadblend.models import BankingParams


REQUIRED_KEYS = [
    "JUNCTION_DETECTION_RADIUS_M",
    "JUNCTION_BLEND_DISTANCE_M",
    "ENABLE_JUNCTION_HARMONIZATION",
    "ENDPOINT_TAPER",
    "EXCLUDED_JUNCTION_IDS",
    "ROAD_WIDTH_M",
    "TERRAIN_AFFECTED_RANGE_M",
    "BLEND_FUNCTION",
    "PROTECTION_BUFFER_M",
    "ELEVATION_INTERPOLATION",
    "BANKING",
    "POST_SMOOTHING",
    "WORKERS",
]

DEFAULTS: Dict[str, Any] = {
    "JUNCTION_DETECTION_RADIUS_M": 20.0,
    "JUNCTION_BLEND_DISTANCE_M": 30.0,
    "ENABLE_JUNCTION_HARMONIZATION": True,
    "ENDPOINT_TAPER": {"enabled": True},
    "EXCLUDED_JUNCTION_IDS": [],
    "ROAD_WIDTH_M": 8.0,
    "TERRAIN_AFFECTED_RANGE_M": 15.0,
    "BLEND_FUNCTION": "cosine",
    "PROTECTION_BUFFER_M": 0.0,
    "ELEVATION_INTERPOLATION": "single_spline",
    "BANKING": {"enabled": True},
    "POST_SMOOTHING": {"enabled": False},
    "WORKERS": 0,
}


def _normalize(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _normalize(obj[k]) for k in sorted(obj.keys())}
    if isinstance(obj, list):
        return [_normalize(v) for v in obj]
    return obj


def get_params_hash(cfg: Dict[str, Any]) -> str:
    payload = _normalize(dict(cfg))
    raw = json.dumps(payload, sort_keys=True, ensure_ascii=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha1(raw).hexdigest()


def _write_resolved(run_dir: Path, cfg: Dict[str, Any]) -> None:
    run_dir.mkdir(parents=True, exist_ok=True)
    out_path = run_dir / "resolved_config.yaml"
    with out_path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(cfg, f, sort_keys=False, allow_unicode=False)
    params_hash = get_params_hash(cfg)
    (run_dir / "params_hash.txt").write_text(params_hash + "\n", encoding="utf-8")


def _assert_required(cfg: Dict[str, Any], required: Iterable[str]) -> None:
    missing = [k for k in required if k not in cfg]
    if missing:
        raise KeyError(f"Missing required keys: {missing}")


def _known_fields(cls, data: Dict[str, Any], label: str) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    unknown = sorted(k for k in data if k not in names)
    if unknown:
        raise ValueError(f"{label}: unknown keys {unknown}")
    return dict(data)


def banking_params_from_config(cfg: Dict[str, Any]) -> BankingParams:
    """``BANKING`` is a preset name, a mapping, or a mapping with a ``preset`` base."""
    raw = cfg.get("BANKING")
    if raw is None or raw is False:
        return BankingParams(enabled=False)
    if isinstance(raw, str):
        return banking_preset(raw)
    if not isinstance(raw, dict):
        raise ValueError(f"BANKING must be a preset name or mapping, got {type(raw).__name__}")
    data = dict(raw)
    preset = data.pop("preset", None)
    base = banking_preset(preset) if preset else BankingParams()
    return replace(base, **_known_fields(BankingParams, data, "BANKING"))


def smoothing_params_from_config(cfg: Dict[str, Any]) -> SmoothingParams:
    raw = cfg.get("POST_SMOOTHING") or {}
    if not isinstance(raw, dict):
        raise ValueError("POST_SMOOTHING must be a mapping")
    return SmoothingParams(**_known_fields(SmoothingParams, raw, "POST_SMOOTHING"))


def taper_params_from_config(cfg: Dict[str, Any]) -> TaperParams:
    raw = cfg.get("ENDPOINT_TAPER")
    if raw is None or raw is False:
        return TaperParams(enabled=False)
    if not isinstance(raw, dict):
        raise ValueError("ENDPOINT_TAPER must be a mapping")
    return TaperParams(**_known_fields(TaperParams, raw, "ENDPOINT_TAPER"))


def validate_config(cfg: Dict[str, Any]) -> List[str]:
    errors = []
    if float(cfg["JUNCTION_DETECTION_RADIUS_M"]) <= 0:
        errors.append("JUNCTION_DETECTION_RADIUS_M must be greater than 0")
    if float(cfg["JUNCTION_BLEND_DISTANCE_M"]) <= 0:
        errors.append("JUNCTION_BLEND_DISTANCE_M must be greater than 0")
    if float(cfg["ROAD_WIDTH_M"]) <= 0:
        errors.append("ROAD_WIDTH_M must be greater than 0")
    if float(cfg["TERRAIN_AFFECTED_RANGE_M"]) < 0:
        errors.append("TERRAIN_AFFECTED_RANGE_M must not be negative")
    if float(cfg["PROTECTION_BUFFER_M"]) < 0:
        errors.append("PROTECTION_BUFFER_M must not be negative")
    if cfg["BLEND_FUNCTION"] not in BLEND_FUNCTIONS:
        errors.append(f"BLEND_FUNCTION must be one of {list(BLEND_FUNCTIONS)}")
    if cfg["ELEVATION_INTERPOLATION"] not in INTERPOLATION_MODES:
        errors.append(f"ELEVATION_INTERPOLATION must be one of {list(INTERPOLATION_MODES)}")
    if int(cfg["WORKERS"]) < 0:
        errors.append("WORKERS must not be negative")
    try:
        errors.extend(f"BANKING: {e}" for e in banking_params_from_config(cfg).validate())
    except (KeyError, ValueError, TypeError) as exc:
        errors.append(f"BANKING: {exc}")
    if not isinstance(cfg["EXCLUDED_JUNCTION_IDS"], list):
        errors.append("EXCLUDED_JUNCTION_IDS must be a list of junction ids")
    try:
        errors.extend(f"ENDPOINT_TAPER: {e}" for e in taper_params_from_config(cfg).validate())
    except (ValueError, TypeError) as exc:
        errors.append(f"ENDPOINT_TAPER: {exc}")
    try:
        errors.extend(f"POST_SMOOTHING: {e}" for e in smoothing_params_from_config(cfg).validate())
    except (ValueError, TypeError) as exc:
        errors.append(f"POST_SMOOTHING: {exc}")
    return errors


def apply_defaults(base_cfg: Dict[str, Any]) -> Dict[str, Any]:
    cfg = dict(base_cfg)
    for k, v in DEFAULTS.items():
        if k not in cfg:
            cfg[k] = v
    return cfg


def resolve_config(base_cfg: Dict[str, Any], run_dir: Path) -> Dict[str, Any]:
    cfg = apply_defaults(base_cfg)
    _assert_required(cfg, REQUIRED_KEYS)
    errors = validate_config(cfg)
    if errors:
        raise ValueError("; ".join(errors))
    _write_resolved(run_dir, cfg)
    return cfg


__all__ = [
    "DEFAULTS",
    "REQUIRED_KEYS",
    "apply_defaults",
    "banking_params_from_config",
    "get_params_hash",
    "resolve_config",
    "smoothing_params_from_config",
    "taper_params_from_config",
    "validate_config",
]

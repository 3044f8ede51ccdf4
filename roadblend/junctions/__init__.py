from __future__ import annotations

from .detector import (
    DEFAULT_DETECTION_RADIUS_M,
    classify_junction,
    detect_junctions,
    exclude_junctions,
    find_junction,
    junction_centroid,
)
from .harmonizer import JunctionElevations, TaperParams, harmonize_junction_elevations
from .roundabout import RoundaboutRing, detect_roundabout_junctions, find_rings

__all__ = [
    "DEFAULT_DETECTION_RADIUS_M",
    "JunctionElevations",
    "RoundaboutRing",
    "TaperParams",
    "classify_junction",
    "detect_junctions",
    "detect_roundabout_junctions",
    "exclude_junctions",
    "find_junction",
    "find_rings",
    "harmonize_junction_elevations",
    "junction_centroid",
]

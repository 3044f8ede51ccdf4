from __future__ import annotations

import colorsys
from pathlib import Path
from typing import List, Tuple

import numpy as np
from PIL import Image, ImageDraw

from roadblend.models import MIDSPLINE_CROSSING, ROUNDABOUT, Junction

MARKER_COLORS = {
    ROUNDABOUT: (255, 140, 0),
    MIDSPLINE_CROSSING: (255, 0, 255),
}
DEFAULT_MARKER = (255, 255, 255)
MARKER_RADIUS_PX = 4


def spline_color(spline_id: int) -> Tuple[int, int, int]:
    # golden-ratio hue stepping keeps neighbouring ids apart
    h = (spline_id * 0.618033988749895) % 1.0
    r, g, b = colorsys.hsv_to_rgb(h, 0.65, 0.95)
    return int(r * 255), int(g * 255), int(b * 255)


def ownership_rgb(owner: np.ndarray) -> np.ndarray:
    rgb = np.zeros(owner.shape + (3,), dtype=np.uint8)
    for sid in np.unique(owner):
        if sid < 0:
            continue
        rgb[owner == sid] = spline_color(int(sid))
    return rgb


def render_debug_image(owner: np.ndarray, junctions: List[Junction], meters_per_pixel: float) -> Image.Image:
    img = Image.fromarray(ownership_rgb(owner))
    draw = ImageDraw.Draw(img)
    r = MARKER_RADIUS_PX
    for j in junctions:
        col = j.position[0] / meters_per_pixel
        row = j.position[1] / meters_per_pixel
        color = MARKER_COLORS.get(j.junction_type, DEFAULT_MARKER)
        draw.ellipse([col - r, row - r, col + r, row + r], outline=color, width=2)
    return img


def write_debug_image(path: Path, owner: np.ndarray, junctions: List[Junction], meters_per_pixel: float) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    render_debug_image(owner, junctions, meters_per_pixel).save(path)


__all__ = ["ownership_rgb", "render_debug_image", "spline_color", "write_debug_image"]

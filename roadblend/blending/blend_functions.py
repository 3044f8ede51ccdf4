from __future__ import annotations

import numpy as np

LINEAR = "linear"
COSINE = "cosine"
CUBIC = "cubic"
QUINTIC = "quintic"
BLEND_FUNCTIONS = (LINEAR, COSINE, CUBIC, QUINTIC)


def smoothstep(t):
    return t * t * (3.0 - 2.0 * t)


def smootherstep(t):
    # zero first and second derivative at both ends
    return t * t * t * (t * (t * 6.0 - 15.0) + 10.0)


def cosine_step(t):
    return 0.5 - 0.5 * np.cos(np.pi * t)


def apply_blend(t, kind: str = COSINE):
    """Map ``t`` in [0, 1] through the named blend curve.

    Works on scalars and numpy arrays; ``t`` is clamped first.
    """
    t = np.clip(t, 0.0, 1.0)
    if kind == LINEAR:
        out = t
    elif kind == COSINE:
        out = cosine_step(t)
    elif kind == CUBIC:
        out = smoothstep(t)
    elif kind == QUINTIC:
        out = smootherstep(t)
    else:
        raise ValueError(f"blend_function_unknown:{kind}")
    if np.ndim(out) == 0:
        return float(out)
    return out


__all__ = [
    "BLEND_FUNCTIONS",
    "COSINE",
    "CUBIC",
    "LINEAR",
    "QUINTIC",
    "apply_blend",
    "cosine_step",
    "smootherstep",
    "smoothstep",
]

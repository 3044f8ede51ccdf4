from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from roadblend.blending._chunks import run_chunked

LOG = logging.getLogger("distance_field")

INF = 1e12


def edt_rows(f: np.ndarray) -> np.ndarray:
    """Squared distance transform along axis 1 of ``f`` (Felzenszwalb & Huttenlocher).

    ``f`` holds squared distances (0 on features, ``INF`` elsewhere). Every
    row is an independent problem; the lower envelope of the parabolas rooted
    at each sample is built for all rows together, one column at a time.
    """
    f = np.asarray(f, dtype=np.float64)
    h, n = f.shape
    out = np.empty((h, n), dtype=np.float64)
    if h == 0 or n == 0:
        return out
    rows = np.arange(h)
    v = np.zeros((h, n), dtype=np.int64)
    z = np.empty((h, n + 1), dtype=np.float64)
    z[:, 0] = -np.inf
    z[:, 1] = np.inf
    k = np.zeros(h, dtype=np.int64)
    s = np.zeros(h, dtype=np.float64)

    for q in range(1, n):
        fq = f[:, q] + float(q * q)
        active = np.ones(h, dtype=bool)
        while True:
            p = v[rows, k]
            cand = (fq - (f[rows, p] + p * p)) / (2.0 * (q - p))
            # z[:, 0] is -inf, so every row settles before k drops below 0
            settled = active & (cand > z[rows, k])
            s[settled] = cand[settled]
            active &= ~settled
            if not active.any():
                break
            k[active] -= 1
        k += 1
        v[rows, k] = q
        z[rows, k] = s
        z[rows, k + 1] = np.inf

    k[:] = 0
    for q in range(n):
        while True:
            step = z[rows, k + 1] < q
            if not step.any():
                break
            k[step] += 1
        p = v[rows, k]
        out[:, q] = (q - p) * (q - p) + f[rows, p]
    return out


def edt_1d(f: np.ndarray) -> np.ndarray:
    return edt_rows(np.asarray(f, dtype=np.float64)[None, :])[0]


def compute_distance_field(mask: np.ndarray, meters_per_pixel: float, workers: Optional[int] = None) -> np.ndarray:
    """Euclidean distance in meters from every cell to the nearest set cell of ``mask``."""
    mask = np.asarray(mask)
    if mask.ndim != 2:
        raise ValueError("mask_not_2d")
    h, w = mask.shape
    sq = np.where(mask.astype(bool), 0.0, INF).astype(np.float64)
    if not mask.any():
        LOG.debug("distance field: empty mask")

    def _rows(r0: int, r1: int) -> None:
        sq[r0:r1, :] = edt_rows(sq[r0:r1, :])

    def _cols(c0: int, c1: int) -> None:
        sq[:, c0:c1] = edt_rows(sq[:, c0:c1].T).T

    # column pass starts only after every row is finished
    run_chunked(h, _rows, workers)
    run_chunked(w, _cols, workers)
    return np.sqrt(sq) * float(meters_per_pixel)


__all__ = ["INF", "compute_distance_field", "edt_1d", "edt_rows"]

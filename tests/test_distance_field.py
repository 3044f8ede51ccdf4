import numpy as np
import pytest

from roadblend.blending.blend_functions import BLEND_FUNCTIONS, apply_blend
from roadblend.blending.distance_field import INF, compute_distance_field, edt_1d, edt_rows


def test_edt_1d_squared_distances():
    f = np.array([INF, 0.0, INF, INF, 0.0, INF])
    assert np.allclose(edt_1d(f), [1.0, 0.0, 1.0, 1.0, 0.0, 1.0])
    f = np.array([0.0, INF, INF, INF])
    assert np.allclose(edt_1d(f), [0.0, 1.0, 4.0, 9.0])


def test_distance_field_matches_brute_force():
    rng = np.random.default_rng(3)
    mask = rng.random((7, 9)) > 0.85
    mask[3, 4] = True
    got = compute_distance_field(mask, 0.5, workers=1)
    pts = np.argwhere(mask)
    for r in range(mask.shape[0]):
        for c in range(mask.shape[1]):
            want = np.min(np.hypot(pts[:, 0] - r, pts[:, 1] - c)) * 0.5
            assert got[r, c] == pytest.approx(want)


def test_distance_field_matches_scipy():
    from scipy import ndimage as ndi

    rng = np.random.default_rng(11)
    mask = rng.random((64, 48)) > 0.97
    mask[0, 0] = True
    got = compute_distance_field(mask, 2.0, workers=4)
    want = ndi.distance_transform_edt(~mask) * 2.0
    assert np.allclose(got, want)
    assert np.all(got[mask] == 0.0)


def test_distance_field_worker_count_does_not_change_result():
    mask = np.zeros((30, 40), dtype=bool)
    mask[10, 5:35] = True
    assert np.array_equal(compute_distance_field(mask, 1.0, workers=1), compute_distance_field(mask, 1.0, workers=3))


def test_distance_field_rejects_non_2d():
    with pytest.raises(ValueError):
        compute_distance_field(np.zeros((2, 2, 2), dtype=bool), 1.0)


def test_blend_curves_monotonic_and_bounded():
    t = np.linspace(0.0, 1.0, 101)
    for kind in BLEND_FUNCTIONS:
        y = apply_blend(t, kind)
        assert y[0] == pytest.approx(0.0)
        assert y[-1] == pytest.approx(1.0)
        assert np.all(np.diff(y) >= -1e-12)
    assert isinstance(apply_blend(0.5, "cosine"), float)
    assert apply_blend(2.0, "linear") == 1.0
    with pytest.raises(ValueError):
        apply_blend(0.5, "sigmoid")


def test_edt_rows_solves_each_row_independently():
    rng = np.random.default_rng(3)
    f = np.where(rng.random((9, 23)) < 0.15, 0.0, INF)
    f[4, :] = INF
    f[6, :] = 0.0
    out = edt_rows(f)
    for r in range(f.shape[0]):
        np.testing.assert_array_equal(out[r], edt_1d(f[r]))
    assert (out[4] >= INF).all()
    assert (out[6] == 0.0).all()
    assert edt_rows(np.zeros((0, 5))).shape == (0, 5)

import numpy as np
import pytest

from roadblend.banking.adapter import HarmonizedNetwork
from roadblend.blending.blend_functions import BLEND_FUNCTIONS
from roadblend.blending.elevation_map import NETWORK, build_elevation_map
from roadblend.blending.protected_blend import apply_protected_blending, owner_distance_field
from roadblend.harmonize import blend_terrain, harmonize_network
from roadblend.models import MIDSPLINE_CROSSING, RoadNetwork

from conftest import straight_spline


def _plain(network):
    return HarmonizedNetwork(network=network, junctions=[], stats={})


def test_crossing_roads_keep_their_core(crossing_network):
    cfg = {"JUNCTION_DETECTION_RADIUS_M": 5.0, "WORKERS": 2}
    harmonized = harmonize_network(crossing_network, cfg)
    crossings = [j for j in harmonized.junctions if j.junction_type == MIDSPLINE_CROSSING]
    assert len(crossings) == 1
    assert crossings[0].position == pytest.approx((50.0, 50.0))

    terrain = np.zeros((100, 100), dtype=np.float32)
    result = blend_terrain(terrain, harmonized, 1.0, cfg)
    core = result.core.mask
    assert core.any()
    assert np.allclose(result.heightmap[core], result.elevation_map.elevation[core])
    assert np.allclose(result.heightmap[50, 20:80], 5.0)


def test_neighbour_shoulder_never_enters_core():
    net = RoadNetwork(
        [
            straight_spline(0, (0.0, 50.0), (99.0, 50.0), elevation=10.0, priority=1, width=6.0),
            straight_spline(1, (0.0, 58.0), (99.0, 58.0), elevation=0.0, priority=0, width=6.0),
        ]
    )
    terrain = np.full((100, 100), 5.0, dtype=np.float32)
    result = blend_terrain(terrain, _plain(net), 1.0, {"WORKERS": 1})
    d_owner = owner_distance_field(result.elevation_map, net, 1.0)
    road0 = (result.elevation_map.owner == 0) & (d_owner <= 3.0)
    assert road0.any()
    assert np.all(result.heightmap[road0] == 10.0)
    assert np.all(result.heightmap[result.core.mask & (result.core.owner == 1)] == 0.0)


@pytest.mark.parametrize("curve", BLEND_FUNCTIONS)
def test_shoulder_is_monotonic(curve):
    spline = straight_spline(0, (0.0, 50.0), (99.0, 50.0), elevation=10.0, width=6.0, blend_range=15.0)
    spline.blend_function = curve
    net = RoadNetwork([spline])
    terrain = np.zeros((100, 100), dtype=np.float32)
    result = blend_terrain(terrain, _plain(net), 1.0, {"WORKERS": 1})
    profile = result.heightmap[50:80, 50].astype(np.float64)
    assert profile[0] == 10.0
    assert profile[3] == 10.0
    assert np.all(np.diff(profile) <= 1e-6)
    assert profile[18] == pytest.approx(0.0, abs=1e-6)
    assert np.all(profile[19:] == 0.0)
    # both sides of the road see the same shoulder
    assert np.allclose(result.heightmap[50:30:-1, 50], profile[:20], atol=1e-5)


def test_blend_stats_and_untouched_far_terrain():
    net = RoadNetwork([straight_spline(0, (0.0, 20.0), (79.0, 20.0), elevation=3.0, width=6.0)])
    terrain = np.ones((80, 80), dtype=np.float32)
    result = blend_terrain(terrain, _plain(net), 1.0, {"WORKERS": 1})
    assert result.stats.modified_pixels > 0
    assert result.stats.core_pixels >= result.stats.protected_pixels > 0
    assert result.stats.shoulder_pixels > 0
    assert np.all(result.heightmap[60:, :] == 1.0)
    # input heightmap is not modified in place
    assert np.all(terrain == 1.0)


def test_unusable_network_leaves_heightmap_unchanged():
    net = RoadNetwork([straight_spline(0, (0.0, 20.0), (79.0, 20.0), elevation=float("inf"))])
    terrain = np.random.default_rng(0).random((40, 80)).astype(np.float32)
    result = blend_terrain(terrain, _plain(net), 1.0, {"WORKERS": 1})
    assert np.array_equal(result.heightmap, terrain)
    assert result.stats.modified_pixels == 0


def test_network_interpolation_mode():
    net = RoadNetwork(
        [
            straight_spline(0, (0.0, 30.0), (79.0, 30.0), elevation=10.0, priority=2, width=6.0),
            straight_spline(1, (0.0, 42.0), (79.0, 42.0), elevation=4.0, priority=0, width=6.0),
        ]
    )
    terrain = np.zeros((80, 80), dtype=np.float32)
    single = blend_terrain(terrain, _plain(net), 1.0, {"WORKERS": 1})
    mixed = blend_terrain(terrain, _plain(net), 1.0, {"WORKERS": 1, "ELEVATION_INTERPOLATION": NETWORK})
    # the pixel between both roads is owned by the higher priority road
    assert mixed.elevation_map.owner[36, 40] == 0
    assert 4.0 < mixed.elevation_map.elevation[36, 40] < 10.0
    assert single.elevation_map.elevation[36, 40] in (np.float32(10.0), np.float32(4.0))


def test_shape_mismatch_raises():
    net = RoadNetwork([straight_spline(0, (0.0, 20.0), (39.0, 20.0))])
    result = blend_terrain(np.zeros((40, 40), dtype=np.float32), _plain(net), 1.0, {"WORKERS": 1})
    with pytest.raises(ValueError):
        apply_protected_blending(
            np.zeros((10, 10), dtype=np.float32),
            result.distance_field,
            result.elevation_map,
            result.core,
            net,
            1.0,
        )
    with pytest.raises(ValueError):
        build_elevation_map(net, result.core, np.zeros((5, 5)), 1.0)
    with pytest.raises(ValueError):
        build_elevation_map(net, result.core, result.distance_field, 1.0, mode="kriging")

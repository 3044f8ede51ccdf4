import math

import numpy as np
import pytest

from roadblend.junctions import TaperParams, detect_junctions, harmonize_junction_elevations
from roadblend.junctions.harmonizer import (
    approach_angle_deg,
    crossing_elevation,
    junction_elevation,
    local_slope,
    t_junction_elevation,
)
from roadblend.models import CROSSROADS, MIDSPLINE_CROSSING, T_JUNCTION, Y_JUNCTION, RoadNetwork

from conftest import straight_sections, straight_spline


def _first(junctions, kind):
    return next(j for j in junctions if j.junction_type == kind)


def _sloped_t_network():
    primary = straight_spline(0, (0.0, 0.0), (100.0, 0.0), priority=5, spacing=2.0)
    for cs in primary.sections:
        cs.target_elevation = 0.1 * cs.center[0]
    side = straight_spline(1, (51.0, 3.0), (51.0, 60.0), elevation=20.0, priority=3)
    return RoadNetwork([primary, side])


def test_local_slope_uses_neighbouring_sections():
    sections = straight_sections((0.0, 0.0), (20.0, 0.0))
    for cs in sections:
        cs.target_elevation = 0.05 * cs.center[0]
    assert local_slope(sections, 10) == pytest.approx(0.05)
    assert local_slope(sections[:1], 0) == 0.0


def test_t_junction_follows_primary_grade():
    net = _sloped_t_network()
    j = _first(detect_junctions(net, 20.0), T_JUNCTION)
    primary = [c for c in j.contributors if c.spline_id == 0][0]
    base = net.section(primary.ref)
    along = 51.0 - base.center[0]
    assert t_junction_elevation(net, j) == pytest.approx(base.target_elevation + 0.1 * along)


def test_t_junction_small_difference_is_priority_weighted():
    net = RoadNetwork(
        [
            straight_spline(0, (0.0, 0.0), (100.0, 0.0), elevation=10.0, priority=4),
            straight_spline(1, (50.0, 2.0), (50.0, 60.0), elevation=10.3, priority=1),
        ]
    )
    j = _first(detect_junctions(net, 20.0), T_JUNCTION)
    assert t_junction_elevation(net, j) == pytest.approx((10.0 * 4 + 10.3 * 1) / 5)


def test_t_junction_ramps_only_the_terminating_road():
    net = _sloped_t_network()
    junctions = detect_junctions(net, 20.0)
    out = harmonize_junction_elevations(net, junctions, 30.0)
    j = _first(out.junctions, T_JUNCTION)
    side = out.network.spline(1).sections
    assert side[0].target_elevation == pytest.approx(j.harmonized_elevation)
    assert side[45].target_elevation == 20.0
    values = [cs.target_elevation for cs in side[:31]]
    assert all(a <= b + 1e-9 for a, b in zip(values, values[1:]))
    before = [cs.target_elevation for cs in net.spline(0).sections]
    assert [cs.target_elevation for cs in out.network.spline(0).sections] == before
    assert out.stats["propagated_sections"] > 0
    # input untouched
    assert net.spline(1).sections[0].target_elevation == 20.0
    assert math.isnan(junctions[0].harmonized_elevation)


def test_equal_priority_through_pair_sets_the_elevation(three_way_network):
    junctions = detect_junctions(three_way_network, 20.0)
    j = _first(junctions, CROSSROADS)
    starts = {c.spline_id: c for c in j.contributors}
    assert approach_angle_deg(three_way_network, starts[0], starts[1]) == pytest.approx(180.0)
    assert approach_angle_deg(three_way_network, starts[0], starts[2]) == pytest.approx(90.0)
    assert junction_elevation(three_way_network, j) == pytest.approx(10.5)

    out = harmonize_junction_elevations(three_way_network, junctions, 30.0)
    for sid in (0, 1, 2):
        assert out.network.spline(sid).sections[0].target_elevation == pytest.approx(10.5)


def test_longer_road_wins_between_two_equal_roads():
    net = RoadNetwork(
        [
            straight_spline(0, (0.0, 0.0), (-100.0, 0.0), elevation=10.0),
            straight_spline(1, (1.0, 0.0), (30.0, 0.0), elevation=12.0),
        ]
    )
    junctions = detect_junctions(net, 20.0)
    j = _first(junctions, Y_JUNCTION)
    assert junction_elevation(net, j) == pytest.approx(10.0)
    out = harmonize_junction_elevations(net, junctions, 20.0)
    assert out.network.spline(1).sections[0].target_elevation == pytest.approx(10.0)
    assert out.network.spline(0).sections[0].target_elevation == pytest.approx(10.0)


def test_crossing_weights_by_squared_priority_and_spreads_both_ways():
    net = RoadNetwork(
        [
            straight_spline(0, (10.0, 50.0), (90.0, 50.0), elevation=5.0, priority=3),
            straight_spline(1, (50.0, 10.0), (50.0, 90.0), elevation=7.0, priority=1),
        ]
    )
    junctions = detect_junctions(net, 5.0)
    j = _first(junctions, MIDSPLINE_CROSSING)
    assert crossing_elevation(net, j) == pytest.approx((5.0 * 9 + 7.0 * 1) / 10)

    out = harmonize_junction_elevations(net, junctions, 20.0)
    cross = out.network.spline(1).sections
    assert cross[40].target_elevation == pytest.approx(5.2)
    assert cross[35].target_elevation == pytest.approx(cross[45].target_elevation)
    assert 5.2 < cross[35].target_elevation < 7.0
    assert cross[5].target_elevation == 7.0


def test_dead_end_tapers_toward_terrain():
    net = RoadNetwork([straight_spline(0, (10.0, 50.0), (110.0, 50.0), elevation=10.0)])
    terrain = np.full((120, 120), 2.0)
    junctions = detect_junctions(net, 20.0)

    out = harmonize_junction_elevations(net, junctions, 30.0, TaperParams(), terrain, 1.0)
    sections = out.network.spline(0).sections
    assert sections[0].target_elevation == pytest.approx(10.0 * 0.7 + 2.0 * 0.3)
    assert sections[-1].target_elevation == pytest.approx(7.6)
    assert sections[50].target_elevation == 10.0
    values = [cs.target_elevation for cs in sections[:31]]
    assert all(a <= b + 1e-9 for a, b in zip(values, values[1:]))
    assert out.stats["tapered_sections"] > 0

    untouched = harmonize_junction_elevations(net, junctions, 30.0, TaperParams(), None, 1.0)
    assert all(cs.target_elevation == 10.0 for cs in untouched.network.spline(0).sections)
    off = harmonize_junction_elevations(net, junctions, 30.0, TaperParams(enabled=False), terrain, 1.0)
    assert off.stats["tapered_sections"] == 0


def test_excluded_junction_keeps_its_roads(three_way_network):
    junctions = detect_junctions(three_way_network, 20.0)
    _first(junctions, CROSSROADS).is_excluded = True
    out = harmonize_junction_elevations(three_way_network, junctions, 30.0)
    assert math.isnan(_first(out.junctions, CROSSROADS).harmonized_elevation)
    assert [out.network.spline(sid).sections[0].target_elevation for sid in (0, 1, 2)] == [10.0, 11.0, 12.0]
    assert out.stats["harmonized_sections"] == 0

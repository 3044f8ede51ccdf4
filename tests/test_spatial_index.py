import pytest

from roadblend.models import RoadNetwork
from roadblend.spatial_index import CrossSectionIndex, SpatialGrid
from roadblend.union_find import UnionFind

from conftest import straight_spline


def test_grid_query_returns_candidates_from_overlapping_cells():
    grid = SpatialGrid(10.0)
    grid.insert((1.0, 1.0), 0)
    grid.insert((12.0, 1.0), 1)
    grid.insert((55.0, 55.0), 2)
    got = set(grid.query_radius((5.0, 5.0), 8.0))
    assert {0, 1} <= got
    assert 2 not in got
    assert len(grid) == 3


def test_grid_handles_negative_coordinates():
    grid = SpatialGrid(5.0)
    grid.insert((-0.5, -0.5), 7)
    assert grid.query_radius((0.5, 0.5), 1.5) == [7]


def test_grid_rejects_bad_cell_size():
    with pytest.raises(ValueError):
        SpatialGrid(0.0)


def test_section_index_exact_distance_and_order():
    net = RoadNetwork([straight_spline(3, (0.0, 0.0), (10.0, 0.0))])
    index = CrossSectionIndex(net, cell_size=4.0)
    hits = index.within((2.2, 0.0), 1.5)
    assert [ref for ref, _d in hits] == [(3, 2), (3, 3), (3, 1)]
    assert all(d <= 1.5 for _ref, d in hits)
    assert index.within((50.0, 50.0), 5.0) == []


def test_union_find_merges_and_groups():
    uf = UnionFind(5)
    assert uf.union(0, 1)
    assert uf.union(1, 2)
    assert not uf.union(0, 2)
    assert uf.find(0) == uf.find(2)
    assert uf.find(0) != uf.find(3)
    groups = sorted(sorted(g) for g in uf.groups().values())
    assert groups == [[0, 1, 2], [3], [4]]


def test_union_find_long_chain():
    n = 1000
    uf = UnionFind(n)
    for i in range(n - 1):
        uf.union(i, i + 1)
    root = uf.find(0)
    assert all(uf.find(i) == root for i in range(n))

import json

import numpy as np
import pytest

from roadblend import harmonize
from roadblend.harmonize import harmonize_network
from roadblend.models import ADAPT_TO_HIGHER_PRIORITY, NORMAL, T_JUNCTION, RoadNetwork
from roadblend.network_io import network_to_dict

from conftest import straight_spline


def test_disabled_harmonization_reports_but_keeps_elevations(t_network):
    out = harmonize_network(t_network, {"ENABLE_JUNCTION_HARMONIZATION": False})
    assert out.junctions
    low = out.network.spline(1)
    assert low.sections[0].target_elevation == 12.0
    assert all(cs.banking_behavior == NORMAL for _ref, cs in out.network.iter_sections())


def test_enabled_harmonization_adapts(t_network):
    out = harmonize_network(t_network, {})
    low = out.network.spline(1)
    assert low.sections[0].banking_behavior == ADAPT_TO_HIGHER_PRIORITY
    assert low.sections[0].target_elevation == pytest.approx(10.0)
    assert t_network.spline(1).sections[0].target_elevation == 12.0
    assert out.network.spline(0).sections[50].left_edge_elevation == pytest.approx(10.0)


def test_tie_junction_leaves_no_step_for_side_road():
    net = RoadNetwork(
        [
            straight_spline(0, (0.0, 0.0), (-50.0, 0.0), elevation=10.0, priority=5),
            straight_spline(1, (1.0, 0.0), (50.0, 0.0), elevation=10.0, priority=5),
            straight_spline(2, (0.0, 1.0), (0.0, 50.0), elevation=14.0, priority=3),
        ]
    )
    out = harmonize_network(net, {})
    a, b, side = (out.network.spline(sid).sections[0] for sid in (0, 1, 2))
    assert side.banking_behavior == ADAPT_TO_HIGHER_PRIORITY
    assert abs(side.target_elevation - a.target_elevation) < 0.05
    assert abs(a.target_elevation - b.target_elevation) < 0.05
    assert out.network.spline(2).sections[-1].target_elevation == 14.0


def test_excluded_junction_ids_skip_harmonization(t_network):
    t_id = next(j.junction_id for j in harmonize_network(t_network, {}).junctions if j.junction_type == T_JUNCTION)
    for out in (
        harmonize_network(t_network, {}, exclude={t_id}),
        harmonize_network(t_network, {}, exclude=lambda j: j.junction_type == T_JUNCTION),
        harmonize_network(t_network, {"EXCLUDED_JUNCTION_IDS": [t_id]}),
    ):
        low = out.network.spline(1)
        assert low.sections[0].banking_behavior == NORMAL
        assert low.sections[0].target_elevation == 12.0
        assert [j.junction_id for j in out.junctions if j.is_excluded] == [t_id]


def test_heightmap_enables_dead_end_taper(t_network):
    terrain = np.full((120, 120), 2.0, dtype=np.float32)
    out = harmonize_network(t_network, {}, terrain, 1.0)
    assert out.network.spline(0).sections[0].target_elevation == pytest.approx(7.6)
    assert out.stats["tapered_sections"] > 0
    off = harmonize_network(t_network, {"ENDPOINT_TAPER": {"enabled": False}}, terrain, 1.0)
    assert off.network.spline(0).sections[0].target_elevation == 10.0


def test_cli_end_to_end(tmp_path, monkeypatch, t_network):
    rasterio = pytest.importorskip("rasterio")
    from rasterio.transform import from_origin

    tif = tmp_path / "dem.tif"
    terrain = np.full((100, 100), 2.0, dtype=np.float32)
    with rasterio.open(
        tif,
        "w",
        driver="GTiff",
        height=100,
        width=100,
        count=1,
        dtype="float32",
        transform=from_origin(0.0, 100.0, 1.0, 1.0),
    ) as dst:
        dst.write(terrain, 1)
    net_path = tmp_path / "network.json"
    net_path.write_text(json.dumps(network_to_dict(t_network)), encoding="utf-8")
    cfg_path = tmp_path / "cfg.yaml"
    cfg_path.write_text("POST_SMOOTHING:\n  enabled: true\n  kind: gaussian\nWORKERS: 1\n", encoding="utf-8")
    out_dir = tmp_path / "out"

    monkeypatch.setattr(
        "sys.argv",
        [
            "roadblend-harmonize",
            "--config", str(cfg_path),
            "--network", str(net_path),
            "--heightmap", str(tif),
            "--out-dir", str(out_dir),
            "--debug-image",
        ],
    )
    assert harmonize.main() == 0
    for name in ("heightmap.tif", "junctions.geojson", "cross_sections.json", "run_card.md",
                 "resolved_config.yaml", "params_hash.txt", "ownership.png"):
        assert (out_dir / name).exists(), name
    with rasterio.open(out_dir / "heightmap.tif") as ds:
        out = ds.read(1)
    assert out.shape == terrain.shape
    # 40 m from the dead end at x=0, beyond the 30 m taper
    assert out[50, 40] == pytest.approx(10.0, abs=0.5)
    # the dead end itself eased 30% of the way toward the 2 m terrain
    assert out[50, 0] == pytest.approx(7.6, abs=0.5)
    assert out[5, 5] == 2.0
    assert "t_junction" in (out_dir / "run_card.md").read_text(encoding="utf-8")


def test_cli_missing_input(tmp_path, monkeypatch):
    monkeypatch.setattr(
        "sys.argv",
        ["roadblend-harmonize", "--network", str(tmp_path / "nope.json"), "--heightmap", str(tmp_path / "nope.tif")],
    )
    assert harmonize.main() == 2

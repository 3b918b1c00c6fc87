from pathlib import Path

import pytest
from pydantic import ValidationError

from imcal.config.load import apply_overrides, load_config
from imcal.config.schemas import Config, RecoCfg, TopoCfg

TOML = """
[run]
diagnostics_level = 0

[io]
input_path = "in.h5"
input_kind = "raw"
output_path = "out.h5"

[geometry]
readout = "system:8,sector:6,layer:8,x:-16,y:-16"

[topo]
neighbour_layers_range = 2
local_dist_xy = [1.5, 2.5]
layer_dist_eta_phi = [0.02, 0.03]
sector_dist = 12.0
min_cluster_nhits = 3

[reco]
energy_weight = "Linear"
enable_eta_bounds = true
"""


def test_load_config(tmp_path: Path):
    p = tmp_path / "cfg.toml"
    p.write_text(TOML)
    cfg = load_config(p)
    assert cfg.io.input_kind == "raw"
    assert cfg.topo.local_dist_xy == [1.5, 2.5]
    assert cfg.topo.layer_dist_eta_phi == [0.02, 0.03]
    assert cfg.topo.min_cluster_nhits == 3
    assert cfg.reco.energy_weight == "linear"
    assert cfg.reco.enable_eta_bounds is True
    # untouched sections keep their defaults
    assert cfg.pixel.capacity_adc == 8096
    assert cfg.reco.log_weight_base == 3.6


def test_defaults():
    t = TopoCfg()
    assert t.neighbour_layers_range == 1
    assert t.local_dist_xy == [1.0, 1.0]
    assert t.sector_dist == 10.0
    assert t.min_cluster_edep == pytest.approx(0.5e-3)
    assert t.min_cluster_nhits == 10
    r = RecoCfg()
    assert (r.sampling_fraction, r.energy_weight, r.enable_eta_bounds) == (1.0, "log", False)


@pytest.mark.parametrize("field", ["local_dist_xy", "layer_dist_eta_phi"])
@pytest.mark.parametrize("value", [[1.0], [1.0, 2.0, 3.0], []])
def test_distance_vectors_need_two_values(field, value):
    with pytest.raises(ValidationError):
        TopoCfg(**{field: value})


def test_invalid_values_rejected():
    with pytest.raises(ValidationError):
        Config(run={"diagnostics_level": 5}, io={"input_path": "a", "output_path": "b"})
    with pytest.raises(ValidationError):
        RecoCfg(sampling_fraction=0.0)
    with pytest.raises(ValidationError):
        Config(io={"input_path": "a", "output_path": "b", "input_kind": "root"})
    with pytest.raises(ValidationError):
        Config()


def test_apply_overrides(tmp_path: Path):
    p = tmp_path / "cfg.toml"
    p.write_text(TOML)
    cfg = load_config(p)
    same = apply_overrides(cfg)
    assert same.io.input_kind == "raw" and same.reco.enable_eta_bounds is True
    new = apply_overrides(cfg, input_kind="hits", enable_eta_bounds=False)
    assert (new.io.input_kind, new.reco.enable_eta_bounds) == ("hits", False)
    assert cfg.io.input_kind == "raw"
    with pytest.raises(ValidationError):
        apply_overrides(cfg, input_kind="root")


def test_broken_toml_names_the_file(tmp_path: Path):
    p = tmp_path / "broken.toml"
    p.write_text("[io\ninput_path = 1")
    with pytest.raises(ValueError, match="broken.toml"):
        load_config(p)

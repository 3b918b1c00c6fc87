from pathlib import Path

import numpy as np
import pytest
from typer.testing import CliRunner

from imcal.clustering.cog import ClusterRecoCoG
from imcal.clustering.topo import ImagingTopoCluster
from imcal.config.schemas import RecoCfg, TopoCfg
from imcal.io.store import (
    read_clusters, read_hit_events, read_hit_labels, write_geometry, write_init, write_raw_events,
)
from imcal.pipelines.core import app, process_event, process_protoclusters, run_pipeline
from imcal.physics.hits import ProtoCluster, make_hit
from imcal.sim.synth import TOY_READOUT, ToyCalorimeter, synth_raw_events


def _write_config(tmp_path: Path, input_path: Path, output_path: Path, kind: str = "raw") -> Path:
    cfg = tmp_path / f"cfg_{kind}.toml"
    cfg.write_text(f"""
[run]
diagnostics_level = 0

[io]
input_path = "{input_path.as_posix()}"
input_kind = "{kind}"
output_path = "{output_path.as_posix()}"

[geometry]
readout = "{TOY_READOUT}"

[topo]
min_cluster_nhits = 3
min_cluster_edep = 0.01

[reco]
energy_weight = "log"
""")
    return cfg


@pytest.fixture(scope="module")
def synth_file(tmp_path_factory):
    calo = ToyCalorimeter(n_sectors=6, n_layers=4, nx=11, ny=11)
    events = synth_raw_events(4, calo=calo, rng=np.random.default_rng(11), max_showers=2)
    path = tmp_path_factory.mktemp("synth") / "raw.h5"
    with write_init(str(path)) as f:
        write_geometry(f, calo.geometry().columns())
        write_raw_events(f, events)
    return path


def test_process_event_small():
    hits = [make_hit(k, [1000, k, 0], [k, 0, 0], energy=1.0) for k in range(3)]
    groups, clusters = process_event(
        hits,
        ImagingTopoCluster(TopoCfg(min_cluster_nhits=1, min_cluster_edep=0.0)),
        ClusterRecoCoG(RecoCfg(energy_weight="none")),
    )
    assert len(groups) == 1 and len(clusters) == 1
    np.testing.assert_allclose(clusters[0].position, [1000, 1, 0])


def test_process_protoclusters_bypasses_grouping():
    # hits far apart: a grouper would split them, a proto-cluster keeps them together
    hits = [make_hit(0, [1000, 0, 0], energy=1.0), make_hit(1, [-1000, 0, 0], layer=5, energy=1.0)]
    (cl,) = process_protoclusters([ProtoCluster.from_hits(hits, [0.5, 0.5])],
                                  ClusterRecoCoG(RecoCfg(energy_weight="linear")))
    assert cl.n_hits == 2
    assert cl.energy == pytest.approx(1.0)


def test_pipeline_raw_then_hits(tmp_path: Path, synth_file: Path):
    out_raw = tmp_path / "out_raw.h5"
    result = run_pipeline(str(_write_config(tmp_path, synth_file, out_raw, "raw")))
    assert result == out_raw and out_raw.exists()

    clusters = read_clusters(str(out_raw))
    hits = read_hit_events(str(out_raw))
    labels = read_hit_labels(str(out_raw))
    assert len(clusters) == len(hits) == len(labels) == 4
    for cls, ev_hits, lab in zip(clusters, hits, labels):
        assert len(cls) >= 1
        assert len(lab) == len(ev_hits)
        assert lab.max() + 1 == len(cls)
        for cid, cl in enumerate(cls):
            assert cl.n_hits == int(np.sum(lab == cid)) >= 3
            assert 0.3 < cl.energy < 5.5
            assert len(cl.shape_parameters) == 2

    # the written hits feed the same clustering again
    out_hits = tmp_path / "out_hits.h5"
    run_pipeline(str(_write_config(tmp_path, out_raw, out_hits, "hits")))
    again = read_clusters(str(out_hits))
    assert [len(c) for c in again] == [len(c) for c in clusters]
    for a, b in zip(again, clusters):
        np.testing.assert_allclose([c.energy for c in a], [c.energy for c in b])
        np.testing.assert_allclose([c.position for c in a], [c.position for c in b])


def test_cli_overrides(tmp_path: Path, synth_file: Path):
    out = tmp_path / "cli.h5"
    cfg = _write_config(tmp_path, synth_file, out, "hits")
    runner = CliRunner()
    # config says "hits" but the synthetic file only has raw pixels
    res = runner.invoke(app, [str(cfg), "--input-kind", "raw", "--eta-bounds"])
    assert res.exit_code == 0, res.output
    assert str(out) in res.output
    assert sum(len(c) for c in read_clusters(str(out))) >= 4


def test_pipeline_rejects_bad_weighting(tmp_path: Path, synth_file: Path):
    cfg = _write_config(tmp_path, synth_file, tmp_path / "never.h5")
    cfg.write_text(cfg.read_text().replace('energy_weight = "log"', 'energy_weight = "cubic"'))
    with pytest.raises(ValueError):
        run_pipeline(str(cfg))
    assert not (tmp_path / "never.h5").exists()


def test_synth_and_inspect_cli(tmp_path: Path):
    from imcal.cli.inspect import app as inspect_app
    from imcal.cli.synth import app as synth_app

    runner = CliRunner()
    raw = tmp_path / "toy.h5"
    res = runner.invoke(synth_app, [str(raw), "-n", "2", "--seed", "3", "--max-showers", "1"])
    assert res.exit_code == 0, res.output
    assert "Wrote 2 events" in res.output

    out = tmp_path / "toy_out.h5"
    assert runner.invoke(app, [str(_write_config(tmp_path, raw, out, "raw"))]).exit_code == 0

    res = runner.invoke(inspect_app, [str(out)])
    assert res.exit_code == 0, res.output
    n = sum(len(c) for c in read_clusters(str(out)))
    assert res.output.strip().splitlines()[-1] == f"{n} clusters in 2 events"

    res = runner.invoke(inspect_app, [str(out), "--event", "7"])
    assert res.exit_code != 0

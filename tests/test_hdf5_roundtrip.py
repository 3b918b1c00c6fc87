from pathlib import Path

import h5py
import numpy as np
import pytest

from imcal.io.store import (
    read_clusters, read_geometry, read_hit_events, read_hit_labels, read_raw_events,
    write_clusters, write_geometry, write_hit_events, write_init, write_raw_events,
)
from imcal.geometry.cellid import CellIDDecoder
from imcal.geometry.service import TableGeometry
from imcal.physics.clusters import Cluster
from imcal.physics.hits import make_hit
from imcal.physics.pixel_reco import RawHit


def test_hits_and_labels_roundtrip(tmp_path: Path):
    events = [
        [make_hit(5, [1.0, 2.0, 3.0], [0.5, 0.25, 0.0], layer=2, sector=1, energy=0.01,
                  time=4.0, time_error=0.1),
         make_hit(6, [1.5, 2.0, 3.0], [1.0, 0.25, 0.0], layer=2, sector=1, energy=0.02)],
        [],
        [make_hit(7, [-1.0, 0.0, 9.0], layer=0, sector=3, energy=0.5)],
    ]
    labels = [np.array([0, 0]), np.array([], dtype=int), np.array([-1])]
    out = tmp_path / "hits.h5"
    with write_init(str(out)) as f:
        write_hit_events(f, events, labels)

    back = read_hit_events(str(out))
    assert [len(ev) for ev in back] == [2, 0, 1]
    h = back[0][0]
    assert (h.cell_id, h.layer, h.sector) == (5, 2, 1)
    np.testing.assert_array_equal(h.position, [1.0, 2.0, 3.0])
    np.testing.assert_array_equal(h.local, [0.5, 0.25, 0.0])
    assert (h.energy, h.time, h.time_error) == (0.01, 4.0, 0.1)

    lab = read_hit_labels(str(out))
    assert [list(l) for l in lab] == [[0, 0], [], [-1]]

    with h5py.File(out, "r") as f:
        assert f.attrs["format_version"] == "1.0"
        np.testing.assert_array_equal(f["/hits/event_ptr"][...], [0, 2, 2, 3])


def test_raw_and_geometry_roundtrip(tmp_path: Path):
    raw = [[RawHit(1, 500, 10), RawHit(2, 401, 20)], [RawHit(3, 9000, 30)]]
    cols = {
        "cell_id": np.array([1, 2, 3]),
        "x": np.array([1.0, 2.0, 3.0]), "y": np.zeros(3), "z": np.zeros(3),
        "lx": np.zeros(3), "ly": np.ones(3), "lz": np.zeros(3),
        "layer": np.array([0, 1, 2]), "sector": np.array([0, 0, 1]),
    }
    out = tmp_path / "raw.h5"
    with write_init(str(out)) as f:
        write_geometry(f, cols)
        write_raw_events(f, raw)

    back = read_raw_events(str(out))
    assert back == raw
    geo = read_geometry(str(out))
    np.testing.assert_array_equal(geo["x"], cols["x"])
    np.testing.assert_array_equal(geo["sector"], cols["sector"])


def test_clusters_roundtrip(tmp_path: Path):
    clusters = [
        [Cluster(n_hits=3, energy=1.5, time=2.0, position=np.array([1.0, 2.0, 3.0]),
                 intrinsic_theta=0.3, intrinsic_phi=-1.0, shape_parameters=(0.7, 0.0)),
         Cluster(n_hits=1, energy=0.2, position=np.array([4.0, 5.0, 6.0]))],
        [],
    ]
    out = tmp_path / "clusters.h5"
    with write_init(str(out)) as f:
        write_clusters(f, clusters)

    back = read_clusters(str(out))
    assert [len(ev) for ev in back] == [2, 0]
    a, b = back[0]
    assert (a.n_hits, a.energy, a.time) == (3, 1.5, 2.0)
    assert a.shape_parameters == pytest.approx((0.7, 0.0))
    assert (a.intrinsic_theta, a.intrinsic_phi) == (0.3, -1.0)
    np.testing.assert_array_equal(b.position, [4.0, 5.0, 6.0])
    assert b.shape_parameters == ()


def test_missing_group_raises(tmp_path: Path):
    out = tmp_path / "empty.h5"
    write_init(str(out)).close()
    with pytest.raises(KeyError):
        read_clusters(str(out))
    with pytest.raises(KeyError):
        read_geometry(str(out))


def test_cell_ids_with_top_bit_set(tmp_path: Path):
    dec = CellIDDecoder("system:8,layer:6,sector:4,x:32:-16,y:-16")
    cid = dec.encode(system=1, layer=2, sector=3, x=0, y=-1)
    assert cid >= 1 << 63
    geo = TableGeometry([cid], [[1.0, 2.0, 3.0]], [[0.0, -1.0, 0.0]], decoder=dec)
    out = tmp_path / "wide_ids.h5"
    with write_init(str(out)) as f:
        write_geometry(f, geo.columns())
        write_raw_events(f, [[RawHit(cid, 1000, 5)]])
        write_hit_events(f, [[make_hit(cid, [1.0, 2.0, 3.0], layer=2, sector=3, energy=0.1)]])

    again = TableGeometry.from_columns(read_geometry(str(out)), decoder=dec)
    assert (again.layer_of(cid), again.sector_of(cid)) == (2, 3)
    np.testing.assert_array_equal(again.position(cid), [1.0, 2.0, 3.0])
    assert read_raw_events(str(out))[0][0].cell_id == cid
    (hit,) = read_hit_events(str(out))[0]
    assert hit.cell_id == cid
    assert dec.get(hit.cell_id, "y") == -1


def test_unreadable_config_leaves_no_output(tmp_path: Path):
    out = tmp_path / "out.h5"
    with pytest.raises(FileNotFoundError):
        write_init(str(out), str(tmp_path / "missing.toml"))
    assert not out.exists()

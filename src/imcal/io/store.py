"""
imcal.io.store

HDF5 layout for per-event hits, raw pixels and clusters.

Variable-length events are stored CSR style: every group carries an
(N_events+1,) int64 `event_ptr`, and flat columns of length
event_ptr[-1]. Event i owns rows event_ptr[i]:event_ptr[i+1].
cell_id columns are uint64 (readouts use all 64 bits).

/raw/{event_ptr, cell_id, amplitude, timestamp}
/hits/{event_ptr, cell_id, x, y, z, lx, ly, lz, layer, sector,
       energy, time, time_error[, cluster_id]}
/geometry/{cell_id, x, y, z, lx, ly, lz, layer, sector}
/clusters/{event_ptr, n_hits, energy, energy_error, time, time_error,
           position (M,3), position_error (M,3), intrinsic_theta,
           intrinsic_phi, rms_radius, skewness}
"""
from __future__ import annotations
from typing import Dict, List, Optional, Sequence
from datetime import datetime, timezone

import h5py
import numpy as np

from imcal.config.load import snapshot_config_toml
from imcal.physics.clusters import Cluster
from imcal.physics.hits import Hit
from imcal.physics.pixel_reco import RawHit

FORMAT_VERSION = "1.0"
SOFTWARE = "imcal 0.1.0"

GEOMETRY_KEYS = ("cell_id", "x", "y", "z", "lx", "ly", "lz", "layer", "sector")


def write_init(path: str, cfg_path: Optional[str] = None) -> h5py.File:
    # config is read before the output file is truncated
    config_text = snapshot_config_toml(cfg_path) if cfg_path is not None else None
    f = h5py.File(path, "w")
    # Root attrs
    f.attrs["format_version"] = FORMAT_VERSION
    f.attrs["created_utc"] = datetime.now(timezone.utc).isoformat()
    f.attrs["software"] = SOFTWARE
    if config_text is not None:
        f.attrs["config_text"] = config_text
    return f


def _replace_or_create(grp: h5py.Group, name: str, data: np.ndarray) -> None:
    if name in grp:
        del grp[name]
    data = np.asarray(data)
    # empty datasets cannot carry a chunked (compressed) layout
    if data.size:
        grp.create_dataset(name, data=data, compression="gzip")
    else:
        grp.create_dataset(name, data=data)


def _event_ptr(counts: Sequence[int]) -> np.ndarray:
    ptr = np.zeros(len(counts) + 1, dtype=np.int64)
    if len(counts):
        np.cumsum(np.asarray(counts, dtype=np.int64), out=ptr[1:])
    return ptr


def _split(ptr: np.ndarray) -> List[slice]:
    return [slice(int(ptr[i]), int(ptr[i + 1])) for i in range(len(ptr) - 1)]


def _require(f: h5py.File, name: str, path: str = "") -> h5py.Group:
    if name not in f:
        raise KeyError(f"/{name} not found in {path or f.filename}")
    return f[name]


# --- geometry ---------------------------------------------------------------

def write_geometry(f: h5py.File, cols: Dict[str, np.ndarray]) -> None:
    grp = f.require_group("geometry")
    for key in GEOMETRY_KEYS:
        if key not in cols:
            raise KeyError(f"geometry column {key!r} missing")
        data = np.asarray(cols[key])
        if key == "cell_id":
            data = data.astype(np.uint64)
        _replace_or_create(grp, key, data)


def read_geometry(path: str) -> Dict[str, np.ndarray]:
    with h5py.File(str(path), "r") as f:
        grp = _require(f, "geometry", str(path))
        return {k: np.array(grp[k]) for k in GEOMETRY_KEYS if k in grp}


# --- raw pixels -------------------------------------------------------------

def write_raw_events(f: h5py.File, events: Sequence[Sequence[RawHit]]) -> None:
    grp = f.require_group("raw")
    flat = [rh for ev in events for rh in ev]
    _replace_or_create(grp, "event_ptr", _event_ptr([len(ev) for ev in events]))
    _replace_or_create(grp, "cell_id", np.array([rh.cell_id for rh in flat], dtype=np.uint64))
    _replace_or_create(grp, "amplitude", np.array([rh.amplitude for rh in flat], dtype=np.int64))
    _replace_or_create(grp, "timestamp", np.array([rh.timestamp for rh in flat], dtype=np.int64))


def read_raw_events(path: str) -> List[List[RawHit]]:
    with h5py.File(str(path), "r") as f:
        grp = _require(f, "raw", str(path))
        ptr = np.array(grp["event_ptr"])
        cid = np.array(grp["cell_id"])
        amp = np.array(grp["amplitude"])
        ts = np.array(grp["timestamp"])
    return [
        [RawHit(int(cid[k]), int(amp[k]), int(ts[k])) for k in range(s.start, s.stop)]
        for s in _split(ptr)
    ]


# --- hits -------------------------------------------------------------------

def write_hit_events(
    f: h5py.File,
    events: Sequence[Sequence[Hit]],
    labels: Optional[Sequence[np.ndarray]] = None,
) -> None:
    """
    Store reconstructed hits per event; labels, when given, is one
    cluster_id array per event (see ImagingTopoCluster.label_hits).
    """
    grp = f.require_group("hits")
    flat = [h for ev in events for h in ev]
    pos = np.array([h.position for h in flat], dtype=np.float64).reshape(-1, 3)
    loc = np.array([h.local for h in flat], dtype=np.float64).reshape(-1, 3)
    _replace_or_create(grp, "event_ptr", _event_ptr([len(ev) for ev in events]))
    _replace_or_create(grp, "cell_id", np.array([h.cell_id for h in flat], dtype=np.uint64))
    for i, key in enumerate(("x", "y", "z")):
        _replace_or_create(grp, key, pos[:, i])
    for i, key in enumerate(("lx", "ly", "lz")):
        _replace_or_create(grp, key, loc[:, i])
    _replace_or_create(grp, "layer", np.array([h.layer for h in flat], dtype=np.int32))
    _replace_or_create(grp, "sector", np.array([h.sector for h in flat], dtype=np.int32))
    _replace_or_create(grp, "energy", np.array([h.energy for h in flat], dtype=np.float64))
    _replace_or_create(grp, "time", np.array([h.time for h in flat], dtype=np.float64))
    _replace_or_create(grp, "time_error", np.array([h.time_error for h in flat], dtype=np.float64))
    if labels is not None:
        if len(labels) != len(events):
            raise ValueError("labels must have one array per event")
        lab = np.concatenate([np.asarray(l, dtype=np.int32) for l in labels]) if labels else np.zeros(0, np.int32)
        _replace_or_create(grp, "cluster_id", lab)


def read_hit_events(path: str) -> List[List[Hit]]:
    with h5py.File(str(path), "r") as f:
        grp = _require(f, "hits", str(path))
        c = {k: np.array(grp[k]) for k in grp.keys()}
    pos = np.stack([c["x"], c["y"], c["z"]], axis=1)
    loc = np.stack([c["lx"], c["ly"], c["lz"]], axis=1)
    events: List[List[Hit]] = []
    for s in _split(c["event_ptr"]):
        events.append([
            Hit(
                cell_id=int(c["cell_id"][k]),
                position=pos[k].copy(),
                local=loc[k].copy(),
                layer=int(c["layer"][k]),
                sector=int(c["sector"][k]),
                energy=float(c["energy"][k]),
                time=float(c["time"][k]),
                time_error=float(c["time_error"][k]),
            )
            for k in range(s.start, s.stop)
        ])
    return events


def read_hit_labels(path: str) -> List[np.ndarray]:
    with h5py.File(str(path), "r") as f:
        grp = _require(f, "hits", str(path))
        if "cluster_id" not in grp:
            raise KeyError(f"/hits/cluster_id not found in {path}")
        ptr = np.array(grp["event_ptr"])
        lab = np.array(grp["cluster_id"])
    return [lab[s] for s in _split(ptr)]


# --- clusters ---------------------------------------------------------------

def write_clusters(f: h5py.File, events: Sequence[Sequence[Cluster]]) -> None:
    grp = f.require_group("clusters")
    flat = [cl for ev in events for cl in ev]
    _replace_or_create(grp, "event_ptr", _event_ptr([len(ev) for ev in events]))
    _replace_or_create(grp, "n_hits", np.array([cl.n_hits for cl in flat], dtype=np.int32))
    for key in ("energy", "energy_error", "time", "time_error", "intrinsic_theta", "intrinsic_phi"):
        _replace_or_create(grp, key, np.array([getattr(cl, key) for cl in flat], dtype=np.float64))
    _replace_or_create(grp, "position",
                       np.array([cl.position for cl in flat], dtype=np.float64).reshape(-1, 3))
    _replace_or_create(grp, "position_error",
                       np.array([cl.position_error for cl in flat], dtype=np.float64).reshape(-1, 3))
    # shape parameters are absent for single-hit clusters -> NaN
    shape = np.full((len(flat), 2), np.nan, dtype=np.float64)
    for i, cl in enumerate(flat):
        k = min(len(cl.shape_parameters), 2)
        shape[i, :k] = cl.shape_parameters[:k]
    _replace_or_create(grp, "rms_radius", shape[:, 0])
    _replace_or_create(grp, "skewness", shape[:, 1])


def read_clusters(path: str) -> List[List[Cluster]]:
    with h5py.File(str(path), "r") as f:
        grp = _require(f, "clusters", str(path))
        c = {k: np.array(grp[k]) for k in grp.keys()}
    events: List[List[Cluster]] = []
    for s in _split(c["event_ptr"]):
        out = []
        for k in range(s.start, s.stop):
            if np.isnan(c["rms_radius"][k]):
                shape = ()
            else:
                shape = (float(c["rms_radius"][k]), float(c["skewness"][k]))
            out.append(Cluster(
                n_hits=int(c["n_hits"][k]),
                energy=float(c["energy"][k]),
                energy_error=float(c["energy_error"][k]),
                time=float(c["time"][k]),
                time_error=float(c["time_error"][k]),
                position=c["position"][k].copy(),
                position_error=c["position_error"][k].copy(),
                intrinsic_theta=float(c["intrinsic_theta"][k]),
                intrinsic_phi=float(c["intrinsic_phi"][k]),
                shape_parameters=shape,
            ))
        events.append(out)
    return events

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple
import typer

import numpy as np

from imcal.config.load import apply_overrides, load_config
from imcal.config.schemas import Config
from imcal.clustering.cog import ClusterRecoCoG
from imcal.clustering.topo import ImagingTopoCluster
from imcal.geometry.cellid import CellIDDecoder
from imcal.geometry.service import TableGeometry
from imcal.io.store import (
    read_geometry,
    read_hit_events,
    read_raw_events,
    write_clusters,
    write_hit_events,
    write_init,
)
from imcal.physics.clusters import Cluster
from imcal.physics.hits import Hit, HitGroup, ProtoCluster
from imcal.physics.pixel_reco import ImagingPixelReco
from imcal.utils.logger import logger, set_diagnostics_level


def process_event(
    hits: Sequence[Hit],
    grouper: ImagingTopoCluster,
    reco: ClusterRecoCoG,
) -> Tuple[List[HitGroup], List[Cluster]]:
    """Group one event's hits and reconstruct one cluster per surviving group."""
    groups = grouper.run(hits)
    return groups, reco.run(groups)


def process_protoclusters(
    protos: Iterable[ProtoCluster],
    reco: ClusterRecoCoG,
) -> List[Cluster]:
    """Reconstruct externally grouped proto-clusters (with their own weights), bypassing the grouper."""
    return reco.run(protos)


def _build_geometry(cfg: Config) -> TableGeometry:
    cols = read_geometry(cfg.io.input_path)
    decoder = CellIDDecoder(cfg.geometry.readout) if cfg.geometry.readout else None
    return TableGeometry.from_columns(
        cols,
        decoder=decoder,
        layer_field=cfg.geometry.layer_field,
        sector_field=cfg.geometry.sector_field,
    )


def _load_hit_events(cfg: Config) -> List[List[Hit]]:
    """Reconstructed hits per event, either read directly or rebuilt from raw pixels."""
    if cfg.io.input_kind == "hits":
        events = read_hit_events(cfg.io.input_path)
    else:
        pixel_reco = ImagingPixelReco(_build_geometry(cfg), cfg.pixel)
        events = [pixel_reco.run(raw) for raw in read_raw_events(cfg.io.input_path)]
    if cfg.run.max_events is not None:
        events = events[: cfg.run.max_events]
    return events


def run_pipeline(
    cfg_path: str,
    *,
    input_kind: Optional[str] = None,
    enable_eta_bounds: Optional[bool] = None,
) -> Path:
    """
    Orchestrate the full pipeline from a TOML config file.

    CLI flags (--input-kind, --eta-bounds/--no-eta-bounds) override the
    corresponding config fields when not None. Configuration problems
    (bad distance vectors, unknown weighting, missing geometry) raise
    before any event is processed.

    Returns
    -------
    Path to written HDF5 file.
    """
    # ---- apply CLI overrides on top of TOML ----
    cfg = apply_overrides(load_config(cfg_path), input_kind=input_kind, enable_eta_bounds=enable_eta_bounds)

    set_diagnostics_level(cfg.run.diagnostics_level)
    logger.info("[run] config = %s", cfg_path)
    logger.info("[run] input=%s (%s) -> output=%s",
                cfg.io.input_path, cfg.io.input_kind, cfg.io.output_path)

    grouper = ImagingTopoCluster(cfg.topo)
    reco = ClusterRecoCoG(cfg.reco)

    events = _load_hit_events(cfg)
    logger.info("[pipeline] Got %d events", len(events))

    all_clusters: List[List[Cluster]] = []
    labels: List[np.ndarray] = []
    for j, hits in enumerate(events):
        groups, hit_labels = grouper.run_with_labels(hits)
        clusters = reco.run(groups)
        all_clusters.append(clusters)
        labels.append(hit_labels)
        logger.debug("[pipeline] event %d: %d hits -> %d clusters", j, len(hits), len(clusters))

    n_cl = sum(len(c) for c in all_clusters)
    logger.info("[pipeline] Reconstructed %d clusters from %d events", n_cl, len(events))

    out_path = Path(cfg.io.output_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with write_init(str(out_path), cfg_path) as f:
        write_hit_events(f, events, labels if cfg.io.write_hit_labels else None)
        write_clusters(f, all_clusters)

    return out_path


# ---------------------------------------------------------------------------
# Unified CLI entry point
# ---------------------------------------------------------------------------

app = typer.Typer(help="Imaging calorimeter clustering pipeline (imcal.pipelines.core)")


@app.command()
def main(
    cfg_path: str = typer.Argument(
        ...,
        help="Path to TOML config file",
    ),
    input_kind: Optional[str] = typer.Option(
        None,
        "--input-kind",
        help="Override [io].input_kind: 'raw' (digitized pixels + /geometry) or 'hits'",
    ),
    eta_bounds: Optional[bool] = typer.Option(
        None,
        "--eta-bounds / --no-eta-bounds",
        help="Enable or disable the cluster eta clamp; overrides [reco].enable_eta_bounds when set",
    ),
):
    """
    Run topological grouping + center-of-gravity reconstruction for a single config.
    """
    if input_kind is not None and input_kind not in ("raw", "hits"):
        raise typer.BadParameter("input kind must be 'raw' or 'hits'", param_hint="--input-kind")
    out_path = run_pipeline(cfg_path, input_kind=input_kind, enable_eta_bounds=eta_bounds)
    typer.echo(str(out_path))


if __name__ == "__main__":
    app()

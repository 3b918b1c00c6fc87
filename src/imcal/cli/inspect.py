from __future__ import annotations

import math
from typing import Optional

import typer

from imcal.io.store import read_clusters

app = typer.Typer(help="Inspect imcal cluster output")

@app.command()
def clusters(
    h5_path: str = typer.Argument(..., help="HDF5 file written by imcal-run"),
    event: Optional[int] = typer.Option(None, "--event", "-e", help="Only show this event index"),
):
    """Print one line per cluster: event, hits, energy, centroid, angles, RMS radius."""
    events = read_clusters(h5_path)
    if event is not None:
        if not 0 <= event < len(events):
            raise typer.BadParameter(f"event {event} out of range [0, {len(events)})", param_hint="--event")
        selected = [(event, events[event])]
    else:
        selected = list(enumerate(events))

    typer.echo(f"{'event':>5} {'nhits':>5} {'E [GeV]':>10} {'x':>9} {'y':>9} {'z':>9} "
               f"{'theta':>7} {'phi':>7} {'rms':>7}")
    for j, cls in selected:
        for cl in cls:
            rms = cl.rms_radius
            typer.echo(
                f"{j:5d} {cl.n_hits:5d} {cl.energy:10.4f} "
                f"{cl.position[0]:9.2f} {cl.position[1]:9.2f} {cl.position[2]:9.2f} "
                f"{math.degrees(cl.intrinsic_theta):7.2f} {math.degrees(cl.intrinsic_phi):7.2f} "
                f"{'-' if rms is None else format(rms, '.3f'):>7}"
            )
    typer.echo(f"{sum(len(c) for _, c in selected)} clusters in {len(selected)} events")

if __name__ == "__main__":
    app()

from __future__ import annotations

from pathlib import Path

import numpy as np
import typer

from imcal.io.store import write_geometry, write_init, write_raw_events
from imcal.sim.synth import TOY_READOUT, ToyCalorimeter, synth_raw_events

app = typer.Typer(help="Write synthetic raw imaging-calorimeter events")

@app.command()
def main(
    out: str = typer.Argument(..., help="Output HDF5 path"),
    n_events: int = typer.Option(100, "--events", "-n", help="Number of events"),
    seed: int = typer.Option(12345, "--seed", help="RNG seed"),
    max_showers: int = typer.Option(2, "--max-showers", help="Showers per event (1..N)"),
):
    """
    Generate toy showers in a barrel imaging calorimeter, with the /geometry
    table needed for 'raw' input. Set [geometry].readout to the printed
    readout string to decode layer/sector from cell ids.
    """
    calo = ToyCalorimeter()
    rng = np.random.default_rng(seed)
    events = synth_raw_events(n_events, calo=calo, rng=rng, max_showers=max_showers)
    p = Path(out)
    p.parent.mkdir(parents=True, exist_ok=True)
    with write_init(str(p)) as f:
        write_geometry(f, calo.geometry().columns())
        write_raw_events(f, events)
    typer.echo(f"Wrote {len(events)} events to {p} (readout {TOY_READOUT})")

if __name__ == "__main__":
    app()

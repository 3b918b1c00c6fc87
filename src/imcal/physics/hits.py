from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Sequence
import numpy as np

from imcal.geometry import vectors

@dataclass(frozen=True, slots=True, eq=False)
class Hit:
    """
    Reconstructed imaging-calorimeter hit (physics layer).

    position: global position [mm]
    local: position in the local frame of the sensor layer [mm]
    energy: deposited energy estimate [GeV]
    time, time_error: [ns]
    """
    cell_id: int
    position: np.ndarray  # shape (3,), dtype float
    local: np.ndarray     # shape (3,), dtype float
    layer: int
    sector: int
    energy: float
    time: float = 0.0
    time_error: float = 0.0

    @property
    def eta(self) -> float:
        return vectors.eta(self.position)

    @property
    def phi(self) -> float:
        return vectors.angle_azimuthal(self.position)

    @property
    def theta(self) -> float:
        return vectors.angle_polar(self.position)

    @property
    def r(self) -> float:
        return vectors.magnitude(self.position)

def make_hit(cell_id: int, position, local=(0.0, 0.0, 0.0), *, layer: int = 0, sector: int = 0,
             energy: float = 0.0, time: float = 0.0, time_error: float = 0.0) -> Hit:
    """Build a Hit from plain sequences, coercing positions to float64 arrays."""
    return Hit(
        cell_id=int(cell_id),
        position=np.asarray(position, dtype=np.float64).reshape(3),
        local=np.asarray(local, dtype=np.float64).reshape(3),
        layer=int(layer),
        sector=int(sector),
        energy=float(energy),
        time=float(time),
        time_error=float(time_error),
    )

@dataclass(slots=True)
class HitGroup:
    """
    Hits judged to belong to one shower by the topological grouper.

    Hits keep the traversal order of the grouper; cluster_id is the
    running index among emitted groups of one event (-1 until assigned).
    """
    hits: List[Hit] = field(default_factory=list)
    cluster_id: int = -1

    def __len__(self) -> int:
        return len(self.hits)

    @property
    def energy(self) -> float:
        return float(sum(h.energy for h in self.hits))

    def to_proto(self) -> "ProtoCluster":
        return ProtoCluster(hits=list(self.hits), weights=[1.0] * len(self.hits))

@dataclass(slots=True)
class ProtoCluster:
    """Pre-grouped hits with an externally supplied per-hit weight."""
    hits: List[Hit]
    weights: List[float]

    def __post_init__(self):
        if len(self.hits) != len(self.weights):
            raise ValueError(
                f"ProtoCluster needs one weight per hit: "
                f"{len(self.hits)} hits, {len(self.weights)} weights"
            )

    @classmethod
    def from_hits(cls, hits: Sequence[Hit], weights: Sequence[float] | None = None) -> "ProtoCluster":
        hits = list(hits)
        if weights is None:
            weights = [1.0] * len(hits)
        return cls(hits=hits, weights=[float(w) for w in weights])

    def __len__(self) -> int:
        return len(self.hits)

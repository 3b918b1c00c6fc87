# src/imcal/physics/clusters.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Tuple
import numpy as np

def _zeros3() -> np.ndarray:
    return np.zeros(3, dtype=np.float64)

@dataclass(frozen=True, slots=True, eq=False)
class Cluster:
    """
    Reconstructed calorimeter cluster.

    position is the weighted centroid [mm]; intrinsic_theta/phi are its
    polar/azimuthal angles and double as the direction estimate.
    shape_parameters is empty for single-hit clusters, otherwise
    (rms_radius, skewness) with skewness not yet computed (0.0).
    """
    n_hits: int = 0
    energy: float = 0.0
    energy_error: float = 0.0
    time: float = 0.0
    time_error: float = 0.0
    position: np.ndarray = field(default_factory=_zeros3)
    position_error: np.ndarray = field(default_factory=_zeros3)
    intrinsic_theta: float = 0.0
    intrinsic_phi: float = 0.0
    shape_parameters: Tuple[float, ...] = ()

    @property
    def rms_radius(self) -> float | None:
        return self.shape_parameters[0] if self.shape_parameters else None

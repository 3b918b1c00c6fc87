from __future__ import annotations
import math
import numpy as np

def _xyz(v) -> tuple[float, float, float]:
    x, y, z = np.asarray(v, dtype=np.float64).reshape(3)
    return float(x), float(y), float(z)

def magnitude(v) -> float:
    x, y, z = _xyz(v)
    return math.sqrt(x * x + y * y + z * z)

def angle_azimuthal(v) -> float:
    """Azimuthal angle phi in (-pi, pi]."""
    x, y, _ = _xyz(v)
    return math.atan2(y, x)

def angle_polar(v) -> float:
    """Polar angle theta in [0, pi], measured from +z."""
    x, y, z = _xyz(v)
    return math.atan2(math.hypot(x, y), z)

def eta(v) -> float:
    """
    Pseudorapidity of a position vector.

    Points on the beam axis give +/-inf; the origin gives 0.
    """
    x, y, z = _xyz(v)
    rho = math.hypot(x, y)
    if rho == 0.0:
        if z == 0.0:
            return 0.0
        return math.copysign(math.inf, z)
    return math.asinh(z / rho)

def eta_to_angle(eta_val: float) -> float:
    # exp argument kept <= 0 so large |eta| cannot overflow
    if eta_val >= 0:
        return 2.0 * math.atan(math.exp(-eta_val))
    return math.pi - 2.0 * math.atan(math.exp(eta_val))

def spherical_to_vector(r: float, theta: float, phi: float) -> np.ndarray:
    st = math.sin(theta)
    return np.array([r * st * math.cos(phi), r * st * math.sin(phi), r * math.cos(theta)],
                    dtype=np.float64)

from __future__ import annotations
import math
from typing import Callable, Dict

# (hit energy, total energy, parameter, module type) -> weight
WeightFunc = Callable[[float, float, float, int], float]

# --- Implementations --------------------------------------------------------

def const_weight(E: float, tE: float, p: float, mtype: int) -> float:
    return 1.0

def linear_weight(E: float, tE: float, p: float, mtype: int) -> float:
    return E

def log_weight(E: float, tE: float, base: float, mtype: int) -> float:
    """
    max(0, base + ln(E / tE)).

    Non-positive or undefined ratios (E <= 0, tE == 0, opposite signs)
    contribute nothing.
    """
    if tE == 0:
        return 0.0
    ratio = E / tE
    if not ratio > 0:
        return 0.0
    return max(0.0, base + math.log(ratio))

WEIGHT_METHODS: Dict[str, WeightFunc] = {
    "none": const_weight,
    "linear": linear_weight,
    "log": log_weight,
}

# --- Factory ----------------------------------------------------------------

def make_weight_function(name: str) -> WeightFunc:
    """Resolve a weighting method by (case-insensitive) name."""
    key = str(name).lower()
    try:
        return WEIGHT_METHODS[key]
    except KeyError:
        raise ValueError(
            f"Cannot find energy weighting method {name!r}, "
            f"choose one from [{', '.join(WEIGHT_METHODS)}]"
        ) from None

import math
import pytest

from imcal.clustering.weights import (
    WEIGHT_METHODS, const_weight, linear_weight, log_weight, make_weight_function,
)


def test_registry_names():
    assert sorted(WEIGHT_METHODS) == ["linear", "log", "none"]


def test_factory_case_insensitive():
    assert make_weight_function("NONE") is const_weight
    assert make_weight_function("Linear") is linear_weight
    assert make_weight_function("log") is log_weight


def test_factory_unknown_name():
    with pytest.raises(ValueError, match="quadratic"):
        make_weight_function("quadratic")


def test_const_and_linear():
    assert const_weight(0.3, 2.0, 3.6, 0) == 1.0
    assert linear_weight(0.3, 2.0, 3.6, 0) == 0.3


def test_log_weight_values():
    assert log_weight(0.5, 1.0, 3.6, 0) == pytest.approx(3.6 + math.log(0.5))
    # clipped at zero below exp(-base) of the total
    assert log_weight(1e-3, 1.0, 3.6, 0) == 0.0
    assert log_weight(0.0, 1.0, 3.6, 0) == 0.0
    assert log_weight(1.0, 0.0, 3.6, 0) == 0.0
    assert log_weight(-0.1, 1.0, 3.6, 0) == 0.0

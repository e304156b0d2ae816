"""Tests for the shared validation helpers."""

import numpy as np
import pytest

from perturbation_explanations.core.validation import (
    validate_batch,
    validate_choice,
    validate_instance,
    validate_non_negative,
    validate_positive_int,
    validate_seed,
)
from perturbation_explanations.explanations.models import ModelContext
from perturbation_explanations.utils.exceptions import (
    ConfigurationError,
    DataShapeError,
    NumericError,
    ValidationError,
)


def test_validate_instance_returns_float_copy():
    source = [1, 2, 3]
    result = validate_instance(source)
    assert result.dtype == float
    assert result.tolist() == [1.0, 2.0, 3.0]


def test_validate_instance_reports_context_mismatch():
    context = ModelContext.with_defaults(["a", "b"])
    with pytest.raises(DataShapeError) as excinfo:
        validate_instance([1.0, 2.0, 3.0], context)
    assert excinfo.value.details["expected_features"] == 2
    assert excinfo.value.details["actual_features"] == 3


def test_validate_instance_lists_non_finite_positions():
    with pytest.raises(NumericError) as excinfo:
        validate_instance([1.0, np.inf, np.nan])
    assert excinfo.value.details["non_finite"] == [1, 2]


@pytest.mark.parametrize("value", [None, [], "abc", [[1.0]]])
def test_validate_instance_rejects_bad_input(value):
    with pytest.raises(ValidationError):
        validate_instance(value)


def test_validate_batch():
    context = ModelContext.with_defaults(["a", "b"])
    matrix = validate_batch([[1, 2], [3, 4]], context)
    assert matrix.shape == (2, 2)
    with pytest.raises(DataShapeError):
        validate_batch([1.0, 2.0], context)
    with pytest.raises(ValidationError):
        validate_batch(np.empty((0, 2)), context)
    with pytest.raises(NumericError):
        validate_batch([[1.0, np.nan]], context)


@pytest.mark.parametrize("value, minimum", [(True, 0), (1.5, 0), ("3", 0), (0, 1), (-1, 0)])
def test_validate_positive_int_rejects(value, minimum):
    with pytest.raises(ConfigurationError):
        validate_positive_int(value, "n", minimum=minimum)


def test_validate_positive_int_accepts_numpy_integers():
    assert validate_positive_int(np.int64(4), "n") == 4
    assert validate_positive_int(0, "n", minimum=0) == 0


@pytest.mark.parametrize("value", [-0.1, float("nan"), float("inf"), "wide"])
def test_validate_non_negative_rejects(value):
    with pytest.raises(ConfigurationError):
        validate_non_negative(value, "noise")


def test_validate_choice():
    assert validate_choice("a", "option", ("a", "b")) == "a"
    with pytest.raises(ConfigurationError) as excinfo:
        validate_choice("c", "option", ("a", "b"))
    assert excinfo.value.details["choices"] == ("a", "b")


def test_validate_seed():
    assert validate_seed(0) == 0
    assert validate_seed(np.int64(9)) == 9
    assert validate_seed(None, optional=True) is None
    with pytest.raises(ConfigurationError) as excinfo:
        validate_seed(-1)
    assert excinfo.value.details["param"] == "seed"
    with pytest.raises(ConfigurationError):
        validate_seed(None)
    with pytest.raises(ConfigurationError):
        validate_seed(3.0, "robustness_seed")

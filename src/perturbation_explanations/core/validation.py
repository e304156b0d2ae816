"""Validation helpers shared across the core package.

These utilities centralize argument checks so every component raises the
same error vocabulary (``ValidationError``, ``DataShapeError``,
``ConfigurationError``, ``NumericError``) at call time.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from ..explanations.models import ModelContext
from ..utils.exceptions import (
    ConfigurationError,
    DataShapeError,
    NumericError,
    ValidationError,
)


def validate_not_none(value: Any, name: str) -> None:
    """Raise ``ValidationError`` when ``value`` is ``None``."""
    if value is None:
        raise ValidationError(f"Argument '{name}' must not be None.")


def validate_non_empty(value: Any, name: str) -> None:
    """Ensure that length-aware inputs are not empty."""
    if hasattr(value, "__len__") and len(value) == 0:
        raise ValidationError(f"Argument '{name}' must not be empty.")


def validate_instance(instance: Any, context: ModelContext | None = None) -> np.ndarray:
    """Return ``instance`` as a 1D float array after checking shape and finiteness.

    Raises
    ------
    ValidationError
        When the instance is missing or empty.
    DataShapeError
        When the instance is not 1D or its length differs from the context.
    NumericError
        When the instance contains NaN or infinite values.
    """
    validate_not_none(instance, "instance")
    try:
        arr = np.array(instance, dtype=float, copy=True)
    except (TypeError, ValueError) as exc:
        raise DataShapeError(
            "Argument 'instance' must be a sequence of real numbers.",
            details={"param": "instance"},
        ) from exc
    if arr.ndim != 1:
        raise DataShapeError(
            "Argument 'instance' must be 1D (n_features,).",
            details={"param": "instance", "ndim": arr.ndim, "expected": 1},
        )
    validate_non_empty(arr, "instance")
    if context is not None and arr.shape[0] != context.feature_count:
        raise DataShapeError(
            f"Argument 'instance' must have {context.feature_count} features, got {arr.shape[0]}.",
            details={
                "param": "instance",
                "expected_features": context.feature_count,
                "actual_features": arr.shape[0],
            },
        )
    if not np.all(np.isfinite(arr)):
        raise NumericError(
            "Argument 'instance' contains non-finite values.",
            details={"param": "instance", "non_finite": np.flatnonzero(~np.isfinite(arr)).tolist()},
        )
    return arr


def validate_batch(instances: Any, context: ModelContext | None = None) -> np.ndarray:
    """Return ``instances`` as a 2D float matrix with one validated row per instance."""
    validate_not_none(instances, "instances")
    try:
        matrix = np.asarray(instances, dtype=float)
    except (TypeError, ValueError) as exc:
        raise DataShapeError(
            "Argument 'instances' must be a 2D matrix of real numbers.",
            details={"param": "instances"},
        ) from exc
    if matrix.ndim != 2:
        raise DataShapeError(
            "Argument 'instances' must be 2D (n_instances, n_features).",
            details={"param": "instances", "ndim": matrix.ndim, "expected": 2},
        )
    rows = [validate_instance(row, context) for row in matrix]
    validate_non_empty(rows, "instances")
    return np.vstack(rows)


def validate_positive_int(value: Any, name: str, *, minimum: int = 1) -> int:
    """Ensure ``value`` is an integer not smaller than ``minimum``."""
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise ConfigurationError(
            f"Argument '{name}' must be an integer.", details={"param": name, "value": value}
        )
    if value < minimum:
        raise ConfigurationError(
            f"Argument '{name}' must be >= {minimum}, got {value}.",
            details={"param": name, "value": int(value), "minimum": minimum},
        )
    return int(value)


def validate_seed(value: Any, name: str = "seed", *, optional: bool = False) -> int | None:
    """Ensure ``value`` is a non-negative integer seed (or None when ``optional``).

    Raises
    ------
    ConfigurationError
        For negative, fractional or non-numeric seeds.
    """
    if value is None and optional:
        return None
    return validate_positive_int(value, name, minimum=0)


def validate_non_negative(value: Any, name: str) -> float:
    """Ensure ``value`` is a finite, non-negative real."""
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"Argument '{name}' must be a real number.", details={"param": name, "value": value}
        ) from exc
    if not np.isfinite(number) or number < 0.0:
        raise ConfigurationError(
            f"Argument '{name}' must be finite and non-negative, got {value}.",
            details={"param": name, "value": value},
        )
    return number


def validate_choice(value: Any, name: str, choices: tuple[str, ...]) -> str:
    """Ensure ``value`` is one of ``choices``."""
    if value not in choices:
        raise ConfigurationError(
            f"Argument '{name}' must be one of {choices}, got {value!r}.",
            details={"param": name, "value": value, "choices": choices},
        )
    return str(value)


__all__ = [
    "validate_batch",
    "validate_choice",
    "validate_instance",
    "validate_non_empty",
    "validate_non_negative",
    "validate_not_none",
    "validate_positive_int",
    "validate_seed",
]

"""Utility helpers for perturbation_explanations."""

from __future__ import annotations

from .exceptions import (
    ConfigurationError,
    DataShapeError,
    ExplanationError,
    ModelNotSupportedError,
    NotFittedError,
    NumericError,
    UnsupportedOperationError,
    ValidationError,
    explain_exception,
)
from .perturbation import baseline_noise, gaussian_perturbation, uniform_perturbation
from .rng import derive_seeds, set_rng_seed, spawn_feature_generators

__all__ = [
    "ConfigurationError",
    "DataShapeError",
    "ExplanationError",
    "ModelNotSupportedError",
    "NotFittedError",
    "NumericError",
    "UnsupportedOperationError",
    "ValidationError",
    "explain_exception",
    "baseline_noise",
    "gaussian_perturbation",
    "uniform_perturbation",
    "derive_seeds",
    "set_rng_seed",
    "spawn_feature_generators",
]

"""Model capability protocols and guarded prediction helpers.

The engine only ever talks to models through :class:`ModelCapability`. Model
adapters for concrete libraries live outside this package; they implement
``predict`` (and optionally ``predict_batch``) and the engine checks for those
capabilities explicitly instead of probing arbitrary attributes.
"""

from __future__ import annotations

import math
from typing import Any, Protocol, Sequence, runtime_checkable

import numpy as np

from ..utils.exceptions import DataShapeError, ModelNotSupportedError, NumericError


@runtime_checkable
class ModelCapability(Protocol):
    """Pure scalar predictor, safe to call concurrently."""

    def predict(self, features: Sequence[float]) -> float:
        """Return the model output for a single feature vector."""
        ...


@runtime_checkable
class BatchModelCapability(ModelCapability, Protocol):
    """Predictor that can also score a 2D matrix of feature vectors in one call."""

    def predict_batch(self, matrix: np.ndarray) -> Sequence[float]:
        """Return one model output per row of ``matrix``."""
        ...


@runtime_checkable
class ExplainerCapability(Protocol):
    """Anything that turns ``(model, instance)`` into an explanation."""

    def explain(self, model: ModelCapability, instance: Sequence[float]) -> Any:
        """Return an ``Explanation`` of ``model`` at ``instance``."""
        ...


@runtime_checkable
class ReseedableExplainer(ExplainerCapability, Protocol):
    """Explainer that can produce a copy of itself driven by another seed."""

    def with_seed(self, seed: int) -> "ReseedableExplainer":
        """Return an equivalent explainer using ``seed``."""
        ...


@runtime_checkable
class NestableExplainer(ExplainerCapability, Protocol):
    """Explainer that can hand out a copy which does not fan out on its own."""

    def without_fan_out(self, *, share_buffers: bool = True) -> "NestableExplainer":
        """Return an equivalent explainer that explains on the calling thread."""
        ...


def ensure_model_capability(model) -> None:
    """Raise ``ModelNotSupportedError`` when ``model`` lacks a callable ``predict``."""
    if model is None:
        raise ModelNotSupportedError("Model must not be None.")
    if not isinstance(model, ModelCapability):
        raise ModelNotSupportedError(
            f"Model of type {type(model).__name__} does not expose predict(features).",
            details={"model_type": type(model).__name__},
        )


def supports_batch(model) -> bool:
    """Return True when the model offers ``predict_batch``."""
    return isinstance(model, BatchModelCapability)


def predict_finite(model: ModelCapability, features: np.ndarray) -> float:
    """Call ``model.predict`` on a fresh copy of ``features`` and check the result.

    Raises
    ------
    NumericError
        When the prediction cannot be converted to float or is not finite.
    """
    raw = model.predict(np.array(features, dtype=float, copy=True))
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise NumericError(
            "Model prediction is not a real number.", details={"prediction": repr(raw)}
        ) from exc
    if not math.isfinite(value):
        raise NumericError("Model prediction is not finite.", details={"prediction": value})
    return value


def predict_rows(model: ModelCapability, matrix: np.ndarray) -> np.ndarray:
    """Score every row of ``matrix``, batching when the model allows it."""
    if supports_batch(model):
        raw = np.asarray(model.predict_batch(np.array(matrix, dtype=float, copy=True)), dtype=float)
        raw = raw.reshape(-1)
        if raw.shape[0] != matrix.shape[0]:
            raise DataShapeError(
                "predict_batch returned the wrong number of predictions.",
                details={"expected": matrix.shape[0], "actual": raw.shape[0]},
            )
        if not np.all(np.isfinite(raw)):
            raise NumericError(
                "Model prediction is not finite.",
                details={"non_finite_rows": np.flatnonzero(~np.isfinite(raw)).tolist()},
            )
        return raw
    return np.array([predict_finite(model, row) for row in matrix], dtype=float)


__all__ = [
    "BatchModelCapability",
    "ExplainerCapability",
    "ModelCapability",
    "NestableExplainer",
    "ReseedableExplainer",
    "ensure_model_capability",
    "predict_finite",
    "predict_rows",
    "supports_batch",
]

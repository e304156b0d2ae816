"""Domain models for perturbation explanations.

These frozen dataclasses are the engine's only output contract: renderers,
monitoring and export collaborators consume :class:`Explanation` values and
never see the mutable scratch state used while sampling.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from ..utils.exceptions import DataShapeError, NumericError, ValidationError

ALGORITHM_VERSION = "1.0.0"


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class FeatureAttribution:
    """Attribution of a single feature in a prediction.

    ``importance`` is signed; ``stability_score`` is 1.0 for a perfectly
    stable estimate and 0.0 for a maximally unstable one. ``std_dev`` is the
    sample standard deviation of the per-trial prediction differences.
    """

    feature: str
    importance: float
    stability_score: float = 1.0
    std_dev: float = 0.0

    def __post_init__(self) -> None:
        """Validate the attribution values."""
        if not isinstance(self.feature, str) or not self.feature.strip():
            raise ValidationError("Feature name cannot be empty.", details={"feature": self.feature})
        if not math.isfinite(self.importance):
            raise NumericError(
                f"Importance of feature '{self.feature}' must be finite.",
                details={"feature": self.feature, "importance": self.importance},
            )
        if not math.isfinite(self.stability_score) or not 0.0 <= self.stability_score <= 1.0:
            raise ValidationError(
                f"Stability score of feature '{self.feature}' must lie in [0, 1].",
                details={"feature": self.feature, "stability_score": self.stability_score},
            )
        if not math.isfinite(self.std_dev) or self.std_dev < 0.0:
            raise NumericError(
                f"Standard deviation of feature '{self.feature}' must be finite and non-negative.",
                details={"feature": self.feature, "std_dev": self.std_dev},
            )

    @property
    def confidence_interval(self) -> float:
        """Return the uncertainty width ``1 - stability_score`` clamped to ``[0, 1]``."""
        return _clamp_unit(1.0 - self.stability_score)

    @property
    def has_uncertainty(self) -> bool:
        """Return True when the estimate carries any sampling uncertainty."""
        return self.confidence_interval > 0.0


@dataclass(frozen=True)
class ExplanationMetadata:
    """Reproducibility metadata attached to every explanation.

    Identical ``(model, input, seed, trials, algorithm_version)`` regenerate
    bit-identical attributions under sequential execution.
    """

    explainer_name: str
    seed: int
    trials: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    algorithm_version: str | None = ALGORITHM_VERSION
    strategy: str = "sequential"
    converged: bool | None = None
    iterations: int = 1
    custom: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate counters and freeze the custom mapping."""
        if not self.explainer_name:
            raise ValidationError("Explainer name is required.")
        if self.trials < 0:
            raise ValidationError("Trials must be non-negative.", details={"trials": self.trials})
        if self.iterations < 1:
            raise ValidationError(
                "Iterations must be positive.", details={"iterations": self.iterations}
            )
        object.__setattr__(self, "custom", MappingProxyType(dict(self.custom)))

    def to_dict(self) -> dict[str, Any]:
        """Export the metadata as a plain mapping for serialization collaborators."""
        payload: dict[str, Any] = {
            "explainer_name": self.explainer_name,
            "seed": self.seed,
            "trials": self.trials,
            "timestamp": self.timestamp.isoformat(),
            "strategy": self.strategy,
            "iterations": self.iterations,
        }
        if self.algorithm_version is not None:
            payload["algorithm_version"] = self.algorithm_version
        if self.converged is not None:
            payload["converged"] = self.converged
        if self.custom:
            payload["custom"] = dict(self.custom)
        return payload


@dataclass(frozen=True)
class Explanation:
    """Explanation of one prediction: per-feature attributions plus metadata."""

    prediction: float
    baseline: float
    attributions: Tuple[FeatureAttribution, ...]
    metadata: ExplanationMetadata

    def __post_init__(self) -> None:
        """Check finiteness and freeze the attribution sequence."""
        if not math.isfinite(self.prediction):
            raise NumericError("Prediction must be finite.", details={"prediction": self.prediction})
        if not math.isfinite(self.baseline):
            raise NumericError("Baseline must be finite.", details={"baseline": self.baseline})
        object.__setattr__(self, "attributions", tuple(self.attributions))

    def __len__(self) -> int:
        return len(self.attributions)

    @property
    def feature_names(self) -> Tuple[str, ...]:
        """Return feature names in input order."""
        return tuple(attr.feature for attr in self.attributions)

    def importances(self) -> np.ndarray:
        """Return the importance vector in input feature order."""
        return np.array([attr.importance for attr in self.attributions], dtype=float)

    def top_attributions(self, n: int | None = None) -> Tuple[FeatureAttribution, ...]:
        """Return attributions sorted by descending absolute importance, optionally truncated."""
        ranked = sorted(self.attributions, key=lambda attr: abs(attr.importance), reverse=True)
        if n is not None:
            ranked = ranked[: max(0, n)]
        return tuple(ranked)

    @property
    def stability_score(self) -> float:
        """Return the mean per-feature stability (1.0 for an empty explanation)."""
        if not self.attributions:
            return 1.0
        return float(np.mean([attr.stability_score for attr in self.attributions]))

    def __str__(self) -> str:
        return (
            f"Explanation(prediction={self.prediction:.4f}, baseline={self.baseline:.4f}, "
            f"features={len(self.attributions)}, stability={self.stability_score:.3f})"
        )


@dataclass(frozen=True)
class ModelContext:
    """Feature names and per-feature baseline values for one model."""

    feature_names: Tuple[str, ...]
    baselines: Tuple[float, ...]

    def __post_init__(self) -> None:
        """Copy inputs into tuples and check they line up."""
        names = tuple(str(name) for name in self.feature_names)
        baselines = tuple(float(value) for value in self.baselines)
        if len(names) != len(baselines):
            raise DataShapeError(
                "Feature names and baselines must have the same length.",
                details={"feature_names": len(names), "baselines": len(baselines)},
            )
        if not all(math.isfinite(value) for value in baselines):
            raise NumericError("Baselines must be finite.", details={"baselines": baselines})
        object.__setattr__(self, "feature_names", names)
        object.__setattr__(self, "baselines", baselines)

    @property
    def feature_count(self) -> int:
        """Return the number of features described by this context."""
        return len(self.feature_names)

    def baseline_array(self) -> np.ndarray:
        """Return a fresh numpy copy of the baselines."""
        return np.array(self.baselines, dtype=float)

    @classmethod
    def with_defaults(cls, feature_names: Sequence[str]) -> "ModelContext":
        """Create a context with all-zero baselines."""
        return cls(tuple(feature_names), tuple(0.0 for _ in feature_names))

    @classmethod
    def from_data(cls, data: Any, feature_names: Sequence[str] | None = None) -> "ModelContext":
        """Create a context whose baselines are the column means of ``data``.

        ``data`` may be a 2D array-like or a pandas DataFrame; for DataFrames the
        column labels are used as feature names unless ``feature_names`` is given.
        """
        if isinstance(data, pd.DataFrame):
            if feature_names is None:
                feature_names = [str(column) for column in data.columns]
            matrix = data.to_numpy(dtype=float)
        else:
            matrix = np.asarray(data, dtype=float)
        if matrix.ndim != 2 or matrix.shape[0] == 0:
            raise DataShapeError(
                "Data must be a non-empty 2D matrix (n_samples, n_features).",
                details={"shape": matrix.shape},
            )
        if feature_names is None:
            feature_names = [f"feature_{idx}" for idx in range(matrix.shape[1])]
        if len(feature_names) != matrix.shape[1]:
            raise DataShapeError(
                "Number of feature names does not match the data columns.",
                details={"feature_names": len(feature_names), "columns": matrix.shape[1]},
            )
        means = matrix.mean(axis=0)
        return cls(tuple(feature_names), tuple(float(value) for value in means))


__all__ = [
    "ALGORITHM_VERSION",
    "Explanation",
    "ExplanationMetadata",
    "FeatureAttribution",
    "ModelContext",
]

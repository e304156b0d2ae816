"""Explanation drift detection.

:class:`ExplanationDriftDetector` compares the feature-importance distribution
of a current batch of explanations against a stored baseline batch. Drift in
attributions often shows up before drift in predictions, when the model starts
relying on different features for the same outputs.

Each batch is reduced to a distribution: the mean absolute importance of every
feature over the explanations it appears in, normalised to sum to one. Two
distributions are compared with

- Jensen-Shannon divergence over the union of features,
- Spearman rank correlation over the common features,
- relative change of the Shannon entropy,
- the largest per-feature shift,

combined into one weighted score that maps onto a :class:`DriftLevel`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from ..explanations.models import Explanation
from ..utils.exceptions import NotFittedError, ValidationError

logger = logging.getLogger(__name__)

_LOG_FLOOR = 1e-10
_ENTROPY_FLOOR = 1e-10

JS_WEIGHT = 0.4
RANK_WEIGHT = 0.3
ENTROPY_WEIGHT = 0.2
SHIFT_WEIGHT = 0.1


class DriftLevel(Enum):
    """Severity of explanation drift.

    - NONE: score below 0.1.
    - LOW: score below 0.2.
    - MODERATE: score below 0.4.
    - HIGH: anything above.
    """

    NONE = "none"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"

    @classmethod
    def from_score(cls, score: float) -> "DriftLevel":
        """Return the level for an overall drift score."""
        if score < 0.1:
            return cls.NONE
        if score < 0.2:
            return cls.LOW
        if score < 0.4:
            return cls.MODERATE
        return cls.HIGH

    @property
    def recommendation(self) -> str:
        """Return the fixed operator recommendation for this level."""
        return _RECOMMENDATIONS[self]


_RECOMMENDATIONS = {
    DriftLevel.NONE: "No significant drift detected. Explanations remain stable.",
    DriftLevel.LOW: "Minor drift detected. Continue monitoring but no immediate action required.",
    DriftLevel.MODERATE: (
        "Moderate drift detected. Investigate potential causes and consider retraining."
    ),
    DriftLevel.HIGH: (
        "High drift detected. Urgent investigation required. "
        "Model behavior may have changed significantly."
    ),
}


@dataclass(frozen=True)
class DriftReport:
    """Outcome of one drift comparison."""

    js_divergence: float
    rank_correlation: float
    entropy_change: float
    max_feature_shift: float
    overall_score: float
    level: DriftLevel
    recommendation: str

    @property
    def has_drift(self) -> bool:
        """Return True for any level above NONE."""
        return self.level is not DriftLevel.NONE

    def to_dict(self) -> Dict[str, Any]:
        """Export the report as a plain mapping."""
        return {
            "js_divergence": self.js_divergence,
            "rank_correlation": self.rank_correlation,
            "entropy_change": self.entropy_change,
            "max_feature_shift": self.max_feature_shift,
            "overall_score": self.overall_score,
            "level": self.level.value,
            "recommendation": self.recommendation,
        }

    def summary(self) -> str:
        """Return a one-line description of the report."""
        return (
            f"DriftReport(score={self.overall_score:.3f}, level={self.level.name}, "
            f"JS={self.js_divergence:.3f}, rankCorr={self.rank_correlation:.3f}, "
            f"entropy={self.entropy_change:.3f}, maxShift={self.max_feature_shift:.3f})"
        )

    def __str__(self) -> str:
        return self.summary()


def aggregate_importances(explanations: Sequence[Explanation]) -> Dict[str, float]:
    """Return the normalised mean absolute importance per feature.

    Features are averaged over the explanations that contain them; the means
    are then scaled to sum to one. An all-zero batch stays all zero.
    """
    records = [
        (attr.feature, abs(attr.importance))
        for explanation in explanations
        for attr in explanation.attributions
    ]
    if not records:
        return {}
    frame = pd.DataFrame.from_records(records, columns=["feature", "importance"])
    means = frame.groupby("feature", sort=True)["importance"].mean()
    total = float(means.sum())
    if total > 0.0:
        means = means / total
    return {str(feature): float(value) for feature, value in means.items()}


def shannon_entropy(distribution: Mapping[str, float]) -> float:
    """Return ``-sum(p log p)`` over the strictly positive entries."""
    return float(-sum(p * math.log(p) for p in distribution.values() if p > 0.0))


def _kl_divergence(p: Mapping[str, float], q: Mapping[str, float], features: Sequence[str]) -> float:
    kl = 0.0
    for feature in features:
        p_val = p.get(feature, _LOG_FLOOR)
        q_val = max(q.get(feature, _LOG_FLOOR), _LOG_FLOOR)
        if p_val > 0.0:
            kl += p_val * math.log(p_val / q_val)
    return kl


def js_divergence(p: Mapping[str, float], q: Mapping[str, float]) -> float:
    """Return the Jensen-Shannon divergence over the union of features.

    Features missing from one side count as zero in the mixture and as the
    log floor ``1e-10`` inside the logarithms.
    """
    features = sorted(set(p) | set(q))
    mixture = {f: (p.get(f, 0.0) + q.get(f, 0.0)) / 2.0 for f in features}
    return (_kl_divergence(p, mixture, features) + _kl_divergence(q, mixture, features)) / 2.0


def _ranks(distribution: Mapping[str, float], features: Sequence[str]) -> Dict[str, int]:
    ordered = sorted(features, key=lambda feature: (-distribution[feature], feature))
    return {feature: rank for rank, feature in enumerate(ordered)}


def spearman_correlation(p: Mapping[str, float], q: Mapping[str, float]) -> float:
    """Return Spearman's rho over the common features, ties broken by name.

    Fewer than two common features give 1.0.
    """
    common = sorted(set(p) & set(q))
    n = len(common)
    if n < 2:
        return 1.0
    ranks_p = _ranks(p, common)
    ranks_q = _ranks(q, common)
    sum_d2 = float(sum((ranks_p[f] - ranks_q[f]) ** 2 for f in common))
    return 1.0 - (6.0 * sum_d2) / (n * (n * n - 1))


def max_feature_shift(p: Mapping[str, float], q: Mapping[str, float]) -> float:
    """Return the largest absolute per-feature difference over the union."""
    features = set(p) | set(q)
    if not features:
        return 0.0
    return max(abs(q.get(f, 0.0) - p.get(f, 0.0)) for f in features)


class ExplanationDriftDetector:
    """Detect drift between a baseline and a current batch of explanations.

    Examples
    --------
    >>> detector = ExplanationDriftDetector()
    >>> detector.set_baseline(training_explanations)  # doctest: +SKIP
    >>> report = detector.detect(production_explanations)  # doctest: +SKIP
    >>> report.has_drift  # doctest: +SKIP
    """

    def __init__(self) -> None:
        self._baseline: Optional[Dict[str, float]] = None
        self._baseline_entropy = 0.0

    @property
    def has_baseline(self) -> bool:
        """Return True once :meth:`set_baseline` has been called."""
        return self._baseline is not None

    @property
    def baseline_distribution(self) -> Dict[str, float]:
        """Return a copy of the baseline importance distribution."""
        if self._baseline is None:
            raise NotFittedError("Baseline not set. Call set_baseline() first.")
        return dict(self._baseline)

    @staticmethod
    def _require_batch(explanations: Any, name: str) -> List[Explanation]:
        if explanations is None:
            raise ValidationError(f"{name} explanations must not be None.")
        batch = list(explanations)
        if not batch:
            raise ValidationError(f"{name} explanations cannot be empty.")
        for item in batch:
            if not isinstance(item, Explanation):
                raise ValidationError(
                    f"{name} batch must contain Explanation objects.",
                    details={"type": type(item).__name__},
                )
        return batch

    def set_baseline(self, explanations: Sequence[Explanation]) -> None:
        """Store the reference distribution computed from ``explanations``.

        Raises
        ------
        ValidationError
            If the batch is empty or contains non-explanations.
        """
        batch = self._require_batch(explanations, "Baseline")
        self._baseline = aggregate_importances(batch)
        self._baseline_entropy = shannon_entropy(self._baseline)
        logger.debug(
            "Drift baseline set from %d explanations over %d features",
            len(batch),
            len(self._baseline),
        )

    def reset(self) -> None:
        """Forget the baseline."""
        self._baseline = None
        self._baseline_entropy = 0.0

    def detect(self, explanations: Sequence[Explanation]) -> DriftReport:
        """Compare ``explanations`` with the baseline.

        Raises
        ------
        NotFittedError
            If no baseline has been set.
        ValidationError
            If the batch is empty or contains non-explanations.
        """
        if self._baseline is None:
            raise NotFittedError("Baseline not set. Call set_baseline() first.")
        batch = self._require_batch(explanations, "Current")
        current = aggregate_importances(batch)

        js = js_divergence(self._baseline, current)
        rho = spearman_correlation(self._baseline, current)
        current_entropy = shannon_entropy(current)
        entropy_delta = abs(current_entropy - self._baseline_entropy)
        if self._baseline_entropy >= _ENTROPY_FLOOR:
            entropy_delta /= self._baseline_entropy
        shift = max_feature_shift(self._baseline, current)

        score = (
            JS_WEIGHT * js
            + RANK_WEIGHT * (1.0 - rho)
            + ENTROPY_WEIGHT * entropy_delta
            + SHIFT_WEIGHT * shift
        )
        level = DriftLevel.from_score(score)
        report = DriftReport(
            js_divergence=float(js),
            rank_correlation=float(rho),
            entropy_change=float(entropy_delta),
            max_feature_shift=float(shift),
            overall_score=float(score),
            level=level,
            recommendation=level.recommendation,
        )
        if report.has_drift:
            logger.info("Explanation drift detected: %s", report.summary())
        else:
            logger.debug("No explanation drift: %s", report.summary())
        return report


def distribution_frame(explanations: Sequence[Explanation]) -> pd.DataFrame:
    """Return the normalised importance distribution as a one-column DataFrame."""
    distribution = aggregate_importances(explanations)
    return pd.DataFrame({"importance": pd.Series(distribution, dtype=float)})


__all__ = [
    "DriftLevel",
    "DriftReport",
    "ExplanationDriftDetector",
    "aggregate_importances",
    "distribution_frame",
    "js_divergence",
    "max_feature_shift",
    "shannon_entropy",
    "spearman_correlation",
]

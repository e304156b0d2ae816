"""Variance-based stability of repeated explanations."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, List

import numpy as np

from ..core.capabilities import ExplainerCapability, ReseedableExplainer
from ..core.validation import validate_instance, validate_seed
from ..utils.exceptions import ValidationError
from ..utils.rng import derive_seeds

logger = logging.getLogger(__name__)


class VarianceStabilityMetric:
    """Score how much attributions vary across repeated explanations.

    The same input is explained ``trials`` times; a reseedable explainer gets a
    different derived seed per trial. The score is
    ``1 / (1 + mean per-feature sample variance)``, so 1.0 means the
    attributions never changed.

    Parameters
    ----------
    trials : int, default=5
        Number of repeated explanations, at least 2.
    seed : int, default=0
        Root of the derived per-trial seeds.

    Raises
    ------
    ValidationError
        If ``trials`` is below 2.
    ConfigurationError
        If ``seed`` is not a non-negative integer.
    """

    def __init__(self, trials: int = 5, *, seed: int = 0) -> None:
        if isinstance(trials, bool) or not isinstance(trials, (int, np.integer)) or trials < 2:
            raise ValidationError("Trials must be at least 2.", details={"trials": trials})
        self.trials = int(trials)
        self.seed = validate_seed(seed)

    def compute(self, model: Any, explainer: ExplainerCapability, instance: Any) -> float:
        """Return the stability score of ``explainer`` on ``instance``."""
        if model is None or explainer is None:
            raise ValidationError("Model and explainer cannot be None.")
        values = validate_instance(instance)
        if isinstance(explainer, ReseedableExplainer):
            explainers = [explainer.with_seed(seed) for seed in derive_seeds(self.seed, self.trials)]
        else:
            explainers = [explainer] * self.trials

        importances: Dict[str, List[float]] = defaultdict(list)
        for trial_explainer in explainers:
            explanation = trial_explainer.explain(model, values)
            for attr in explanation.attributions:
                importances[attr.feature].append(attr.importance)
        if not importances:
            return 1.0

        variances = [
            float(np.var(samples, ddof=1)) if len(samples) >= 2 else 0.0
            for samples in importances.values()
        ]
        mean_variance = float(np.mean(variances))
        stability = 1.0 / (1.0 + mean_variance)
        logger.debug(
            "Average importance variance %.6g over %d trials, stability %.4f",
            mean_variance,
            self.trials,
            stability,
        )
        return stability


__all__ = ["VarianceStabilityMetric"]

"""Robustness of explanations under input perturbation.

:class:`RobustnessEvaluator` measures how far an explanation moves when the
explained instance is nudged by small random noise. For each perturbed copy
``x'`` of ``x`` it computes the relative attribution drift
``||phi(x') - phi(x)|| / ||phi(x)||`` and reports ``1 - drift`` as stability.
"""

from __future__ import annotations

import functools
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np

from ..core.capabilities import ExplainerCapability, NestableExplainer, ensure_model_capability
from ..core.validation import validate_instance, validate_positive_int, validate_seed
from ..explanations.models import Explanation
from ..parallel.parallel import ParallelExecutor
from ..utils.exceptions import ConfigurationError, UnsupportedOperationError, ValidationError
from ..utils.perturbation import gaussian_perturbation, uniform_perturbation
from ..utils.rng import set_rng_seed

logger = logging.getLogger(__name__)

MIN_PERTURBATIONS = 10
MAX_MAGNITUDE = 0.5
_NORM_FLOOR = 1e-10


class PerturbationType(Enum):
    """Noise model applied to the explained instance.

    - GAUSSIAN: independent ``N(0, magnitude)`` noise per feature.
    - UNIFORM: independent ``U(-magnitude, magnitude)`` noise per feature.
    - ADVERSARIAL: gradient-guided worst-case noise (not available).
    """

    GAUSSIAN = "gaussian"
    UNIFORM = "uniform"
    ADVERSARIAL = "adversarial"


@dataclass(frozen=True)
class RobustnessReport:
    """Aggregate stability of explanations over ``num_perturbations`` perturbed inputs."""

    score: float
    mean_stability: float
    std_stability: float
    min_stability: float
    max_drift: float
    num_perturbations: int
    magnitude: float
    perturbation_type: PerturbationType
    elapsed_seconds: float

    @property
    def interpretation(self) -> str:
        """Return the qualitative band of the score."""
        if self.score > 0.95:
            return "Highly robust - Safe for production"
        if self.score > 0.85:
            return "Moderately robust - Monitor in production"
        return "Unstable - Investigate before deployment"

    @property
    def is_robust(self) -> bool:
        """Return True when the score is above 0.85."""
        return self.score > 0.85

    def to_dict(self) -> Dict[str, Any]:
        """Export the report as a plain mapping."""
        return {
            "score": self.score,
            "mean_stability": self.mean_stability,
            "std_stability": self.std_stability,
            "min_stability": self.min_stability,
            "max_drift": self.max_drift,
            "num_perturbations": self.num_perturbations,
            "magnitude": self.magnitude,
            "perturbation_type": self.perturbation_type.value,
            "elapsed_seconds": self.elapsed_seconds,
            "interpretation": self.interpretation,
        }

    def summary(self) -> str:
        """Return a multi-line human readable summary."""
        return (
            f"Robustness Score: {self.score:.3f} ({self.interpretation})\n"
            f"Mean Stability: {self.mean_stability:.3f} +/- {self.std_stability:.3f}\n"
            f"Worst-case Drift: {self.max_drift:.3f}\n"
            f"Perturbations: {self.num_perturbations} x {self.magnitude * 100:.1f}% noise "
            f"({self.perturbation_type.name})\n"
            f"Evaluation Time: {self.elapsed_seconds * 1000:.1f}ms"
        )


def attribution_drift(baseline: np.ndarray, perturbed: np.ndarray) -> float:
    """Return ``||perturbed - baseline|| / ||baseline||``.

    When ``||baseline||^2`` is below ``1e-10`` the plain norm of the difference
    is returned instead.
    """
    if baseline.shape != perturbed.shape:
        raise ValidationError(
            "Attribution vectors must have the same length.",
            details={"baseline": baseline.shape, "perturbed": perturbed.shape},
        )
    diff = perturbed - baseline
    sum_sq_diff = float(np.dot(diff, diff))
    sum_sq_base = float(np.dot(baseline, baseline))
    if sum_sq_base < _NORM_FLOOR:
        return float(np.sqrt(sum_sq_diff))
    return float(np.sqrt(sum_sq_diff / sum_sq_base))


def _explain_one(explainer: ExplainerCapability, model: Any, instance: np.ndarray) -> Explanation:
    return explainer.explain(model, instance)


class RobustnessEvaluator:
    """Evaluate how stable explanations are under small input perturbations.

    Parameters
    ----------
    num_perturbations : int, default=100
        Number of perturbed inputs; at least 10.
    magnitude : float, default=0.01
        Noise scale, in ``(0, 0.5]``.
    perturbation_type : PerturbationType or str, default=PerturbationType.GAUSSIAN
        Noise model. ``ADVERSARIAL`` is rejected at evaluation time.
    seed : int, optional
        Seed of the perturbation noise; None draws fresh entropy.
    executor : ParallelExecutor, optional
        Fans the perturbed explanations out at instance level. Explainers
        offering ``without_fan_out`` are then run on the worker threads
        without their own per-feature fan-out.

    Raises
    ------
    ConfigurationError
        If ``num_perturbations`` or ``magnitude`` are out of range, or ``seed`` is negative.
    """

    def __init__(
        self,
        num_perturbations: int = 100,
        magnitude: float = 0.01,
        perturbation_type: PerturbationType | str = PerturbationType.GAUSSIAN,
        *,
        seed: Optional[int] = None,
        executor: Optional[ParallelExecutor] = None,
    ) -> None:
        self.num_perturbations = validate_positive_int(
            num_perturbations, "num_perturbations", minimum=MIN_PERTURBATIONS
        )
        try:
            magnitude = float(magnitude)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                "magnitude must be a real number.", details={"magnitude": magnitude}
            ) from exc
        if not 0.0 < magnitude <= MAX_MAGNITUDE:
            raise ConfigurationError(
                f"magnitude must be in (0, {MAX_MAGNITUDE}].", details={"magnitude": magnitude}
            )
        self.magnitude = magnitude
        try:
            self.perturbation_type = PerturbationType(perturbation_type)
        except ValueError as exc:
            raise ConfigurationError(
                f"Unknown perturbation type {perturbation_type!r}.",
                details={"choices": tuple(item.value for item in PerturbationType)},
            ) from exc
        self.seed = validate_seed(seed, optional=True)
        self.executor = executor

    def _perturb(self, instance: np.ndarray, rng: np.random.Generator) -> np.ndarray:
        if self.perturbation_type is PerturbationType.GAUSSIAN:
            return gaussian_perturbation(instance, self.magnitude, rng)
        if self.perturbation_type is PerturbationType.UNIFORM:
            return uniform_perturbation(instance, self.magnitude, rng)
        raise UnsupportedOperationError(
            "Adversarial perturbation is not implemented.",
            details={"perturbation_type": self.perturbation_type.value},
        )

    def _task_explainer(self, explainer: ExplainerCapability) -> ExplainerCapability:
        """Return the explainer run inside instance tasks; fan-outs never nest."""
        if not isinstance(explainer, NestableExplainer):
            return explainer
        share_buffers = self.executor is None or self.executor.active_strategy != "processes"
        return explainer.without_fan_out(share_buffers=share_buffers)

    def perturbed_instances(self, instance: Any) -> List[np.ndarray]:
        """Return the perturbed copies of ``instance`` in evaluation order."""
        values = validate_instance(instance)
        rng = set_rng_seed(self.seed)
        return [self._perturb(values, rng) for _ in range(self.num_perturbations)]

    def evaluate(self, model: Any, instance: Any, explainer: ExplainerCapability) -> RobustnessReport:
        """Explain ``instance`` and its perturbations and summarise the attribution drift.

        Parameters
        ----------
        model : ModelCapability
            The model being explained.
        instance : array-like of shape (n_features,)
            The reference input.
        explainer : ExplainerCapability
            Explainer used for the reference and every perturbed input.

        Returns
        -------
        RobustnessReport
            ``score`` is the mean stability ``1 - drift``.

        Raises
        ------
        UnsupportedOperationError
            For ``PerturbationType.ADVERSARIAL``.
        """
        if not isinstance(explainer, ExplainerCapability):
            raise ValidationError(
                "explainer must expose explain(model, instance).",
                details={"type": type(explainer).__name__},
            )
        ensure_model_capability(model)
        start = time.perf_counter()
        values = validate_instance(instance)
        perturbed = self.perturbed_instances(values)

        reference = explainer.explain(model, values).importances()
        if self.executor is not None and self.executor.config.enabled:
            task = functools.partial(_explain_one, self._task_explainer(explainer), model)
            explanations = self.executor.map(task, perturbed)
        else:
            explanations = [explainer.explain(model, item) for item in perturbed]

        drifts = np.array(
            [attribution_drift(reference, explanation.importances()) for explanation in explanations]
        )
        stabilities = 1.0 - drifts
        mean_stability = float(np.mean(stabilities))
        report = RobustnessReport(
            score=mean_stability,
            mean_stability=mean_stability,
            std_stability=float(np.std(stabilities)),
            min_stability=float(np.min(stabilities)),
            max_drift=float(np.max(drifts)),
            num_perturbations=self.num_perturbations,
            magnitude=self.magnitude,
            perturbation_type=self.perturbation_type,
            elapsed_seconds=time.perf_counter() - start,
        )
        logger.debug(
            "Robustness score %.3f over %d %s perturbations",
            report.score,
            self.num_perturbations,
            self.perturbation_type.value,
        )
        return report


__all__ = ["PerturbationType", "RobustnessEvaluator", "RobustnessReport", "attribution_drift"]

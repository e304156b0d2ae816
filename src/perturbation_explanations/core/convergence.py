"""Adaptive sample-count control for perturbation explanations.

:class:`ConvergentExplainer` grows the number of samples per feature until the
importance vector stops moving, with ``max_samples`` as a hard bound on the
work done for a single explanation.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd

from ..explanations.models import Explanation, ModelContext
from ..utils.exceptions import ConfigurationError
from .perturbation_explainer import PerturbationExplainer
from .validation import validate_positive_int

logger = logging.getLogger(__name__)

_RELATIVE_FLOOR = 1e-10


def max_relative_change(previous: np.ndarray, current: np.ndarray) -> float:
    """Return ``max_i |current_i - previous_i| / max(|previous_i|, 1e-10)``."""
    if previous.size == 0:
        return 0.0
    denominators = np.maximum(np.abs(previous), _RELATIVE_FLOOR)
    return float(np.max(np.abs(current - previous) / denominators))


@dataclass(frozen=True)
class ConvergenceReport:
    """Iteration history of a convergence analysis.

    ``sample_counts[k]`` and ``max_changes[k]`` describe the ``k``-th iteration
    after the first one; the first iteration has no predecessor to compare to.
    """

    sample_counts: Tuple[int, ...]
    max_changes: Tuple[float, ...]
    epsilon: float

    @property
    def has_converged(self) -> bool:
        """Return True when any iteration moved less than ``epsilon``."""
        return any(change < self.epsilon for change in self.max_changes)

    @property
    def convergence_samples(self) -> Optional[int]:
        """Return the first sample count that converged, or None."""
        for samples, change in zip(self.sample_counts, self.max_changes):
            if change < self.epsilon:
                return samples
        return None

    def summary(self) -> str:
        """Return a human readable iteration history."""
        lines = [
            "Convergence Analysis:",
            f"Epsilon threshold: {self.epsilon:.4f}",
            f"Converged: {self.has_converged}",
        ]
        if self.has_converged:
            lines.append(f"Samples required: {self.convergence_samples}")
        lines.append("")
        lines.append("Iteration History:")
        for samples, change in zip(self.sample_counts, self.max_changes):
            marker = " (converged)" if change < self.epsilon else ""
            lines.append(f"  Samples={samples}: maxChange={change:.4f}{marker}")
        return "\n".join(lines)

    def to_dataframe(self) -> pd.DataFrame:
        """Return the iteration history as a DataFrame, one row per compared iteration."""
        return pd.DataFrame(
            {
                "samples": list(self.sample_counts),
                "max_change": list(self.max_changes),
                "converged": [change < self.epsilon for change in self.max_changes],
            }
        )

    def __str__(self) -> str:
        return self.summary()


class ConvergentExplainer:
    """Explainer that adds samples until attributions stabilise.

    Starting at ``min_samples``, each iteration re-explains the instance with
    ``step`` more samples (capped at ``max_samples``) and compares the new
    importance vector with the previous one. The loop stops when the largest
    relative change drops below ``epsilon``, or after the iteration at
    ``max_samples``. Because every feature draws from its own seeded stream,
    an iteration with ``n + step`` samples reuses the ``n`` draws of the
    previous one.

    Parameters
    ----------
    context : ModelContext
        Feature names and baseline values.
    epsilon : float, default=0.01
        Convergence threshold on the maximum relative importance change.
    min_samples, max_samples : int, default=10, 100
        First and last sample counts tried.
    step : int, default=10
        Sample increment between iterations.
    noise, seed, strategy, executor, buffer_pool, extreme_cv_policy
        Forwarded to :class:`PerturbationExplainer`.
    """

    def __init__(
        self,
        context: ModelContext,
        *,
        epsilon: float = 0.01,
        min_samples: int = 10,
        max_samples: int = 100,
        step: int = 10,
        noise: float = 0.01,
        seed: int = 42,
        strategy: str = "sequential",
        executor: Any = None,
        buffer_pool: Any = None,
        extreme_cv_policy: str = "unstable",
    ) -> None:
        try:
            epsilon = float(epsilon)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                "epsilon must be a real number.", details={"epsilon": epsilon}
            ) from exc
        if not np.isfinite(epsilon) or epsilon <= 0.0:
            raise ConfigurationError("epsilon must be positive.", details={"epsilon": epsilon})
        self.epsilon = epsilon
        self.min_samples = validate_positive_int(min_samples, "min_samples")
        self.max_samples = validate_positive_int(max_samples, "max_samples")
        if self.min_samples > self.max_samples:
            raise ConfigurationError(
                "min_samples must not exceed max_samples.",
                details={"min_samples": self.min_samples, "max_samples": self.max_samples},
            )
        self.step = validate_positive_int(step, "step")
        self._explainer = PerturbationExplainer(
            context,
            samples=self.min_samples,
            noise=noise,
            seed=seed,
            strategy=strategy,
            executor=executor,
            buffer_pool=buffer_pool,
            extreme_cv_policy=extreme_cv_policy,
            name="convergent",
        )

    @property
    def context(self) -> ModelContext:
        """Return the model context shared with the inner explainer."""
        return self._explainer.context

    @property
    def seed(self) -> int:
        """Return the root seed of the inner explainer."""
        return self._explainer.seed

    def with_seed(self, seed: int) -> "ConvergentExplainer":
        """Return a copy of this explainer driven by ``seed``."""
        clone = copy.copy(self)
        clone._explainer = self._explainer.with_seed(seed)
        return clone

    def without_fan_out(self, *, share_buffers: bool = True) -> "ConvergentExplainer":
        """Return a copy whose iterations never fan out per feature."""
        clone = copy.copy(self)
        clone._explainer = self._explainer.without_fan_out(share_buffers=share_buffers)
        return clone

    def schedule(self) -> List[int]:
        """Return the sample counts tried when convergence never happens."""
        counts = [self.min_samples]
        while counts[-1] < self.max_samples:
            counts.append(min(counts[-1] + self.step, self.max_samples))
        return counts

    def _iterate(self, model: Any, instance: Any) -> Iterator[Tuple[int, Explanation]]:
        for samples in self.schedule():
            yield samples, self._explainer.with_samples(samples).explain(model, instance)

    @staticmethod
    def _finish(explanation: Explanation, *, converged: bool, iterations: int) -> Explanation:
        metadata = dataclasses.replace(
            explanation.metadata, converged=converged, iterations=iterations
        )
        return dataclasses.replace(explanation, metadata=metadata)

    def explain(self, model: Any, instance: Any) -> Explanation:
        """Explain ``instance`` with as few samples as needed to converge.

        Returns
        -------
        Explanation
            The last computed explanation. ``metadata.trials`` is the sample
            count used, ``metadata.converged`` tells whether the threshold was
            met and ``metadata.iterations`` how many iterations ran.
        """
        previous: Optional[np.ndarray] = None
        current: Optional[Explanation] = None
        iterations = 0
        for samples, current in self._iterate(model, instance):
            iterations += 1
            importances = current.importances()
            if previous is None:
                # one sample always has zero spread
                if samples > 1 and all(attr.std_dev == 0.0 for attr in current.attributions):
                    logger.info(
                        "Converged at %d samples: perturbation response has zero variance",
                        samples,
                    )
                    return self._finish(current, converged=True, iterations=iterations)
            else:
                change = max_relative_change(previous, importances)
                logger.debug(
                    "Iteration %d: samples=%d, maxChange=%.4f", iterations, samples, change
                )
                if change < self.epsilon:
                    logger.info(
                        "Converged after %d iterations with %d samples", iterations, samples
                    )
                    return self._finish(current, converged=True, iterations=iterations)
            previous = importances

        logger.warning(
            "Did not converge within %d samples (epsilon=%s)", self.max_samples, self.epsilon
        )
        return self._finish(current, converged=False, iterations=iterations)

    explain_convergent = explain

    def analyze_convergence(self, model: Any, instance: Any) -> ConvergenceReport:
        """Run the full sample schedule and record the change of every iteration."""
        sample_counts: List[int] = []
        max_changes: List[float] = []
        previous: Optional[np.ndarray] = None
        for samples, current in self._iterate(model, instance):
            importances = current.importances()
            if previous is not None:
                sample_counts.append(samples)
                max_changes.append(max_relative_change(previous, importances))
            previous = importances
        return ConvergenceReport(tuple(sample_counts), tuple(max_changes), self.epsilon)


__all__ = ["ConvergenceReport", "ConvergentExplainer", "max_relative_change"]

"""Perturbation-based attribution explainer.

:class:`PerturbationExplainer` estimates, per feature, how much the model output
moves when that feature is replaced by a noisy baseline value. It validates its
inputs, builds an explain request and delegates execution to the
:class:`~perturbation_explanations.core.explain.ExplanationOrchestrator`.
"""

from __future__ import annotations

import contextlib
import logging
import time
from typing import Any, Iterator, List, Optional

from ..explanations.models import Explanation, ModelContext
from ..parallel.parallel import ParallelConfig, ParallelExecutor
from ..utils.exceptions import ValidationError
from .capabilities import ensure_model_capability
from .explain import (
    STRATEGIES,
    ExplainBatchRequest,
    ExplainConfig,
    ExplainRequest,
    ExplanationOrchestrator,
)
from .explain._computation import EXTREME_CV_POLICIES
from .validation import (
    validate_batch,
    validate_choice,
    validate_instance,
    validate_non_negative,
    validate_positive_int,
    validate_seed,
)

logger = logging.getLogger(__name__)


class PerturbationExplainer:
    """Monte-Carlo perturbation explainer for scalar-output models.

    For every feature the explainer draws ``samples`` values
    ``baseline + u * noise`` with ``u ~ U[0, 1)`` from the feature's own seeded
    stream, substitutes each into a copy of the instance and records the
    absolute change of the model output. The mean change is the feature's
    importance and its coefficient of variation drives the stability score.

    Parameters
    ----------
    context : ModelContext
        Feature names and baseline values of the model.
    samples : int, default=100
        Perturbation trials per feature. ``0`` yields zero importances.
    noise : float, default=0.01
        Width of the uniform offset added to the baseline value.
    seed : int, default=42
        Root seed; identical inputs and seed reproduce identical attributions.
    strategy : {"sequential", "concurrent", "vectorized"}, default="sequential"
        Execution strategy. ``"concurrent"`` without an ``executor`` uses a
        short-lived thread pool per call.
    executor : ParallelExecutor, optional
        Executor used by the concurrent strategy and by :meth:`explain_batch`.
    buffer_pool : ScratchBufferPool, optional
        Pool lending scratch buffers to the per-feature computations.
    extreme_cv_policy : {"unstable", "stable"}, default="unstable"
        Stability assigned when the coefficient of variation is non-finite or
        above 10: ``"unstable"`` gives 0.0, ``"stable"`` gives 1.0.
    name : str, default="permutation"
        Explainer name recorded in the explanation metadata.

    Examples
    --------
    >>> context = ModelContext.with_defaults(["x0", "x1"])
    >>> explainer = PerturbationExplainer(context, samples=50, noise=0.0)
    >>> explanation = explainer.explain(model, [1.0, 2.0])  # doctest: +SKIP
    """

    def __init__(
        self,
        context: ModelContext,
        *,
        samples: int = 100,
        noise: float = 0.01,
        seed: int = 42,
        strategy: str = "sequential",
        executor: Optional[ParallelExecutor] = None,
        buffer_pool: Any = None,
        extreme_cv_policy: str = "unstable",
        name: str = "permutation",
        orchestrator: Optional[ExplanationOrchestrator] = None,
    ) -> None:
        if not isinstance(context, ModelContext):
            raise ValidationError(
                "context must be a ModelContext.", details={"type": type(context).__name__}
            )
        self.context = context
        self.samples = validate_positive_int(samples, "samples", minimum=0)
        self.noise = validate_non_negative(noise, "noise")
        self.seed = validate_seed(seed)
        self.strategy = validate_choice(strategy, "strategy", STRATEGIES)
        self.extreme_cv_policy = validate_choice(
            extreme_cv_policy, "extreme_cv_policy", EXTREME_CV_POLICIES
        )
        self.executor = executor
        self.buffer_pool = buffer_pool
        self.name = name
        self._orchestrator = orchestrator or ExplanationOrchestrator()

    def __repr__(self) -> str:
        return (
            f"PerturbationExplainer(features={self.context.feature_count}, samples={self.samples}, "
            f"noise={self.noise}, seed={self.seed}, strategy={self.strategy!r})"
        )

    def _replace(self, **overrides: Any) -> "PerturbationExplainer":
        settings = {
            "samples": self.samples,
            "noise": self.noise,
            "seed": self.seed,
            "strategy": self.strategy,
            "executor": self.executor,
            "buffer_pool": self.buffer_pool,
            "extreme_cv_policy": self.extreme_cv_policy,
            "name": self.name,
            "orchestrator": self._orchestrator,
        }
        settings.update(overrides)
        return PerturbationExplainer(self.context, **settings)

    def with_samples(self, samples: int) -> "PerturbationExplainer":
        """Return a copy of this explainer using ``samples`` trials per feature."""
        return self._replace(samples=samples)

    def with_seed(self, seed: int) -> "PerturbationExplainer":
        """Return a copy of this explainer driven by ``seed``."""
        return self._replace(seed=seed)

    def without_fan_out(self, *, share_buffers: bool = True) -> "PerturbationExplainer":
        """Return a copy that explains on the calling thread only.

        Callers that already fan out across instances use this copy inside
        their tasks: ``"concurrent"`` becomes ``"sequential"`` and the executor
        is dropped, so per-feature tasks never queue behind instance tasks.
        Attributions are identical to those of the original explainer.

        Parameters
        ----------
        share_buffers : bool, default=True
            Keep the scratch buffer pool; pass False when the copy is shipped
            to worker processes.
        """
        strategy = "sequential" if self.strategy == "concurrent" else self.strategy
        return self._replace(
            strategy=strategy,
            executor=None,
            buffer_pool=self.buffer_pool if share_buffers else None,
        )

    @contextlib.contextmanager
    def _fan_out(self, needed: bool) -> Iterator[Optional[ParallelExecutor]]:
        """Yield the configured executor, or a short-lived thread pool when one is needed."""
        if self.executor is not None or not needed:
            yield self.executor
            return
        config = ParallelConfig(enabled=True, strategy="threads", min_batch_size=1)
        with ParallelExecutor(config) as executor:
            yield executor

    def explain(self, model: Any, instance: Any) -> Explanation:
        """Explain one prediction of ``model`` at ``instance``.

        Parameters
        ----------
        model : ModelCapability
            Object exposing ``predict(features) -> float``.
        instance : array-like of shape (n_features,)
            The input to explain; it is copied and never mutated.

        Returns
        -------
        Explanation
            Per-feature attributions in input feature order.

        Raises
        ------
        ModelNotSupportedError
            If ``model`` has no ``predict``.
        DataShapeError
            If ``instance`` does not match the context's feature count.
        NumericError
            If ``instance`` or any prediction is not finite.
        """
        ensure_model_capability(model)
        values = validate_instance(instance, self.context)
        request = ExplainRequest(
            model=model,
            instance=values,
            context=self.context,
            samples=self.samples,
            noise=self.noise,
            seed=self.seed,
            explainer_name=self.name,
            extreme_cv_policy=self.extreme_cv_policy,  # type: ignore[arg-type]
        )
        start = time.perf_counter()
        with self._fan_out(self.strategy == "concurrent") as executor:
            config = ExplainConfig(executor=executor, buffer_pool=self.buffer_pool)
            explanation = self._orchestrator.explain(request, config, self.strategy)
        logger.debug(
            "Explained %d features in %.4fs (samples=%d)",
            self.context.feature_count,
            time.perf_counter() - start,
            self.samples,
        )
        return explanation

    def explain_batch(self, model: Any, instances: Any) -> List[Explanation]:
        """Explain every row of ``instances``, in input order.

        Rows are fanned out at instance level through the configured executor
        (or a short-lived thread pool for the ``"concurrent"`` strategy); each
        row is explained with a non-concurrent strategy so fan-outs never nest.
        The ``custom`` metadata of every explanation carries its ``batch_index``.
        """
        ensure_model_capability(model)
        matrix = validate_batch(instances, self.context)
        request = ExplainBatchRequest(
            model=model,
            instances=matrix,
            context=self.context,
            samples=self.samples,
            noise=self.noise,
            seed=self.seed,
            explainer_name=self.name,
            extreme_cv_policy=self.extreme_cv_policy,  # type: ignore[arg-type]
        )
        with self._fan_out(self.strategy == "concurrent") as executor:
            config = ExplainConfig(executor=executor, buffer_pool=self.buffer_pool)
            return self._orchestrator.explain_batch(request, config, self.strategy)


__all__ = ["PerturbationExplainer"]

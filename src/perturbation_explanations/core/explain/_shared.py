"""Shared data structures for the explain executor system.

This module defines the request/config contracts and the per-feature task
tuples used by the sequential, concurrent, vectorized and instance-parallel
executors, plus the single place where feature results become an
:class:`~perturbation_explanations.explanations.Explanation`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, NamedTuple, Optional, Sequence

import numpy as np

from ...explanations.models import Explanation, ExplanationMetadata, FeatureAttribution, ModelContext
from ...logging import new_batch_id
from ...utils.rng import spawn_feature_generators
from ._computation import LANE_WIDTH, ExtremeCVPolicy


class FeatureTask(NamedTuple):
    """Everything one worker needs to sample a single feature."""

    feature_index: int
    instance: np.ndarray
    baseline_value: float
    base_prediction: float
    model: Any
    samples: int
    noise: float
    rng: np.random.Generator
    extreme_cv_policy: ExtremeCVPolicy
    buffer_pool: Any = None


class FeatureResult(NamedTuple):
    """Summary computed for one feature; ``feature_index`` drives reassembly."""

    feature_index: int
    importance: float
    std_dev: float
    stability_score: float


@dataclass
class ExplainRequest:
    """One explanation request for a single instance."""

    model: Any
    """Model exposing ``predict`` (and optionally ``predict_batch``)."""

    instance: np.ndarray
    """Validated 1D float copy of the instance to explain."""

    context: ModelContext
    """Feature names and baselines."""

    samples: int = 100
    """Perturbation trials per feature."""

    noise: float = 0.01
    """Upper bound of the uniform offset added to the baseline value."""

    seed: int = 42
    """Root seed; each feature draws from its own child stream."""

    explainer_name: str = "permutation"
    """Name recorded in the explanation metadata."""

    extreme_cv_policy: ExtremeCVPolicy = "unstable"
    """Stability assigned to pathological coefficients of variation."""

    custom: Mapping[str, Any] = field(default_factory=dict)
    """Extra metadata copied into ``ExplanationMetadata.custom``."""


@dataclass
class ExplainBatchRequest:
    """A batch of instances explained with shared settings."""

    model: Any
    instances: np.ndarray
    context: ModelContext
    samples: int = 100
    noise: float = 0.01
    seed: int = 42
    explainer_name: str = "permutation"
    extreme_cv_policy: ExtremeCVPolicy = "unstable"
    batch_id: str = field(default_factory=new_batch_id)
    """Identifier shared by the log records of every row of the batch."""

    def request_for(self, row: int) -> ExplainRequest:
        """Return the single-instance request for ``row``."""
        return ExplainRequest(
            model=self.model,
            instance=np.array(self.instances[row], dtype=float, copy=True),
            context=self.context,
            samples=self.samples,
            noise=self.noise,
            seed=self.seed,
            explainer_name=self.explainer_name,
            extreme_cv_policy=self.extreme_cv_policy,
            custom={"batch_index": row},
        )


@dataclass
class ExplainConfig:
    """Configuration context for executor selection and execution."""

    executor: Optional[Any] = None
    """ParallelExecutor instance used by the fan-out executors."""

    buffer_pool: Optional[Any] = None
    """ScratchBufferPool lending difference buffers to feature tasks."""

    lane_width: int = LANE_WIDTH
    """Lane width of the vectorized kernel."""

    inner_strategy: str = "sequential"
    """Strategy used per instance by the instance-parallel executor."""


def task_buffer_pool(config: ExplainConfig) -> Optional[Any]:
    """Return the buffer pool tasks may use, or None when tasks run in worker processes.

    The pool guards its buffers with a thread lock; it cannot be pickled and
    a copy in another process would never return its buffers.
    """
    executor = config.executor
    if executor is not None and executor.config.enabled and executor.active_strategy == "processes":
        return None
    return config.buffer_pool


def build_feature_tasks(
    request: ExplainRequest, config: ExplainConfig, base_prediction: float
) -> List[FeatureTask]:
    """Build one task per feature, each with its own seeded generator."""
    generators = spawn_feature_generators(request.seed, request.context.feature_count)
    baselines = request.context.baselines
    return [
        FeatureTask(
            feature_index=index,
            instance=request.instance,
            baseline_value=baselines[index],
            base_prediction=base_prediction,
            model=request.model,
            samples=request.samples,
            noise=request.noise,
            rng=generators[index],
            extreme_cv_policy=request.extreme_cv_policy,
            buffer_pool=task_buffer_pool(config),
        )
        for index in range(request.context.feature_count)
    ]


def finalize_explanation(
    request: ExplainRequest,
    results: Sequence[FeatureResult],
    *,
    prediction: float,
    baseline: float,
    strategy: str,
    converged: bool | None = None,
    iterations: int = 1,
) -> Explanation:
    """Assemble feature results, in feature order, into an immutable explanation."""
    ordered = sorted(results, key=lambda item: item.feature_index)
    names = request.context.feature_names
    attributions = tuple(
        FeatureAttribution(
            feature=names[result.feature_index],
            importance=result.importance,
            stability_score=result.stability_score,
            std_dev=result.std_dev,
        )
        for result in ordered
    )
    metadata = ExplanationMetadata(
        explainer_name=request.explainer_name,
        seed=request.seed,
        trials=request.samples,
        strategy=strategy,
        converged=converged,
        iterations=iterations,
        custom=request.custom,
    )
    return Explanation(
        prediction=prediction, baseline=baseline, attributions=attributions, metadata=metadata
    )


__all__ = [
    "ExplainBatchRequest",
    "ExplainConfig",
    "ExplainRequest",
    "FeatureResult",
    "FeatureTask",
    "build_feature_tasks",
    "finalize_explanation",
    "task_buffer_pool",
]

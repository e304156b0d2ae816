"""Orchestration layer for explain executors.

This module provides the :class:`ExplanationOrchestrator` which resolves the
executor for a requested strategy name, falls back to the sequential reference
executor when the requested one cannot serve the request, and records the
decision in the logging context.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from ...explanations import Explanation
from ...logging import ensure_logging_context_filter, get_logger, logging_context
from ...utils.exceptions import ConfigurationError
from ._base import BaseExplainExecutor
from ._shared import ExplainBatchRequest, ExplainConfig, ExplainRequest
from .parallel_feature import FeatureParallelExplainExecutor
from .parallel_instance import InstanceParallelExplainExecutor, _instance_task
from .sequential import SequentialExplainExecutor
from .vectorized import VectorizedExplainExecutor

logger = get_logger(__name__)

STRATEGIES = ("sequential", "concurrent", "vectorized")
"""Strategy names accepted for single-instance explanations."""


class ExplanationOrchestrator:
    """Resolve and invoke explain executors.

    Parameters
    ----------
    executors : iterable of BaseExplainExecutor, optional
        Executors to register. Defaults to the built-in sequential,
        concurrent and vectorized executors. A ``"sequential"`` executor must
        be present since it is the fallback of every resolution.

    Notes
    -----
    The orchestrator holds no per-request state and can be shared between
    threads.
    """

    def __init__(self, executors: Optional[Iterable[BaseExplainExecutor]] = None) -> None:
        if executors is None:
            executors = (
                SequentialExplainExecutor(),
                FeatureParallelExplainExecutor(),
                VectorizedExplainExecutor(),
            )
        registry: Dict[str, BaseExplainExecutor] = {}
        for executor in sorted(executors, key=lambda item: item.priority, reverse=True):
            registry[executor.name] = executor
        if "sequential" not in registry:
            raise ConfigurationError(
                "A sequential executor is required as fallback.",
                details={"executors": tuple(registry)},
            )
        self._executors = registry
        self._instance_executor = InstanceParallelExplainExecutor()
        ensure_logging_context_filter()

    @property
    def executors(self) -> List[BaseExplainExecutor]:
        """Return the registered executors ordered by descending priority."""
        return list(self._executors.values())

    @property
    def strategies(self) -> tuple[str, ...]:
        """Return the registered strategy names."""
        return tuple(self._executors)

    def resolve(
        self, strategy: str, request: ExplainRequest, config: ExplainConfig
    ) -> BaseExplainExecutor:
        """Return the executor for ``strategy``, falling back to sequential.

        Raises
        ------
        ConfigurationError
            If ``strategy`` names no registered executor.
        """
        executor = self._executors.get(strategy)
        if executor is None:
            raise ConfigurationError(
                f"Unknown explain strategy {strategy!r}.",
                details={"strategy": strategy, "choices": self.strategies},
            )
        if executor.supports(request, config):
            return executor
        logger.info(
            "Explain strategy %r does not support this request; falling back to sequential",
            strategy,
        )
        return self._executors["sequential"]

    def explain(
        self, request: ExplainRequest, config: ExplainConfig, strategy: str = "sequential"
    ) -> Explanation:
        """Explain one instance with the resolved executor."""
        executor = self.resolve(strategy, request, config)
        with logging_context(strategy=executor.name, explainer_id=request.explainer_name):
            logger.debug(
                "Explaining %d features with %d samples (strategy=%s)",
                request.context.feature_count,
                request.samples,
                executor.name,
            )
            return executor.execute(request, config)

    def explain_batch(
        self, request: ExplainBatchRequest, config: ExplainConfig, strategy: str = "sequential"
    ) -> List[Explanation]:
        """Explain every instance of a batch, fanning out at instance level when possible.

        The per-instance strategy never fans out again: a ``"concurrent"``
        request is explained sequentially inside each instance task.
        """
        if strategy not in self._executors:
            raise ConfigurationError(
                f"Unknown explain strategy {strategy!r}.",
                details={"strategy": strategy, "choices": self.strategies},
            )
        inner = strategy if strategy != "concurrent" else "sequential"
        batch_config = ExplainConfig(
            executor=config.executor,
            buffer_pool=config.buffer_pool,
            lane_width=config.lane_width,
            inner_strategy=inner,
        )
        instance_executor = self._instance_executor
        with logging_context(
            strategy=instance_executor.name,
            explainer_id=request.explainer_name,
            batch_id=request.batch_id,
        ):
            if instance_executor.supports(request, batch_config):
                return instance_executor.execute(request, batch_config)
            logger.debug(
                "Explaining batch %s of %d instances serially",
                request.batch_id,
                request.instances.shape[0],
            )
            inner_config = ExplainConfig(
                buffer_pool=config.buffer_pool, lane_width=config.lane_width, inner_strategy=inner
            )
            inner = instance_executor.inner_strategy(inner_config)
            return [
                _instance_task((request.request_for(row), inner, inner_config, request.batch_id))
                for row in range(request.instances.shape[0])
            ]


__all__ = ["STRATEGIES", "ExplanationOrchestrator"]

"""Instance-parallel explain executor - parallel execution across instances.

This executor explains a batch of instances by dispatching one task per
instance through a ``ParallelExecutor``. Each instance is explained with a
non-concurrent inner executor so fan-outs are never nested.
"""

from __future__ import annotations

from typing import List, Tuple

from ...explanations import Explanation
from ...logging import get_logger, logging_context
from ._shared import ExplainBatchRequest, ExplainConfig, ExplainRequest, task_buffer_pool
from .sequential import SequentialExplainExecutor
from .vectorized import VectorizedExplainExecutor

logger = get_logger(__name__)

_INNER_EXECUTORS = {
    "sequential": SequentialExplainExecutor,
    "vectorized": VectorizedExplainExecutor,
}

InstanceTask = Tuple[ExplainRequest, str, ExplainConfig, str]


def _instance_task(task: InstanceTask) -> Explanation:
    """Explain a single instance with the given inner strategy.

    The task payload is ``(request, inner_strategy, config, batch_id)``;
    ``config`` carries no executor so the inner strategy cannot fan out again.
    Worker threads start with an empty logging context, so the batch fields
    are set here.
    """
    request, inner_strategy, config, batch_id = task
    row = request.custom.get("batch_index")
    with logging_context(
        strategy=inner_strategy,
        explainer_id=request.explainer_name,
        batch_id=batch_id,
        batch_index=row,
    ):
        logger.debug("Explaining row %s of batch %s", row, batch_id)
        executor = _INNER_EXECUTORS[inner_strategy]()
        return executor.execute(request, config)


class InstanceParallelExplainExecutor:
    """Instance-parallel explain execution strategy for batches."""

    @property
    def name(self) -> str:
        """Return executor name."""
        return "instance-parallel"

    @property
    def priority(self) -> int:
        """Return executor priority (highest, batch requests only)."""
        return 30

    @staticmethod
    def inner_strategy(config: ExplainConfig) -> str:
        """Return the per-instance strategy, replacing fan-out strategies with sequential."""
        if config.inner_strategy in _INNER_EXECUTORS:
            return config.inner_strategy
        return "sequential"

    def supports(self, request: ExplainBatchRequest, config: ExplainConfig) -> bool:
        """Return True if an enabled executor is available and there is more than one instance."""
        if config.executor is None:
            return False
        if not config.executor.config.enabled:
            return False
        return request.instances.shape[0] > 1

    def execute(self, request: ExplainBatchRequest, config: ExplainConfig) -> List[Explanation]:
        """Explain every instance of the batch, in input order."""
        inner = self.inner_strategy(config)
        inner_config = ExplainConfig(
            executor=None,
            buffer_pool=task_buffer_pool(config),
            lane_width=config.lane_width,
            inner_strategy=inner,
        )
        tasks = [
            (request.request_for(row), inner, inner_config, request.batch_id)
            for row in range(request.instances.shape[0])
        ]
        logger.debug(
            "Dispatching %d instance tasks of batch %s (inner=%s)", len(tasks), request.batch_id, inner
        )
        if config.executor is None or not config.executor.config.enabled:
            return [_instance_task(task) for task in tasks]
        work_items = len(tasks) * request.context.feature_count * max(request.samples, 1)
        return config.executor.map(_instance_task, tasks, work_items=work_items)


__all__ = ["InstanceParallelExplainExecutor"]

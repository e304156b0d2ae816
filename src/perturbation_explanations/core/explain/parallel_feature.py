"""Concurrent explain executor - parallel execution across features.

Every feature becomes one task dispatched through a ``ParallelExecutor``.
Because each feature draws from its own seeded generator, the per-feature
results are identical to the sequential executor regardless of scheduling;
they are reassembled by feature index before the explanation is built.
"""

from __future__ import annotations

from ...explanations import Explanation
from ...logging import get_logger
from ._base import BaseExplainExecutor
from ._shared import ExplainConfig, ExplainRequest, build_feature_tasks, finalize_explanation
from .feature_task import _feature_task, predict_anchors

logger = get_logger(__name__)


class FeatureParallelExplainExecutor(BaseExplainExecutor):
    """Concurrent per-feature explain execution strategy.

    A failing feature task aborts the whole explanation with the task's
    original exception; no partial explanation is ever returned.
    """

    @property
    def name(self) -> str:
        """Return executor name."""
        return "concurrent"

    @property
    def priority(self) -> int:
        """Return executor priority."""
        return 20

    def supports(self, request: ExplainRequest, config: ExplainConfig) -> bool:
        """Return True if an enabled executor is available.

        Requirements:
        - Executor must be available and enabled
        - More than one feature (a single task gains nothing from a pool)
        """
        if config.executor is None:
            return False
        if not config.executor.config.enabled:
            return False
        return request.context.feature_count > 1

    def execute(self, request: ExplainRequest, config: ExplainConfig) -> Explanation:
        """Explain the instance with one concurrent task per feature."""
        prediction, baseline = predict_anchors(request)
        tasks = build_feature_tasks(request, config, prediction)
        work_items = len(tasks) * max(request.samples, 1)
        logger.debug(
            "Dispatching %d feature tasks (work_items=%d)", len(tasks), work_items
        )
        results = config.executor.map(_feature_task, tasks, work_items=work_items)
        return finalize_explanation(
            request, results, prediction=prediction, baseline=baseline, strategy=self.name
        )


__all__ = ["FeatureParallelExplainExecutor"]

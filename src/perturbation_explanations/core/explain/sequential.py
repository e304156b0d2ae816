"""Sequential explain executor - single-threaded execution strategy.

This executor processes features one after another in the calling thread. It
is the fallback strategy and the reference implementation for the behavioural
equivalence tests of the other executors.
"""

from __future__ import annotations

from ...explanations import Explanation
from ._base import BaseExplainExecutor
from ._shared import ExplainConfig, ExplainRequest, build_feature_tasks, finalize_explanation
from .feature_task import _feature_task, predict_anchors


class SequentialExplainExecutor(BaseExplainExecutor):
    """Sequential explain execution strategy."""

    @property
    def name(self) -> str:
        """Return executor name."""
        return "sequential"

    @property
    def priority(self) -> int:
        """Return executor priority (lowest, used as fallback)."""
        return 10

    def supports(self, request: ExplainRequest, config: ExplainConfig) -> bool:
        """Return True - the sequential executor supports any request."""
        _ = request
        _ = config
        return True

    def execute(self, request: ExplainRequest, config: ExplainConfig) -> Explanation:
        """Explain the instance feature by feature."""
        prediction, baseline = predict_anchors(request)
        tasks = build_feature_tasks(request, config, prediction)
        results = [_feature_task(task) for task in tasks]
        return finalize_explanation(
            request, results, prediction=prediction, baseline=baseline, strategy=self.name
        )


__all__ = ["SequentialExplainExecutor"]

"""Vectorized explain executor - lane-batched execution strategy.

Samples are grouped in lanes of ``LANE_WIDTH``; each lane of perturbed rows is
scored in a single ``predict_batch`` call when the model offers it. Moments
are accumulated lane-parallel and reduced horizontally, with a scalar loop for
the remainder samples.
"""

from __future__ import annotations

from ...explanations import Explanation
from ._base import BaseExplainExecutor
from ._shared import ExplainConfig, ExplainRequest, build_feature_tasks, finalize_explanation
from .feature_task import _vectorized_feature_task, predict_anchors


class VectorizedExplainExecutor(BaseExplainExecutor):
    """Lane-batched explain execution strategy."""

    @property
    def name(self) -> str:
        """Return executor name."""
        return "vectorized"

    @property
    def priority(self) -> int:
        """Return executor priority."""
        return 15

    def supports(self, request: ExplainRequest, config: ExplainConfig) -> bool:
        """Return True when the lane width is usable."""
        _ = request
        return config.lane_width >= 1

    def execute(self, request: ExplainRequest, config: ExplainConfig) -> Explanation:
        """Explain the instance lane by lane for every feature."""
        prediction, baseline = predict_anchors(request)
        tasks = build_feature_tasks(request, config, prediction)
        results = [_vectorized_feature_task(task, config.lane_width) for task in tasks]
        return finalize_explanation(
            request, results, prediction=prediction, baseline=baseline, strategy=self.name
        )


__all__ = ["VectorizedExplainExecutor"]

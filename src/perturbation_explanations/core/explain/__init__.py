"""Explain executors and their orchestration.

The executors share request/config contracts from :mod:`._shared` and the
numerical kernels from :mod:`._computation`; :class:`ExplanationOrchestrator`
selects one of them per request.
"""

from __future__ import annotations

from ._base import BaseExplainExecutor
from ._computation import LANE_WIDTH
from ._shared import ExplainBatchRequest, ExplainConfig, ExplainRequest
from .orchestrator import STRATEGIES, ExplanationOrchestrator
from .parallel_feature import FeatureParallelExplainExecutor
from .parallel_instance import InstanceParallelExplainExecutor
from .sequential import SequentialExplainExecutor
from .vectorized import VectorizedExplainExecutor

__all__ = [
    "LANE_WIDTH",
    "STRATEGIES",
    "BaseExplainExecutor",
    "ExplainBatchRequest",
    "ExplainConfig",
    "ExplainRequest",
    "ExplanationOrchestrator",
    "FeatureParallelExplainExecutor",
    "InstanceParallelExplainExecutor",
    "SequentialExplainExecutor",
    "VectorizedExplainExecutor",
]

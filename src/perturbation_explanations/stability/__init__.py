"""Stability and robustness measures for explanations."""

from __future__ import annotations

from .robustness import PerturbationType, RobustnessEvaluator, RobustnessReport
from .variance import VarianceStabilityMetric

__all__ = [
    "PerturbationType",
    "RobustnessEvaluator",
    "RobustnessReport",
    "VarianceStabilityMetric",
]

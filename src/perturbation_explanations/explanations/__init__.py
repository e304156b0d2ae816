"""Explanation value objects produced by the attribution engine."""

from __future__ import annotations

from .models import (
    ALGORITHM_VERSION,
    Explanation,
    ExplanationMetadata,
    FeatureAttribution,
    ModelContext,
)

__all__ = [
    "ALGORITHM_VERSION",
    "Explanation",
    "ExplanationMetadata",
    "FeatureAttribution",
    "ModelContext",
]

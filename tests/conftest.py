"""Shared pytest fixtures for perturbation_explanations tests."""

from __future__ import annotations

import numpy as np
import pytest

from perturbation_explanations.explanations.models import ModelContext
from helpers.model_utils import BatchLinearModel, LinearModel


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep configuration environment variables from leaking into tests."""
    for name in ("PE_EXPLAINER", "PE_PARALLEL", "PE_TELEMETRY_DIAGNOSTIC_MODE", "CI", "GITHUB_ACTIONS"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def context() -> ModelContext:
    """Three features with zero baselines."""
    return ModelContext.with_defaults(["a", "b", "c"])


@pytest.fixture
def linear_model() -> LinearModel:
    """Linear model with weights 0.3, 0.5 and 0.2."""
    return LinearModel([0.3, 0.5, 0.2])


@pytest.fixture
def batch_linear_model() -> BatchLinearModel:
    """Batch-capable linear model with weights 0.3, 0.5 and 0.2."""
    return BatchLinearModel([0.3, 0.5, 0.2])


@pytest.fixture
def ones() -> np.ndarray:
    """All-ones instance for the three-feature context."""
    return np.ones(3)

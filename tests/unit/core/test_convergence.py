"""Tests for the adaptive sample-count controller."""

from __future__ import annotations

import logging

import numpy as np
import pytest

from perturbation_explanations import ConvergentExplainer, ModelContext
from perturbation_explanations.core.convergence import ConvergenceReport, max_relative_change
from perturbation_explanations.parallel import ParallelConfig, ParallelExecutor
from perturbation_explanations.utils.exceptions import ConfigurationError

from helpers.model_utils import LinearModel, NoisyModel


def test_zero_variance_converges_on_first_iteration(context, linear_model, ones):
    explainer = ConvergentExplainer(context, noise=0.0, min_samples=10, max_samples=100, step=10)
    explanation = explainer.explain(linear_model, ones)

    assert explanation.metadata.converged is True
    assert explanation.metadata.iterations == 1
    assert explanation.metadata.trials == 10
    assert explanation.metadata.explainer_name == "convergent"
    np.testing.assert_allclose(explanation.importances(), [0.3, 0.5, 0.2], atol=1e-12)


def test_single_sample_start_does_not_short_circuit(context, linear_model, ones):
    """One sample has zero spread by construction, so the loop compares iterations instead."""
    explainer = ConvergentExplainer(context, noise=0.0, min_samples=1, max_samples=21, step=10)
    explanation = explainer.explain(linear_model, ones)
    assert explanation.metadata.converged is True
    assert explanation.metadata.iterations == 2
    assert explanation.metadata.trials == 11


def test_small_noise_converges_after_second_iteration(context, linear_model, ones):
    explainer = ConvergentExplainer(context, epsilon=0.01, noise=0.01, min_samples=10, step=10)
    explanation = explainer.explain(linear_model, ones)
    assert explanation.metadata.converged is True
    assert explanation.metadata.iterations == 2
    assert explanation.metadata.trials == 20


def test_non_converging_model_stops_at_max_samples(context, ones, caplog):
    model = NoisyModel([0.3, 0.5, 0.2], scale=0.5)
    explainer = ConvergentExplainer(context, epsilon=1e-9, min_samples=5, max_samples=25, step=10)
    with caplog.at_level(logging.WARNING, logger="perturbation_explanations"):
        explanation = explainer.explain(model, ones)

    assert explanation.metadata.converged is False
    assert explanation.metadata.iterations == 3
    assert explanation.metadata.trials == 25
    assert any("Did not converge" in record.getMessage() for record in caplog.records)


def test_explain_convergent_alias(context, linear_model, ones):
    explainer = ConvergentExplainer(context, noise=0.0)
    assert explainer.explain_convergent(linear_model, ones).metadata.converged is True


@pytest.mark.parametrize(
    "min_samples, max_samples, step, expected",
    [
        (10, 35, 10, [10, 20, 30, 35]),
        (10, 10, 5, [10]),
        (1, 4, 1, [1, 2, 3, 4]),
    ],
)
def test_schedule(context, min_samples, max_samples, step, expected):
    explainer = ConvergentExplainer(
        context, min_samples=min_samples, max_samples=max_samples, step=step
    )
    assert explainer.schedule() == expected


@pytest.mark.parametrize(
    "kwargs",
    [
        {"epsilon": 0.0},
        {"epsilon": -1.0},
        {"epsilon": "tight"},
        {"min_samples": 0},
        {"min_samples": 50, "max_samples": 10},
        {"step": 0},
        {"noise": -1.0},
        {"seed": -5},
    ],
)
def test_invalid_settings(context, kwargs):
    with pytest.raises(ConfigurationError):
        ConvergentExplainer(context, **kwargs)


def test_analyze_convergence_records_every_iteration(context, linear_model, ones):
    explainer = ConvergentExplainer(context, noise=0.01, min_samples=10, max_samples=40, step=10)
    report = explainer.analyze_convergence(linear_model, ones)

    assert report.sample_counts == (20, 30, 40)
    assert len(report.max_changes) == 3
    assert report.epsilon == 0.01
    assert report.has_converged
    assert report.convergence_samples == 20
    frame = report.to_dataframe()
    assert list(frame.columns) == ["samples", "max_change", "converged"]
    assert frame["samples"].tolist() == [20, 30, 40]
    text = str(report)
    assert "Convergence Analysis:" in text
    assert "Samples required: 20" in text


def test_report_without_convergence():
    report = ConvergenceReport((20, 30), (0.5, 0.2), 0.01)
    assert not report.has_converged
    assert report.convergence_samples is None
    assert "Samples required" not in report.summary()


def test_max_relative_change_uses_floor():
    previous = np.array([1.0, 0.0])
    current = np.array([1.1, 1e-12])
    assert max_relative_change(previous, current) == pytest.approx(0.1)
    assert max_relative_change(np.array([]), np.array([])) == 0.0


def test_with_seed_keeps_settings(context):
    explainer = ConvergentExplainer(context, epsilon=0.05, min_samples=3, seed=1)
    reseeded = explainer.with_seed(8)
    assert reseeded.seed == 8
    assert explainer.seed == 1
    assert reseeded.epsilon == 0.05 and reseeded.min_samples == 3
    assert reseeded.context is context


def test_without_fan_out_keeps_attributions(context, linear_model, ones):
    executor = ParallelExecutor(ParallelConfig(enabled=True, strategy="threads", min_batch_size=1))
    explainer = ConvergentExplainer(
        context, min_samples=4, max_samples=12, step=4, noise=0.2, strategy="concurrent", executor=executor
    )
    local = explainer.without_fan_out()
    assert local._explainer.strategy == "sequential"
    assert local._explainer.executor is None
    assert explainer._explainer.strategy == "concurrent"
    np.testing.assert_array_equal(
        local.explain(linear_model, ones).importances(),
        explainer.explain(linear_model, ones).importances(),
    )


def test_convergent_explainer_on_wider_context():
    context = ModelContext(("u", "v"), (1.0, -1.0))
    model = LinearModel([2.0, -1.0])
    explanation = ConvergentExplainer(context, noise=0.0).explain(model, [3.0, 2.0])
    np.testing.assert_allclose(explanation.importances(), [4.0, 3.0], atol=1e-12)

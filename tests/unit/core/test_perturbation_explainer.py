"""Tests for the public perturbation explainer."""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd
import pytest

from perturbation_explanations import ModelContext, PerturbationExplainer
from perturbation_explanations.parallel import ParallelConfig, ParallelExecutor, ScratchBufferPool
from perturbation_explanations.utils.exceptions import (
    ConfigurationError,
    DataShapeError,
    ModelNotSupportedError,
    NumericError,
    ValidationError,
)
from perturbation_explanations.utils.rng import spawn_feature_generators

from helpers.model_utils import ConstantModel, LinearModel, NaNModel, QuadraticModel


def test_linear_model_importances_match_weights(context, linear_model, ones):
    """With zero noise every sample replaces a feature by its baseline exactly."""
    explainer = PerturbationExplainer(context, samples=100, noise=0.0, seed=42)
    explanation = explainer.explain(linear_model, ones)

    np.testing.assert_allclose(explanation.importances(), [0.3, 0.5, 0.2], atol=1e-12)
    assert [attr.stability_score for attr in explanation.attributions] == [1.0, 1.0, 1.0]
    assert [attr.std_dev for attr in explanation.attributions] == [0.0, 0.0, 0.0]
    assert explanation.prediction == pytest.approx(1.0)
    assert explanation.baseline == pytest.approx(0.0)
    assert explanation.feature_names == ("a", "b", "c")
    assert explanation.top_attributions(1)[0].feature == "b"


def test_metadata_records_reproducibility_fields(context, linear_model, ones):
    explanation = PerturbationExplainer(context, samples=25, seed=7).explain(linear_model, ones)
    metadata = explanation.metadata
    assert metadata.explainer_name == "permutation"
    assert metadata.seed == 7
    assert metadata.trials == 25
    assert metadata.strategy == "sequential"
    assert metadata.converged is None
    assert metadata.iterations == 1


def test_same_seed_reproduces_identical_attributions(context, ones):
    model = QuadraticModel()
    first = PerturbationExplainer(context, samples=60, noise=0.8, seed=3).explain(model, ones)
    second = PerturbationExplainer(context, samples=60, noise=0.8, seed=3).explain(model, ones)
    other = PerturbationExplainer(context, samples=60, noise=0.8, seed=4).explain(model, ones)

    assert np.array_equal(first.importances(), second.importances())
    assert not np.array_equal(first.importances(), other.importances())


def test_additional_samples_extend_the_same_draws(context, ones):
    """A run with more samples reuses the draws of a shorter run as its prefix."""
    model = QuadraticModel()
    explainer = PerturbationExplainer(context, noise=0.8, seed=9)
    short = explainer.with_samples(10).explain(model, ones)
    longer = explainer.with_samples(20).explain(model, ones)

    # baseline 0 gives prediction 2 + v**2 against 3 at the instance
    draws = [rng.random(20) * 0.8 for rng in spawn_feature_generators(9, 3)]
    expected_short = [np.mean(1.0 - values[:10] ** 2) for values in draws]
    expected_long = [np.mean(1.0 - values**2) for values in draws]
    np.testing.assert_allclose(short.importances(), expected_short, atol=1e-12)
    np.testing.assert_allclose(longer.importances(), expected_long, atol=1e-12)


@pytest.mark.parametrize("samples, stability", [(0, 1.0), (1, 1.0)])
def test_degenerate_sample_counts(context, ones, samples, stability):
    explanation = PerturbationExplainer(context, samples=samples, noise=0.5).explain(
        QuadraticModel(), ones
    )
    assert all(attr.stability_score == stability for attr in explanation.attributions)
    assert all(attr.std_dev == 0.0 for attr in explanation.attributions)
    if samples == 0:
        assert np.array_equal(explanation.importances(), np.zeros(3))


def test_constant_model_has_zero_importance(context, ones):
    explanation = PerturbationExplainer(context, samples=30).explain(ConstantModel(2.0), ones)
    assert np.array_equal(explanation.importances(), np.zeros(3))
    assert explanation.stability_score == 1.0


def test_instance_is_not_mutated(context, linear_model):
    instance = np.array([1.0, 2.0, 3.0])
    PerturbationExplainer(context, samples=10).explain(linear_model, instance)
    assert np.array_equal(instance, [1.0, 2.0, 3.0])


def test_non_finite_prediction_raises(context):
    with pytest.raises(NumericError):
        PerturbationExplainer(context, samples=5).explain(NaNModel(), [1.0, 2.0, 3.0])


@pytest.mark.parametrize(
    "instance, error",
    [
        ([1.0, 2.0], DataShapeError),
        ([[1.0, 2.0, 3.0]], DataShapeError),
        ([1.0, float("nan"), 3.0], NumericError),
        ([], ValidationError),
        (None, ValidationError),
    ],
)
def test_invalid_instances_are_rejected(context, linear_model, instance, error):
    with pytest.raises(error):
        PerturbationExplainer(context).explain(linear_model, instance)


def test_model_without_predict_is_rejected(context, ones):
    with pytest.raises(ModelNotSupportedError):
        PerturbationExplainer(context).explain(object(), ones)
    with pytest.raises(ModelNotSupportedError):
        PerturbationExplainer(context).explain(None, ones)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"samples": -1},
        {"samples": 2.5},
        {"noise": -0.1},
        {"noise": float("inf")},
        {"strategy": "gpu"},
        {"extreme_cv_policy": "ignore"},
        {"seed": -1},
        {"seed": 1.5},
        {"seed": None},
    ],
)
def test_invalid_settings_raise_configuration_error(context, kwargs):
    with pytest.raises(ConfigurationError):
        PerturbationExplainer(context, **kwargs)


def test_context_must_be_a_model_context():
    with pytest.raises(ValidationError):
        PerturbationExplainer(["a", "b"])


@pytest.mark.parametrize("strategy", ["concurrent", "vectorized"])
def test_strategies_agree_through_public_api(context, ones, strategy):
    model = QuadraticModel()
    reference = PerturbationExplainer(context, samples=45, noise=0.4).explain(model, ones)
    other = PerturbationExplainer(context, samples=45, noise=0.4, strategy=strategy).explain(model, ones)
    np.testing.assert_allclose(other.importances(), reference.importances(), atol=1e-6)
    assert other.metadata.strategy == strategy


def test_concurrent_with_disabled_executor_falls_back(context, linear_model, ones, caplog):
    executor = ParallelExecutor(ParallelConfig(enabled=False))
    explainer = PerturbationExplainer(context, strategy="concurrent", executor=executor)
    with caplog.at_level(logging.INFO, logger="perturbation_explanations"):
        explanation = explainer.explain(linear_model, ones)
    assert explanation.metadata.strategy == "sequential"
    assert any("falling back to sequential" in record.getMessage() for record in caplog.records)


def test_buffer_pool_is_used_and_released(context, ones):
    pool = ScratchBufferPool(capacity=2, buffer_size=128)
    explainer = PerturbationExplainer(context, samples=50, noise=0.3, buffer_pool=pool)
    pooled = explainer.explain(QuadraticModel(), ones)
    plain = PerturbationExplainer(context, samples=50, noise=0.3).explain(QuadraticModel(), ones)
    assert np.array_equal(pooled.importances(), plain.importances())
    assert pool.metrics.checkouts == 3
    assert pool.metrics.reuses == 2
    assert pool.in_use == 0


def test_explain_batch_keeps_input_order(context, linear_model):
    rows = np.array([[1.0, 1.0, 1.0], [2.0, 0.0, 1.0], [0.0, 3.0, 0.0]])
    explainer = PerturbationExplainer(context, samples=10, noise=0.0, strategy="concurrent")
    batch = explainer.explain_batch(linear_model, rows)

    assert [item.metadata.custom["batch_index"] for item in batch] == [0, 1, 2]
    np.testing.assert_allclose(batch[1].importances(), [0.6, 0.0, 0.2], atol=1e-12)
    np.testing.assert_allclose(batch[2].importances(), [0.0, 1.5, 0.0], atol=1e-12)


def test_explain_batch_validates_rows(context, linear_model):
    with pytest.raises(DataShapeError):
        PerturbationExplainer(context).explain_batch(linear_model, [1.0, 2.0, 3.0])
    with pytest.raises(DataShapeError):
        PerturbationExplainer(context).explain_batch(linear_model, [[1.0, 2.0]])


def test_with_seed_and_with_samples_return_copies(context):
    explainer = PerturbationExplainer(context, samples=10, seed=1, strategy="vectorized")
    reseeded = explainer.with_seed(5)
    resampled = explainer.with_samples(30)
    assert reseeded is not explainer and reseeded.seed == 5 and reseeded.strategy == "vectorized"
    assert resampled.samples == 30 and resampled.seed == 1
    assert explainer.seed == 1 and explainer.samples == 10
    assert "samples=10" in repr(explainer)


def test_model_context_from_dataframe_baselines():
    frame = pd.DataFrame({"x": [1.0, 3.0], "y": [2.0, 4.0]})
    context = ModelContext.from_data(frame)
    assert context.feature_names == ("x", "y")
    assert context.baselines == (2.0, 3.0)
    explanation = PerturbationExplainer(context, samples=5, noise=0.0).explain(
        LinearModel([1.0, 1.0]), [2.0, 3.0]
    )
    np.testing.assert_allclose(explanation.importances(), [0.0, 0.0], atol=1e-12)

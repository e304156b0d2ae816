"""Tests for the robustness evaluator."""

from __future__ import annotations

import threading

import numpy as np
import pytest

from perturbation_explanations import ModelContext, PerturbationExplainer, RobustnessEvaluator
from perturbation_explanations.parallel import ParallelConfig, ParallelExecutor
from perturbation_explanations.stability import PerturbationType, RobustnessReport
from perturbation_explanations.stability.robustness import attribution_drift
from perturbation_explanations.utils.exceptions import (
    ConfigurationError,
    UnsupportedOperationError,
    ValidationError,
)

from helpers.model_utils import ConstantModel, LinearModel, QuadraticModel


def test_constant_model_is_perfectly_robust(context, ones):
    explainer = PerturbationExplainer(context, samples=10)
    report = RobustnessEvaluator(num_perturbations=20, seed=0).evaluate(
        ConstantModel(), ones, explainer
    )
    assert report.score == 1.0
    assert report.max_drift == 0.0
    assert report.std_stability == 0.0
    assert report.interpretation.startswith("Highly robust")


def test_linear_model_with_small_noise_is_robust(context, linear_model, ones):
    explainer = PerturbationExplainer(context, samples=10, noise=0.0)
    evaluator = RobustnessEvaluator(num_perturbations=50, magnitude=0.01, seed=1)
    report = evaluator.evaluate(linear_model, ones, explainer)

    assert report.score > 0.85
    assert report.is_robust
    assert report.num_perturbations == 50
    assert report.magnitude == 0.01
    assert report.perturbation_type is PerturbationType.GAUSSIAN
    assert report.min_stability <= report.mean_stability
    assert report.max_drift == pytest.approx(1.0 - report.min_stability)
    assert report.elapsed_seconds >= 0.0


def test_uniform_perturbations(context, linear_model, ones):
    explainer = PerturbationExplainer(context, samples=5, noise=0.0)
    evaluator = RobustnessEvaluator(20, 0.05, "uniform", seed=3)
    perturbed = evaluator.perturbed_instances(ones)
    assert len(perturbed) == 20
    assert all(np.all(np.abs(item - 1.0) <= 0.05) for item in perturbed)
    report = evaluator.evaluate(linear_model, ones, explainer)
    assert report.perturbation_type is PerturbationType.UNIFORM
    assert report.score > 0.85


def test_seeded_perturbations_are_reproducible(ones):
    first = RobustnessEvaluator(10, 0.1, seed=5).perturbed_instances(ones)
    second = RobustnessEvaluator(10, 0.1, seed=5).perturbed_instances(ones)
    assert all(np.array_equal(left, right) for left, right in zip(first, second))


def test_executor_fan_out_matches_serial(context, ones):
    explainer = PerturbationExplainer(context, samples=8, noise=0.2)
    model = QuadraticModel()
    serial = RobustnessEvaluator(12, 0.05, seed=2).evaluate(model, ones, explainer)
    executor = ParallelExecutor(
        ParallelConfig(enabled=True, strategy="threads", max_workers=3, min_batch_size=1)
    )
    fanned = RobustnessEvaluator(12, 0.05, seed=2, executor=executor).evaluate(model, ones, explainer)
    assert fanned.score == pytest.approx(serial.score, abs=1e-12)
    assert fanned.max_drift == pytest.approx(serial.max_drift, abs=1e-12)
    assert executor.metrics.submitted == 12


def test_adversarial_is_not_supported(context, linear_model, ones):
    evaluator = RobustnessEvaluator(perturbation_type=PerturbationType.ADVERSARIAL)
    with pytest.raises(UnsupportedOperationError):
        evaluator.evaluate(linear_model, ones, PerturbationExplainer(context))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"num_perturbations": 9},
        {"num_perturbations": 10.5},
        {"magnitude": 0.0},
        {"magnitude": 0.51},
        {"magnitude": "large"},
        {"perturbation_type": "salt"},
        {"seed": -3},
        {"seed": "abc"},
    ],
)
def test_invalid_settings(kwargs):
    with pytest.raises(ConfigurationError):
        RobustnessEvaluator(**kwargs)


def test_explainer_must_expose_explain(linear_model, ones):
    with pytest.raises(ValidationError):
        RobustnessEvaluator().evaluate(linear_model, ones, object())


def test_attribution_drift():
    baseline = np.array([3.0, 4.0])
    assert attribution_drift(baseline, np.array([3.0, 4.0])) == 0.0
    assert attribution_drift(baseline, np.array([3.0, 9.0])) == pytest.approx(1.0)
    # near-zero reference falls back to the absolute norm
    assert attribution_drift(np.zeros(2), np.array([3.0, 4.0])) == pytest.approx(5.0)
    with pytest.raises(ValidationError):
        attribution_drift(baseline, np.zeros(3))


@pytest.mark.parametrize(
    "score, prefix, robust",
    [(0.96, "Highly robust", True), (0.9, "Moderately robust", True), (0.85, "Unstable", False)],
)
def test_report_interpretation(score, prefix, robust):
    report = RobustnessReport(
        score=score,
        mean_stability=score,
        std_stability=0.01,
        min_stability=score - 0.05,
        max_drift=1.05 - score,
        num_perturbations=10,
        magnitude=0.01,
        perturbation_type=PerturbationType.GAUSSIAN,
        elapsed_seconds=0.002,
    )
    assert report.interpretation.startswith(prefix)
    assert report.is_robust is robust
    payload = report.to_dict()
    assert payload["perturbation_type"] == "gaussian"
    assert payload["interpretation"] == report.interpretation
    assert "Robustness Score" in report.summary()


def _threads(workers):
    return ParallelExecutor(
        ParallelConfig(enabled=True, strategy="threads", max_workers=workers, min_batch_size=1)
    )


def test_shared_executor_with_concurrent_explainer_completes(context, ones):
    executor = _threads(2)
    outcome = {}

    def run():
        with executor:
            explainer = PerturbationExplainer(
                context, samples=5, noise=0.1, strategy="concurrent", executor=executor
            )
            outcome["report"] = RobustnessEvaluator(10, seed=0, executor=executor).evaluate(
                QuadraticModel(), ones, explainer
            )

    worker = threading.Thread(target=run, daemon=True)
    worker.start()
    worker.join(30)
    assert not worker.is_alive()

    explainer = PerturbationExplainer(context, samples=5, noise=0.1)
    serial = RobustnessEvaluator(10, seed=0).evaluate(QuadraticModel(), ones, explainer)
    assert outcome["report"].score == pytest.approx(serial.score, abs=1e-12)


class ThreadCountingModel(LinearModel):
    """Linear model remembering the largest number of live threads it saw."""

    def __init__(self, weights):
        super().__init__(weights)
        self.peak_threads = 0
        self._lock = threading.Lock()

    def predict(self, features):
        with self._lock:
            self.peak_threads = max(self.peak_threads, threading.active_count())
        return super().predict(features)


def test_instance_fan_out_does_not_multiply_threads():
    names = [f"x{idx}" for idx in range(8)]
    context = ModelContext.with_defaults(names)
    model = ThreadCountingModel(np.linspace(0.1, 0.8, 8))
    explainer = PerturbationExplainer(
        context, samples=4, noise=0.1, strategy="concurrent", executor=_threads(4)
    )
    evaluator = RobustnessEvaluator(10, seed=1, executor=_threads(2))
    baseline_threads = threading.active_count()

    evaluator.evaluate(model, np.ones(8), explainer)

    # the reference explanation runs outside the fan-out with its own pool of 4
    assert model.peak_threads <= baseline_threads + 4


def test_task_explainer_drops_fan_out(context):
    pooled = PerturbationExplainer(
        context, strategy="concurrent", executor=_threads(2), buffer_pool=object()
    )
    evaluator = RobustnessEvaluator(10, executor=_threads(2))
    task_explainer = evaluator._task_explainer(pooled)
    assert task_explainer.strategy == "sequential"
    assert task_explainer.executor is None
    assert task_explainer.buffer_pool is pooled.buffer_pool

    processes = RobustnessEvaluator(
        10, executor=ParallelExecutor(ParallelConfig(enabled=True, strategy="processes"))
    )
    assert processes._task_explainer(pooled).buffer_pool is None

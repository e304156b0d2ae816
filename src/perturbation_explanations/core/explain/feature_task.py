"""Feature-level task computation for the explanation pipeline.

Each task perturbs one feature of the instance ``samples`` times, replacing it
with ``baseline + u * noise`` where ``u`` comes from the feature's own
generator, and records the absolute change of the model output. Tasks are
module-level functions so they can be shipped to worker threads or processes.
"""

from __future__ import annotations

import contextlib
from typing import Iterator, Tuple

import numpy as np

from ...utils.perturbation import baseline_noise
from ..capabilities import predict_finite, predict_rows
from ._computation import LANE_WIDTH, summarize_differences, summarize_lanes
from ._shared import ExplainRequest, FeatureResult, FeatureTask


def predict_anchors(request: ExplainRequest) -> Tuple[float, float]:
    """Return ``(prediction, baseline)``: the model output at the instance and at the baselines."""
    prediction = predict_finite(request.model, request.instance)
    baseline = predict_finite(request.model, request.context.baseline_array())
    return prediction, baseline


@contextlib.contextmanager
def _scratch(task: FeatureTask) -> Iterator[np.ndarray]:
    if task.buffer_pool is None:
        yield np.empty(task.samples, dtype=float)
        return
    with task.buffer_pool.checkout(task.samples) as buffer:
        yield buffer


def _feature_task(task: FeatureTask) -> FeatureResult:
    """Sample one feature with scalar predictions and summarise the differences.

    Parameters
    ----------
    task : FeatureTask
        Feature index, instance, baseline value, base prediction, model and
        the feature's generator.

    Returns
    -------
    FeatureResult
        Importance, sample standard deviation and stability for the feature.

    Raises
    ------
    NumericError
        When any perturbed prediction is not finite.
    """
    offsets = baseline_noise(task.rng, task.samples, task.noise)
    with _scratch(task) as differences:
        for sample, offset in enumerate(offsets):
            perturbed = np.array(task.instance, dtype=float, copy=True)
            perturbed[task.feature_index] = task.baseline_value + offset
            differences[sample] = abs(task.base_prediction - predict_finite(task.model, perturbed))
        summary = summarize_differences(differences, task.extreme_cv_policy)
    return FeatureResult(task.feature_index, summary.importance, summary.std_dev, summary.stability_score)


def _vectorized_feature_task(task: FeatureTask, lane_width: int = LANE_WIDTH) -> FeatureResult:
    """Sample one feature lane by lane and reduce with the lane kernel.

    Full lanes of ``lane_width`` perturbed rows are scored in one call
    (``predict_batch`` when the model provides it); the trailing samples that
    do not fill a lane are scored one at a time.
    """
    offsets = baseline_noise(task.rng, task.samples, task.noise)
    full = task.samples - task.samples % lane_width
    with _scratch(task) as differences:
        if full:
            lane_rows = np.tile(np.asarray(task.instance, dtype=float), (lane_width, 1))
            for start in range(0, full, lane_width):
                lane_rows[:, task.feature_index] = task.baseline_value + offsets[start : start + lane_width]
                predictions = predict_rows(task.model, lane_rows)
                differences[start : start + lane_width] = np.abs(task.base_prediction - predictions)
        for sample in range(full, task.samples):
            perturbed = np.array(task.instance, dtype=float, copy=True)
            perturbed[task.feature_index] = task.baseline_value + offsets[sample]
            differences[sample] = abs(task.base_prediction - predict_finite(task.model, perturbed))
        summary = summarize_lanes(differences, task.extreme_cv_policy, lane_width)
    return FeatureResult(task.feature_index, summary.importance, summary.std_dev, summary.stability_score)


__all__ = ["predict_anchors"]

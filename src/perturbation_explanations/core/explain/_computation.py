"""Numerical kernels shared by the explain executors.

The scalar kernel (:func:`summarize_differences`) is the reference used by the
sequential and concurrent executors. The lane kernel
(:func:`lane_moments`) reduces the same difference vector in fixed-width lanes
and is used by the vectorized executor; both agree to floating-point
reassociation error.
"""

from __future__ import annotations

import math
from typing import Literal, NamedTuple

import numpy as np

LANE_WIDTH = 8
"""Number of samples reduced side by side by the vectorized kernel."""

NEAR_ZERO_MEAN = 1e-10
MAX_COEFFICIENT_OF_VARIATION = 10.0

ExtremeCVPolicy = Literal["unstable", "stable"]
EXTREME_CV_POLICIES = ("unstable", "stable")


class SampleSummary(NamedTuple):
    """Moments and stability derived from one feature's difference vector."""

    importance: float
    std_dev: float
    stability_score: float


def stability_from_moments(
    mean: float, std_dev: float, samples: int, policy: ExtremeCVPolicy = "unstable"
) -> float:
    """Return the stability score ``clamp(1 - cv, 0, 1)`` for one feature.

    Parameters
    ----------
    mean : float
        Mean absolute prediction difference.
    std_dev : float
        Sample standard deviation of the differences.
    samples : int
        Number of differences the moments were computed from.
    policy : {"unstable", "stable"}
        Outcome for a non-finite coefficient of variation or one above
        ``MAX_COEFFICIENT_OF_VARIATION``. ``"unstable"`` maps it to 0.0,
        ``"stable"`` keeps the historical mapping to 1.0.

    Returns
    -------
    float
        Stability in ``[0, 1]``.
    """
    if samples <= 1:
        return 1.0
    if abs(mean) < NEAR_ZERO_MEAN:
        cv = 0.0
    else:
        cv = std_dev / abs(mean)
    if not math.isfinite(cv) or cv > MAX_COEFFICIENT_OF_VARIATION:
        return 0.0 if policy == "unstable" else 1.0
    return max(0.0, min(1.0, 1.0 - cv))


def summarize_differences(
    differences: np.ndarray, policy: ExtremeCVPolicy = "unstable"
) -> SampleSummary:
    """Reduce a feature's difference vector to importance, spread and stability."""
    samples = int(differences.shape[0])
    if samples == 0:
        return SampleSummary(0.0, 0.0, 1.0)
    mean = float(np.mean(differences))
    if samples == 1 or float(np.min(differences)) == float(np.max(differences)):
        # identical differences have exactly zero spread
        std_dev = 0.0
    else:
        std_dev = float(np.std(differences, ddof=1))
    return SampleSummary(mean, std_dev, stability_from_moments(mean, std_dev, samples, policy))


def lane_moments(differences: np.ndarray, lane_width: int = LANE_WIDTH) -> tuple[float, float]:
    """Return ``(mean, sample std)`` using lane-parallel accumulation.

    Full lanes are accumulated element-wise into ``lane_width`` partial sums
    and reduced horizontally at the end; the samples that do not fill a lane
    are folded in by a scalar remainder loop. The deviations pass repeats the
    same scheme on squared deviations from the mean.
    """
    samples = int(differences.shape[0])
    if samples == 0:
        return 0.0, 0.0
    full = samples - samples % lane_width
    lanes = differences[:full].reshape(-1, lane_width)

    acc = np.zeros(lane_width, dtype=float)
    for lane in lanes:
        acc += lane
    total = float(acc.sum())
    for value in differences[full:]:
        total += float(value)
    mean = total / samples

    if samples == 1 or float(np.min(differences)) == float(np.max(differences)):
        return mean, 0.0

    acc = np.zeros(lane_width, dtype=float)
    for lane in lanes:
        deviation = lane - mean
        acc += deviation * deviation
    squares = float(acc.sum())
    for value in differences[full:]:
        deviation = float(value) - mean
        squares += deviation * deviation
    return mean, math.sqrt(squares / (samples - 1))


def summarize_lanes(
    differences: np.ndarray,
    policy: ExtremeCVPolicy = "unstable",
    lane_width: int = LANE_WIDTH,
) -> SampleSummary:
    """Lane-parallel counterpart of :func:`summarize_differences`."""
    samples = int(differences.shape[0])
    if samples == 0:
        return SampleSummary(0.0, 0.0, 1.0)
    mean, std_dev = lane_moments(differences, lane_width)
    return SampleSummary(mean, std_dev, stability_from_moments(mean, std_dev, samples, policy))


__all__ = [
    "EXTREME_CV_POLICIES",
    "LANE_WIDTH",
    "MAX_COEFFICIENT_OF_VARIATION",
    "NEAR_ZERO_MEAN",
    "SampleSummary",
    "lane_moments",
    "stability_from_moments",
    "summarize_differences",
    "summarize_lanes",
]

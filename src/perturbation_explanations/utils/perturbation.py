"""Noise primitives shared by the sampler and the robustness evaluator."""

from __future__ import annotations

import numpy as np


def baseline_noise(rng: np.random.Generator, samples: int, noise: float) -> np.ndarray:
    """Draw ``samples`` bounded offsets in ``[0, noise)`` for baseline substitution.

    Args:
        rng (np.random.Generator): Feature-local generator.
        samples (int): Number of perturbation trials.
        noise (float): Noise scale, ``0`` disables noise.

    Returns:
        np.ndarray: One offset per trial, in draw order.
    """
    # Draw even when noise is zero so the stream position only depends on samples.
    draws = rng.random(samples)
    return draws * noise


def gaussian_perturbation(values, magnitude: float, rng: np.random.Generator) -> np.ndarray:
    """
    Apply Gaussian noise ``N(0, magnitude)`` independently to every value.

    Args:
        values (array-like): Instance to perturb.
        magnitude (float): Standard deviation of the noise.
        rng (np.random.Generator): Source of randomness.

    Returns:
        np.ndarray: Perturbed copy of ``values``.
    """
    values = np.array(values, dtype=float, copy=True)
    return values + rng.normal(loc=0.0, scale=magnitude, size=values.shape)


def uniform_perturbation(values, magnitude: float, rng: np.random.Generator) -> np.ndarray:
    """
    Apply uniform noise ``U(-magnitude, +magnitude)`` independently to every value.

    Args:
        values (array-like): Instance to perturb.
        magnitude (float): Half-width of the noise interval.
        rng (np.random.Generator): Source of randomness.

    Returns:
        np.ndarray: Perturbed copy of ``values``.
    """
    values = np.array(values, dtype=float, copy=True)
    return values + rng.uniform(low=-magnitude, high=magnitude, size=values.shape)


__all__ = ["baseline_noise", "gaussian_perturbation", "uniform_perturbation"]

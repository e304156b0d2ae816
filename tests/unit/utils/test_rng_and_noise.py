"""Tests for seeded generators and noise primitives."""

from __future__ import annotations

import numpy as np
import pytest

from perturbation_explanations.utils import (
    baseline_noise,
    derive_seeds,
    gaussian_perturbation,
    set_rng_seed,
    spawn_feature_generators,
    uniform_perturbation,
)


def test_set_rng_seed_is_reproducible():
    assert set_rng_seed(3).random() == set_rng_seed(3).random()
    assert isinstance(set_rng_seed(None), np.random.Generator)


def test_feature_generators_are_independent_and_reproducible():
    first = [rng.random(4) for rng in spawn_feature_generators(42, 3)]
    second = [rng.random(4) for rng in spawn_feature_generators(42, 3)]
    for left, right in zip(first, second):
        assert np.array_equal(left, right)
    assert not np.array_equal(first[0], first[1])


def test_feature_streams_do_not_depend_on_feature_count():
    """Adding features never shifts the streams of the existing ones."""
    narrow = [rng.random(5) for rng in spawn_feature_generators(7, 2)]
    wide = [rng.random(5) for rng in spawn_feature_generators(7, 4)]
    assert np.array_equal(narrow[0], wide[0])
    assert np.array_equal(narrow[1], wide[1])


def test_derive_seeds():
    seeds = derive_seeds(0, 5)
    assert len(seeds) == 5
    assert len(set(seeds)) == 5
    assert seeds == derive_seeds(0, 5)
    assert all(isinstance(seed, int) for seed in seeds)


def test_baseline_noise_consumes_the_stream_even_without_noise():
    quiet, loud = set_rng_seed(1), set_rng_seed(1)
    assert np.array_equal(baseline_noise(quiet, 6, 0.0), np.zeros(6))
    baseline_noise(loud, 6, 0.5)
    assert quiet.random() == loud.random()


def test_baseline_noise_bounds():
    offsets = baseline_noise(set_rng_seed(2), 1000, 0.3)
    assert offsets.shape == (1000,)
    assert np.all((offsets >= 0.0) & (offsets < 0.3))


@pytest.mark.parametrize("perturb", [gaussian_perturbation, uniform_perturbation])
def test_perturbations_return_copies(perturb):
    values = np.array([1.0, 2.0, 3.0])
    perturbed = perturb(values, 0.1, set_rng_seed(0))
    assert perturbed.shape == values.shape
    assert np.array_equal(values, [1.0, 2.0, 3.0])
    assert not np.array_equal(perturbed, values)


def test_uniform_perturbation_stays_in_band():
    perturbed = uniform_perturbation(np.zeros(500), 0.2, set_rng_seed(4))
    assert np.all(np.abs(perturbed) <= 0.2)

"""Utilities for managing random number generator state."""

from __future__ import annotations

from typing import List

import numpy as np


def set_rng_seed(seed: int | None) -> np.random.Generator:
    """Set the random number generator seed and return the generator.

    Parameters
    ----------
    seed : int or None
        The seed to be used in the random number generator. ``None`` draws
        fresh entropy from the operating system.

    Returns
    -------
    np.random.Generator
        A new random number generator initialized with the given seed.
    """
    return np.random.default_rng(seed)


def spawn_feature_generators(seed: int, n_features: int) -> List[np.random.Generator]:
    """Return one independent generator per feature, all derived from ``seed``.

    Each feature owns its stream, so a feature's draws do not depend on how
    many samples other features consumed or on which worker computes it.
    """
    children = np.random.SeedSequence(seed).spawn(n_features)
    return [np.random.default_rng(child) for child in children]


def derive_seeds(seed: int, count: int) -> List[int]:
    """Return ``count`` reproducible 32-bit seeds derived from ``seed``."""
    state = np.random.SeedSequence(seed).generate_state(count)
    return [int(value) for value in state]


__all__ = ["set_rng_seed", "spawn_feature_generators", "derive_seeds"]

"""Stable API surface for configuration-driven construction."""

from __future__ import annotations

from .config import ExplainerBuilder, ExplainerConfig, load_config

__all__ = [
    "ExplainerBuilder",
    "ExplainerConfig",
    "load_config",
]

"""Public surface for core components.

Symbols are imported lazily so lightweight contracts (exceptions, config
helpers) can be used without pulling in the explain executors, and so the
``logging`` module can depend on ``core.config_helpers`` without a cycle.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "ConvergenceReport",
    "ConvergentExplainer",
    "ModelCapability",
    "BatchModelCapability",
    "PerturbationExplainer",
]

_NAME_TO_MODULE = {
    "ConvergenceReport": "convergence",
    "ConvergentExplainer": "convergence",
    "ModelCapability": "capabilities",
    "BatchModelCapability": "capabilities",
    "PerturbationExplainer": "perturbation_explainer",
}


def __getattr__(name: str) -> Any:
    """Lazily expose the sanctioned core API surface."""
    if name == "explain":
        module = import_module(f"{__name__}.explain")
        globals()[name] = module
        return module
    if name not in _NAME_TO_MODULE:
        raise AttributeError(name)
    module = import_module(f"{__name__}.{_NAME_TO_MODULE[name]}")
    value = getattr(module, name)
    globals()[name] = value
    return value

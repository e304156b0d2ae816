"""
Perturbation Explanations (perturbation_explanations).

is a Python package for explaining single predictions of black-box models with
per-feature attributions estimated by Monte-Carlo perturbation, together with
stability, convergence, drift and robustness measures for those attributions.
"""

import importlib
import logging as _logging

# Provide a default no-op handler to avoid "No handler" warnings for library users.
_logging.getLogger(__name__).addHandler(_logging.NullHandler())

__version__ = "1.0.0"

__all__ = [
    "ConvergentExplainer",
    "Explanation",
    "ExplanationDriftDetector",
    "ExplainerBuilder",
    "FeatureAttribution",
    "ModelContext",
    "PerturbationExplainer",
    "RobustnessEvaluator",
]

_LAZY_EXPORTS = {
    "ConvergentExplainer": ".core.convergence",
    "Explanation": ".explanations.models",
    "ExplanationDriftDetector": ".monitoring.drift",
    "ExplainerBuilder": ".api.config",
    "FeatureAttribution": ".explanations.models",
    "ModelContext": ".explanations.models",
    "PerturbationExplainer": ".core.perturbation_explainer",
    "RobustnessEvaluator": ".stability.robustness",
}


def __getattr__(name: str):
    """Lazily import the public symbols listed in ``__all__``."""
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = importlib.import_module(_LAZY_EXPORTS[name], __name__)
    value = getattr(module, name)
    globals()[name] = value
    return value

"""Exception hierarchy re-exported for core callers.

The classes live in :mod:`perturbation_explanations.utils.exceptions` to avoid
circular dependencies between ``core`` and the value-object modules.
"""

from __future__ import annotations

from ..utils.exceptions import (
    ConfigurationError,
    DataShapeError,
    ExplanationError,
    ModelNotSupportedError,
    NotFittedError,
    NumericError,
    UnsupportedOperationError,
    ValidationError,
    explain_exception,
)

__all__ = [
    "ExplanationError",
    "ValidationError",
    "DataShapeError",
    "ConfigurationError",
    "ModelNotSupportedError",
    "NotFittedError",
    "NumericError",
    "UnsupportedOperationError",
    "explain_exception",
]

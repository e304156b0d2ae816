"""Custom exception hierarchy for perturbation_explanations.

These exceptions standardize error signaling across the library. Every
exception inherits from :class:`ExplanationError` and supports a structured
error payload via the ``details`` kwarg.
"""

from __future__ import annotations

from typing import Any

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


class ExplanationError(Exception):
    """Base class for library-specific errors."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        """Attach structured error details alongside the user-facing message."""
        super().__init__(message)
        self.details: dict[str, Any] | None = details

    def __repr__(self) -> str:  # pragma: no cover - repr stability check in tests
        """Return the exception representation with the message payload."""
        cls = self.__class__.__name__
        return f"{cls}({super().__str__()!r})"


class ValidationError(ExplanationError):
    """Inputs or call preconditions failed validation."""


class DataShapeError(ValidationError):
    """Provided data has an incompatible shape (e.g., instance vs. context length)."""


class ConfigurationError(ExplanationError):
    """Invalid or conflicting configuration/parameter combination."""


class ModelNotSupportedError(ExplanationError):
    """Model object does not expose the required ``predict`` capability."""


class NotFittedError(ExplanationError):
    """Operation requires state that has not been established yet (e.g., a drift baseline)."""


class NumericError(ExplanationError):
    """A prediction or attribution produced a non-finite value."""


class UnsupportedOperationError(ExplanationError):
    """A declared extension point was requested but is not implemented."""


def explain_exception(e: Exception) -> str:
    """Return a human-readable multi-line description of an exception.

    Formats library-specific ``ExplanationError`` instances with structured
    details for diagnostics and logging. For other exceptions, returns the
    standard string representation.

    Parameters
    ----------
    e : Exception
        The exception to format.

    Returns
    -------
    str
        Multi-line human-readable message.

    Examples
    --------
    >>> from perturbation_explanations.utils.exceptions import NumericError, explain_exception
    >>> e = NumericError("prediction is not finite", details={"value": "nan"})
    >>> print(explain_exception(e))
    NumericError: prediction is not finite
      Details: {'value': 'nan'}
    """
    if isinstance(e, ExplanationError):
        lines = [f"{e.__class__.__name__}: {str(e)}"]
        if e.details is not None:
            lines.append(f"  Details: {e.details}")
        return "\n".join(lines)
    return str(e)

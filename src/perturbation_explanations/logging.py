"""Structured logging context for explanation runs.

Every explanation runs inside a :func:`logging_context` naming the explainer
and the execution strategy; batch explanations additionally carry a
``batch_id`` shared by all rows of one :meth:`explain_batch` call and the
``batch_index`` of the row being explained. Worker threads do not inherit
context variables, so instance tasks re-enter the context themselves.

Records reach handlers with the context attached as attributes, either
through :class:`ContextLoggerAdapter` (used by the package modules) or through
:class:`LoggingContextFilter` attached to a logger or handler.
"""

from __future__ import annotations

import contextlib
import contextvars
import logging
import os
import uuid
from typing import Any, Dict, Iterator, MutableMapping, Tuple

from .core.config_helpers import read_pyproject_section

CONTEXT_KEYS = ("explainer_id", "strategy", "batch_id", "batch_index")

_context_vars = {key: contextvars.ContextVar(key, default=None) for key in CONTEXT_KEYS}


def coerce_bool(value: str | bool | None) -> bool:
    """Interpret configuration flags such as ``"1"``, ``"yes"`` or ``"on"``."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on", "enable"}


def telemetry_diagnostic_mode() -> bool:
    """Return whether parallel telemetry payloads include the logging context.

    ``PE_TELEMETRY_DIAGNOSTIC_MODE`` wins over ``diagnostic_mode`` in the
    ``[tool.perturbation_explanations.telemetry]`` table of pyproject.toml.
    """
    env_value = os.environ.get("PE_TELEMETRY_DIAGNOSTIC_MODE")
    if env_value is not None:
        return coerce_bool(env_value)
    config = read_pyproject_section(("tool", "perturbation_explanations", "telemetry"))
    return coerce_bool(config.get("diagnostic_mode")) if config else False


def new_batch_id() -> str:
    """Return a short random identifier for one batch explanation."""
    return uuid.uuid4().hex[:12]


def get_logging_context() -> Dict[str, Any]:
    """Return the context fields that are currently set."""
    return {key: var.get() for key, var in _context_vars.items() if var.get() is not None}


def update_logging_context(**kwargs: Any) -> None:
    """Set context fields for the rest of the current context; unknown keys are ignored."""
    for key, value in kwargs.items():
        if key in _context_vars:
            _context_vars[key].set(value)


@contextlib.contextmanager
def logging_context(**kwargs: Any) -> Iterator[None]:
    """Temporarily set context fields, restoring the previous values on exit."""
    tokens = {}
    for key, value in kwargs.items():
        if key in _context_vars:
            tokens[key] = _context_vars[key].set(value)
    try:
        yield
    finally:
        for key, token in tokens.items():
            _context_vars[key].reset(token)


def _context_fields() -> Dict[str, Any]:
    context = get_logging_context()
    return {key: context.get(key) for key in CONTEXT_KEYS}


class LoggingContextFilter(logging.Filter):
    """Filter that copies the context fields onto every record it sees."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Attach the context fields and let the record through."""
        for key, value in _context_fields().items():
            setattr(record, key, value)
        return True


class ContextLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter adding the context fields as ``extra`` on every call."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        for key, value in _context_fields().items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str) -> ContextLoggerAdapter:
    """Return a context-aware adapter around ``logging.getLogger(name)``."""
    return ContextLoggerAdapter(logging.getLogger(name), {})


def ensure_logging_context_filter(logger_name: str = "perturbation_explanations") -> None:
    """Attach a single :class:`LoggingContextFilter` to ``logger_name``."""
    logger = logging.getLogger(logger_name)
    for existing in logger.filters:
        if isinstance(existing, LoggingContextFilter):
            return
    logger.addFilter(LoggingContextFilter())


__all__ = [
    "CONTEXT_KEYS",
    "ContextLoggerAdapter",
    "LoggingContextFilter",
    "coerce_bool",
    "ensure_logging_context_filter",
    "get_logger",
    "get_logging_context",
    "logging_context",
    "new_batch_id",
    "telemetry_diagnostic_mode",
    "update_logging_context",
]

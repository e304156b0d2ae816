"""Configuration parsing and coercion utilities.

This module provides helper functions for reading and parsing external
configuration sources like pyproject.toml and environment variables.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, Sequence, Tuple

if sys.version_info >= (3, 11):
    import tomllib as _tomllib
else:  # pragma: no cover - exercised on older interpreters only
    import tomli as _tomllib

from ..utils.exceptions import ConfigurationError

PYPROJECT_SECTION = ("tool", "perturbation_explanations")


def read_pyproject_section(path: Sequence[str] = PYPROJECT_SECTION) -> Dict[str, Any]:
    """Return a mapping from the requested ``pyproject.toml`` section.

    Parameters
    ----------
    path : Sequence[str]
        Nested keys to traverse in the pyproject.toml structure.
        For example, ``("tool", "perturbation_explanations", "telemetry")``
        will navigate to ``[tool.perturbation_explanations.telemetry]``.

    Returns
    -------
    Dict[str, Any]
        Dictionary containing the requested configuration section,
        or an empty dict if the file does not exist or cannot be parsed.

    Examples
    --------
    >>> config = read_pyproject_section(("tool", "perturbation_explanations"))
    >>> if config:
    ...     print(f"Found config: {config}")
    """
    candidate = Path.cwd() / "pyproject.toml"
    if not candidate.exists():
        return {}
    try:
        with candidate.open("rb") as fh:
            data = _tomllib.load(fh)
    except (OSError, _tomllib.TOMLDecodeError):
        return {}

    cursor: Any = data
    for key in path:
        if isinstance(cursor, dict) and key in cursor:
            cursor = cursor[key]
        else:
            return {}
    if isinstance(cursor, dict):
        return dict(cursor)
    return {}


def split_csv(value: str | None) -> Tuple[str, ...]:
    """Split a comma-separated environment variable into a tuple of strings.

    Parameters
    ----------
    value : str or None
        A comma-separated string (e.g., from an environment variable).
        Leading and trailing whitespace around each entry is stripped.

    Returns
    -------
    Tuple[str, ...]
        Tuple of non-empty string entries. Returns empty tuple if value is None
        or contains no non-empty entries.

    Examples
    --------
    >>> split_csv("samples=200, noise=0.05 , seed=7")
    ('samples=200', 'noise=0.05', 'seed=7')

    >>> split_csv(None)
    ()
    """
    if not value:
        return ()
    entries = [item.strip() for item in value.split(",") if item.strip()]
    return tuple(entries)


def parse_key_value_tokens(value: str | None) -> Dict[str, str]:
    """Parse ``key=value`` tokens from a comma-separated string.

    Raises
    ------
    ConfigurationError
        When a token does not contain ``=`` or has an empty key.

    Examples
    --------
    >>> parse_key_value_tokens("samples=200,strategy=concurrent")
    {'samples': '200', 'strategy': 'concurrent'}
    """
    parsed: Dict[str, str] = {}
    for token in split_csv(value):
        key, sep, raw = token.partition("=")
        key = key.strip().lower()
        if not sep or not key:
            raise ConfigurationError(
                f"Malformed configuration token {token!r}; expected 'key=value'.",
                details={"token": token},
            )
        parsed[key] = raw.strip()
    return parsed


__all__ = [
    "PYPROJECT_SECTION",
    "parse_key_value_tokens",
    "read_pyproject_section",
    "split_csv",
]

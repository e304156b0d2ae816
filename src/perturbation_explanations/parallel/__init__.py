"""Parallel execution entry points.

Only the executor façade, its configuration and the scratch buffer pool are
re-exported from the package root.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - import-time only
    from .buffers import ScratchBufferPool
    from .parallel import ParallelConfig, ParallelExecutor, ParallelMetrics


__all__ = (
    "ParallelConfig",
    "ParallelExecutor",
    "ParallelMetrics",
    "ScratchBufferPool",
)

_NAME_TO_MODULE = {
    "ParallelConfig": ("parallel", "ParallelConfig"),
    "ParallelExecutor": ("parallel", "ParallelExecutor"),
    "ParallelMetrics": ("parallel", "ParallelMetrics"),
    "ScratchBufferPool": ("buffers", "ScratchBufferPool"),
}


def __getattr__(name: str) -> Any:
    """Lazily expose the sanctioned parallel API surface."""

    if name not in __all__:
        raise AttributeError(name)

    module_name, attr_name = _NAME_TO_MODULE[name]
    module = import_module(f"{__name__}.{module_name}")
    value = getattr(module, attr_name)
    globals()[name] = value
    return value

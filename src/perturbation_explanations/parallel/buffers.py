"""Reusable scratch buffers for per-feature sample computations.

A :class:`ScratchBufferPool` hands out preallocated float arrays for the
difference vectors computed while sampling one feature. Buffers only ever hold
intermediate scratch values; explanations copy what they need and never keep a
reference to pooled memory.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from dataclasses import dataclass
from typing import Iterator, List, Mapping

import numpy as np

from ..utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class BufferPoolMetrics:
    """Counters describing how the pool has been used."""

    checkouts: int = 0
    reuses: int = 0
    allocations: int = 0
    oversize: int = 0
    peak_in_use: int = 0

    def snapshot(self) -> Mapping[str, int]:
        """Return the metrics as a serialisable mapping."""
        return {
            "checkouts": self.checkouts,
            "reuses": self.reuses,
            "allocations": self.allocations,
            "oversize": self.oversize,
            "peak_in_use": self.peak_in_use,
        }


class ScratchBufferPool:
    """Fixed-capacity, thread-safe pool of 1D float buffers.

    Parameters
    ----------
    capacity : int
        Maximum number of buffers retained by the pool.
    buffer_size : int
        Length of each pooled buffer. Requests larger than this get a one-off
        allocation that is not returned to the pool.

    Notes
    -----
    When every pooled buffer is checked out, further requests receive a fresh
    temporary allocation instead of blocking, so a pool smaller than the worker
    count never serialises a fan-out.
    """

    def __init__(self, capacity: int = 8, buffer_size: int = 1024) -> None:
        if capacity < 1:
            raise ConfigurationError("capacity must be positive.", details={"capacity": capacity})
        if buffer_size < 1:
            raise ConfigurationError(
                "buffer_size must be positive.", details={"buffer_size": buffer_size}
            )
        self.capacity = int(capacity)
        self.buffer_size = int(buffer_size)
        self.metrics = BufferPoolMetrics()
        self._lock = threading.Lock()
        self._free: List[np.ndarray] = []
        self._created = 0
        self._in_use = 0

    @property
    def in_use(self) -> int:
        """Return the number of pooled buffers currently checked out."""
        with self._lock:
            return self._in_use

    @property
    def utilisation(self) -> float:
        """Return the fraction of the pool capacity currently checked out."""
        with self._lock:
            return self._in_use / self.capacity

    def _acquire(self, size: int) -> np.ndarray | None:
        with self._lock:
            self.metrics.checkouts += 1
            if size > self.buffer_size:
                self.metrics.oversize += 1
                return None
            if self._free:
                buffer = self._free.pop()
                self.metrics.reuses += 1
            elif self._created < self.capacity:
                buffer = np.empty(self.buffer_size, dtype=float)
                self._created += 1
                self.metrics.allocations += 1
            else:
                return None
            self._in_use += 1
            self.metrics.peak_in_use = max(self.metrics.peak_in_use, self._in_use)
            return buffer

    def _release(self, buffer: np.ndarray) -> None:
        with self._lock:
            self._in_use -= 1
            self._free.append(buffer)

    @contextlib.contextmanager
    def checkout(self, size: int) -> Iterator[np.ndarray]:
        """Yield a writable view of exactly ``size`` floats.

        The view is only valid inside the ``with`` block; its content is
        undefined on entry.
        """
        if size < 0:
            raise ConfigurationError("size must be non-negative.", details={"size": size})
        buffer = self._acquire(size)
        if buffer is None:
            logger.debug("Scratch pool exhausted or request too large (size=%d)", size)
            yield np.empty(size, dtype=float)
            return
        try:
            yield buffer[:size]
        finally:
            self._release(buffer)

    def clear(self) -> None:
        """Drop all idle buffers so their memory can be reclaimed."""
        with self._lock:
            self._created -= len(self._free)
            self._free.clear()


__all__ = ["BufferPoolMetrics", "ScratchBufferPool"]

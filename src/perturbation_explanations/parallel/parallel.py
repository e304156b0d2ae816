"""Parallel execution helpers for per-feature and per-instance fan-out.

The executor is short-lived: a pool is created when the executor is entered
and torn down when it exits. A failing task aborts the whole ``map`` call with
the task's original exception; tasks already running are allowed to finish and
their results are discarded, queued tasks are cancelled. Nothing is retried.
"""

from __future__ import annotations

import os
import time
import warnings
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, List, Literal, Mapping, Sequence, TypeVar

from joblib import Parallel as _JoblibParallel
from joblib import delayed as _joblib_delayed

from ..logging import get_logger, get_logging_context, telemetry_diagnostic_mode
from ..utils.exceptions import ConfigurationError

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

TelemetryCallback = Callable[[str, Mapping[str, Any]], None]
StrategyLiteral = Literal["auto", "threads", "processes", "joblib", "sequential"]
_STRATEGIES = ("auto", "threads", "processes", "joblib", "sequential")


@dataclass
class ParallelMetrics:
    """Telemetry counters collected by :class:`ParallelExecutor`."""

    submitted: int = 0
    completed: int = 0
    failures: int = 0
    total_duration: float = 0.0
    max_workers: int = 0
    worker_utilisation_pct: float = 0.0

    def snapshot(self) -> Mapping[str, int | float]:
        """Return the metrics as a serialisable mapping."""
        return {
            "submitted": self.submitted,
            "completed": self.completed,
            "failures": self.failures,
            "total_duration": self.total_duration,
            "max_workers": self.max_workers,
            "worker_utilisation_pct": self.worker_utilisation_pct,
        }


@dataclass
class ParallelConfig:
    """Configuration options for the parallel executor.

    Parameters
    ----------
    enabled : bool, default=False
        Whether work is fanned out at all.
    strategy : {"auto", "threads", "processes", "joblib", "sequential"}, default="auto"
        Fan-out backend. ``"auto"`` resolves to ``"sequential"`` when the ``CI``
        or ``GITHUB_ACTIONS`` environment variable is ``"true"`` or only one CPU
        is available, and to ``"threads"`` otherwise. The sequential decision
        is logged at info level and emitted as ``parallel_decision`` telemetry.
        Pick a backend explicitly to fan out on CI runners.
    max_workers : int, optional
        Pool size; defaults to the CPUs available to the process.
    min_batch_size : int, default=2
        Workloads smaller than this run sequentially.
    telemetry : callable, optional
        ``callback(event, payload)`` receiving executor decisions and timings.
    """

    enabled: bool = False
    strategy: StrategyLiteral = "auto"
    max_workers: int | None = None
    min_batch_size: int = 2
    telemetry: TelemetryCallback | None = None

    def __post_init__(self) -> None:
        """Reject unknown strategies and non-positive sizes."""
        if self.strategy not in _STRATEGIES:
            raise ConfigurationError(
                f"Unknown parallel strategy {self.strategy!r}.",
                details={"strategy": self.strategy, "choices": _STRATEGIES},
            )
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigurationError(
                "max_workers must be positive.", details={"max_workers": self.max_workers}
            )
        if self.min_batch_size < 1:
            raise ConfigurationError(
                "min_batch_size must be positive.", details={"min_batch_size": self.min_batch_size}
            )

    @classmethod
    def from_env(cls, base: "ParallelConfig | None" = None) -> "ParallelConfig":
        """Merge ``PE_PARALLEL`` overrides with an optional ``base`` configuration."""
        cfg = ParallelConfig(**(base.__dict__ if base is not None else {}))
        raw = os.getenv("PE_PARALLEL")
        if not raw:
            return cfg
        tokens = [segment.strip() for segment in raw.split(",") if segment.strip()]
        if len(tokens) == 1 and tokens[0].lower() in {"1", "true", "on"}:
            cfg.enabled = True
            return cfg
        for token in tokens:
            lowered = token.lower()
            if lowered in {"0", "off", "false"}:
                cfg.enabled = False
                continue
            if lowered in _STRATEGIES:
                cfg.strategy = lowered  # type: ignore[assignment]
                continue
            if token.startswith("workers="):
                cfg.max_workers = max(1, int(token.split("=", 1)[1]))
                continue
            if token.startswith("min_batch="):
                cfg.min_batch_size = max(1, int(token.split("=", 1)[1]))
                continue
            if lowered == "enable":
                cfg.enabled = True
                continue
            logger.debug("Ignoring unknown PE_PARALLEL token %r", token)
        return cfg


def _cgroup_cpu_quota() -> float | None:
    """Read the CPU quota from the cgroup v2 or v1 interface."""
    if os.name == "nt":
        return None
    cgroup_root = Path("/sys/fs/cgroup")
    cpu_max = cgroup_root / "cpu.max"
    if cpu_max.exists():
        try:
            parts = cpu_max.read_text(encoding="utf-8").strip().split()
        except OSError:
            parts = []
        if len(parts) == 2:
            quota_s, period_s = parts
            if quota_s != "max" and quota_s.isdigit() and period_s.isdigit():
                period = int(period_s)
                if period > 0:
                    return int(quota_s) / period

    cpu_quota = cgroup_root / "cpu/cpu.cfs_quota_us"
    cpu_period = cgroup_root / "cpu/cpu.cfs_period_us"
    if cpu_quota.exists() and cpu_period.exists():
        try:
            quota_s = cpu_quota.read_text(encoding="utf-8").strip()
            period_s = cpu_period.read_text(encoding="utf-8").strip()
        except OSError:
            return None
        # -1 means unlimited
        if quota_s.lstrip("-").isdigit() and period_s.isdigit():
            quota = int(quota_s)
            period = int(period_s)
            if quota != -1 and period > 0:
                return quota / period
    return None


def available_cpus() -> int:
    """Return the number of CPUs usable by this process, honouring cgroup quotas."""
    cpu_count = os.cpu_count() or 1
    quota = _cgroup_cpu_quota()
    if quota is not None:
        cpu_count = min(cpu_count, max(1, int(quota)))
    return cpu_count


class ParallelExecutor:
    """Facade that selects a fan-out strategy and joins results in input order."""

    def __init__(self, config: ParallelConfig) -> None:
        """Store configuration and telemetry state for later map calls."""
        self.config = config
        self.metrics = ParallelMetrics()
        self._pool: Executor | None = None
        self._active_strategy_name: str | None = None
        self._warned_min_batch: bool = False
        self._diagnostic_mode = telemetry_diagnostic_mode()

    def __getstate__(self) -> dict[str, Any]:
        """Return state for pickling, excluding the pool."""
        state = self.__dict__.copy()
        state["_pool"] = None
        return state

    def __enter__(self) -> "ParallelExecutor":
        """Initialise the execution pool if parallelism is enabled."""
        if not self.config.enabled:
            return self

        strategy_name = self.config.strategy
        if strategy_name == "auto":
            strategy_name = self._auto_strategy()
        self._active_strategy_name = strategy_name

        if strategy_name == "threads":
            self._pool = ThreadPoolExecutor(max_workers=self._max_workers())
        elif strategy_name == "processes":
            self._pool = ProcessPoolExecutor(max_workers=self._max_workers())
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Shutdown the execution pool."""
        if exc_type is not None:
            self.cancel()
            return
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None
        self._active_strategy_name = None

    def cancel(self) -> None:
        """Cancel all pending tasks and shutdown the pool without waiting."""
        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=True)
            self._pool = None
        self._active_strategy_name = None

    @property
    def active_strategy(self) -> str:
        """Return the strategy name currently in effect."""
        if not self.config.enabled:
            return "sequential"
        return self._active_strategy_name or self.config.strategy

    def _max_workers(self, workers: int | None = None) -> int:
        return workers or self.config.max_workers or available_cpus()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def map(
        self,
        fn: Callable[[T], R],
        items: Sequence[T] | Iterable[T],
        *,
        workers: int | None = None,
        work_items: int | None = None,
    ) -> List[R]:
        """Execute *fn* across *items* and return the results in input order."""
        items_list = list(items)
        if not self.config.enabled or len(items_list) == 0:
            return [fn(item) for item in items_list]
        candidate = work_items if work_items is not None else len(items_list)
        if candidate < self.config.min_batch_size:
            if not self._warned_min_batch:
                logger.info(
                    "Parallel decision: sequential (reason=below_min_batch_size, workload=%d, threshold=%d)",
                    candidate,
                    self.config.min_batch_size,
                )
                self._warned_min_batch = True
            self._emit(
                "parallel_decision",
                {
                    "decision": "sequential",
                    "reason": "below_min_batch_size",
                    "work_items": candidate,
                    "min_batch_size": self.config.min_batch_size,
                },
            )
            return [fn(item) for item in items_list]

        self.metrics.submitted += len(items_list)
        start_time = time.perf_counter()
        strategy = self._resolve_strategy()
        try:
            results = strategy(fn, items_list, workers=workers)
        except Exception as exc:
            self.metrics.failures += 1
            self._emit("parallel_failure", {"error": repr(exc)})
            logger.debug("Parallel map failed: %r", exc)
            raise

        self.metrics.completed += len(results)
        duration = time.perf_counter() - start_time
        self.metrics.total_duration += duration
        current_workers = self._max_workers(workers)
        self.metrics.max_workers = max(self.metrics.max_workers, current_workers)
        self.metrics.worker_utilisation_pct = (
            min(len(items_list), current_workers) / current_workers * 100.0
        )
        self._emit(
            "parallel_execution",
            {
                "strategy": self.active_strategy,
                "items": len(items_list),
                "duration": duration,
                "workers": current_workers,
                "worker_utilisation_pct": self.metrics.worker_utilisation_pct,
                "work_items": candidate,
            },
        )
        return results

    # ------------------------------------------------------------------
    # Strategy selection
    # ------------------------------------------------------------------
    def _resolve_strategy(self) -> Callable[..., List[Any]]:
        """Return a concrete execution strategy based on configuration."""
        strategy = self._active_strategy_name or self.config.strategy
        if strategy == "auto":
            strategy = self._auto_strategy()
        if strategy == "threads":
            return self._thread_strategy
        if strategy == "processes":
            return self._process_strategy
        if strategy == "joblib":
            return self._joblib_strategy
        return self._serial_strategy

    @staticmethod
    def _is_ci_environment() -> bool:
        """Detect if running in a CI environment."""
        return (
            os.getenv("CI", "").lower() == "true"
            or os.getenv("GITHUB_ACTIONS", "").lower() == "true"
        )

    def _auto_strategy(self) -> str:
        """Choose a sensible default backend for the current platform.

        Predictions are pure compute on a shared in-memory model, so threads are
        the default; processes would have to pickle the model for every pool.
        """
        if self._is_ci_environment():
            logger.info("Parallel decision: sequential (reason=ci_environment, strategy=auto)")
            self._emit("parallel_decision", {"decision": "sequential", "reason": "ci_environment"})
            return "sequential"
        if available_cpus() <= 1:
            logger.info("Parallel decision: sequential (reason=single_cpu, strategy=auto)")
            self._emit("parallel_decision", {"decision": "sequential", "reason": "single_cpu"})
            return "sequential"
        self._emit("parallel_decision", {"decision": "threads", "reason": "default"})
        return "threads"

    # ------------------------------------------------------------------
    # Individual strategies
    # ------------------------------------------------------------------
    def _serial_strategy(
        self, fn: Callable[[T], R], items: Sequence[T], *, workers: int | None = None
    ) -> List[R]:
        """Fallback strategy executing sequentially in the current thread."""
        return [fn(item) for item in items]

    @staticmethod
    def _collect(pool: Executor, fn: Callable[[T], R], items: Sequence[T]) -> List[R]:
        """Submit every item and join the results in submission order."""
        futures = [pool.submit(fn, item) for item in items]
        try:
            return [future.result() for future in futures]
        except BaseException:
            for future in futures:
                future.cancel()
            wait(futures)
            raise

    def _thread_strategy(
        self, fn: Callable[[T], R], items: Sequence[T], *, workers: int | None = None
    ) -> List[R]:
        """Execute work items using a thread pool."""
        if self._pool is not None and isinstance(self._pool, ThreadPoolExecutor):
            return self._collect(self._pool, fn, items)
        with ThreadPoolExecutor(max_workers=self._max_workers(workers)) as pool:
            return self._collect(pool, fn, items)

    def _process_strategy(
        self, fn: Callable[[T], R], items: Sequence[T], *, workers: int | None = None
    ) -> List[R]:
        """Execute work items using a process pool; ``fn`` and items must pickle."""
        if self._pool is not None and isinstance(self._pool, ProcessPoolExecutor):
            return self._collect(self._pool, fn, items)
        with ProcessPoolExecutor(max_workers=self._max_workers(workers)) as pool:
            return self._collect(pool, fn, items)

    def _joblib_strategy(
        self, fn: Callable[[T], R], items: Sequence[T], *, workers: int | None = None
    ) -> List[R]:
        """Dispatch work through joblib's threading backend."""
        n_jobs = self._max_workers(workers)
        parallel = _JoblibParallel(n_jobs=n_jobs, prefer="threads")
        return list(parallel(_joblib_delayed(fn)(item) for item in items))

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------
    def _emit(self, event: str, payload: Mapping[str, Any]) -> None:
        """Emit telemetry payloads guarding against user callback failures."""
        if self.config.telemetry is None:
            return
        if self._diagnostic_mode:
            payload = {**payload, "context": get_logging_context()}
        try:
            self.config.telemetry(event, payload)
        except Exception as exc:  # telemetry sinks must never break a computation
            logger.debug("Parallel telemetry callback failed for %s: %s", event, exc)
            warnings.warn(
                f"Parallel telemetry callback failed for {event!r}: {exc!r}",
                RuntimeWarning,
                stacklevel=2,
            )


__all__ = [
    "ParallelConfig",
    "ParallelExecutor",
    "ParallelMetrics",
    "TelemetryCallback",
    "available_cpus",
]

"""Configuration primitives for perturbation_explanations.

This module provides a configuration dataclass and a fluent builder that turn
validated options into ready-to-use explainers, evaluators and executors.

Configuration sources, from lowest to highest precedence:

1. the dataclass defaults below,
2. the ``[tool.perturbation_explanations]`` table of ``pyproject.toml``,
3. the ``PE_EXPLAINER`` environment variable (``key=value`` comma list),
4. explicit builder calls.
"""

from __future__ import annotations

import dataclasses
import logging
import math
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Literal, Mapping, Optional

from ..core.config_helpers import parse_key_value_tokens, read_pyproject_section
from ..core.convergence import ConvergentExplainer
from ..core.explain import STRATEGIES
from ..core.explain._computation import EXTREME_CV_POLICIES
from ..core.perturbation_explainer import PerturbationExplainer
from ..core.validation import validate_seed
from ..explanations.models import ModelContext
from ..logging import coerce_bool
from ..parallel.buffers import ScratchBufferPool
from ..parallel.parallel import ParallelConfig, ParallelExecutor
from ..stability.robustness import MAX_MAGNITUDE, MIN_PERTURBATIONS, PerturbationType, RobustnessEvaluator
from ..utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ExplainerKindLiteral = Literal["permutation", "convergent"]
EXPLAINER_KINDS = ("permutation", "convergent")
_PARALLEL_BACKENDS = ("auto", "threads", "processes", "joblib", "sequential")


@dataclass
class ExplainerConfig:
    """Configuration for building explainers and evaluators.

    Notes
    -----
    Defaults match the keyword defaults of :class:`PerturbationExplainer`,
    :class:`ConvergentExplainer` and :class:`RobustnessEvaluator`, so a
    default config builds the same objects as calling those constructors.
    """

    explainer: ExplainerKindLiteral = "permutation"
    samples: int = 100
    noise: float = 0.01
    seed: int = 42
    strategy: str = "sequential"
    extreme_cv_policy: str = "unstable"

    # Convergence controller
    epsilon: float = 0.01
    min_samples: int = 10
    max_samples: int = 100
    step: int = 10

    # Robustness evaluator
    num_perturbations: int = 100
    magnitude: float = 0.01
    perturbation_type: str = "gaussian"
    robustness_seed: Optional[int] = None

    # Parallel execution (disabled by default)
    parallel_enabled: bool = False
    parallel_backend: str = "auto"
    parallel_workers: Optional[int] = None
    parallel_min_batch: int = 2
    parallel_telemetry: Any | None = None

    # Scratch buffers (0 disables pooling)
    buffer_pool_capacity: int = 0
    buffer_size: int = 1024

    def validate(self) -> "ExplainerConfig":
        """Check every value and return ``self``.

        Raises
        ------
        ConfigurationError
            On the first invalid value.
        """
        _require(self.explainer in EXPLAINER_KINDS, "explainer", self.explainer, EXPLAINER_KINDS)
        _require(self.strategy in STRATEGIES, "strategy", self.strategy, STRATEGIES)
        _require(
            self.extreme_cv_policy in EXTREME_CV_POLICIES,
            "extreme_cv_policy",
            self.extreme_cv_policy,
            EXTREME_CV_POLICIES,
        )
        _require(
            self.parallel_backend in _PARALLEL_BACKENDS,
            "parallel_backend",
            self.parallel_backend,
            _PARALLEL_BACKENDS,
        )
        perturbation_types = tuple(item.value for item in PerturbationType)
        _require(
            self.perturbation_type in perturbation_types,
            "perturbation_type",
            self.perturbation_type,
            perturbation_types,
        )
        _require(self.samples >= 0, "samples", self.samples)
        validate_seed(self.seed)
        validate_seed(self.robustness_seed, "robustness_seed", optional=True)
        _require(math.isfinite(self.noise) and self.noise >= 0.0, "noise", self.noise)
        _require(math.isfinite(self.epsilon) and self.epsilon > 0.0, "epsilon", self.epsilon)
        _require(self.min_samples >= 1, "min_samples", self.min_samples)
        _require(self.max_samples >= self.min_samples, "max_samples", self.max_samples)
        _require(self.step >= 1, "step", self.step)
        _require(
            self.num_perturbations >= MIN_PERTURBATIONS,
            "num_perturbations",
            self.num_perturbations,
        )
        _require(0.0 < self.magnitude <= MAX_MAGNITUDE, "magnitude", self.magnitude)
        _require(
            self.parallel_workers is None or self.parallel_workers >= 1,
            "parallel_workers",
            self.parallel_workers,
        )
        _require(self.parallel_min_batch >= 1, "parallel_min_batch", self.parallel_min_batch)
        _require(self.buffer_pool_capacity >= 0, "buffer_pool_capacity", self.buffer_pool_capacity)
        _require(self.buffer_size >= 1, "buffer_size", self.buffer_size)
        return self

    def apply(self, values: Mapping[str, Any], *, source: str = "mapping") -> "ExplainerConfig":
        """Return a copy with ``values`` coerced onto the matching fields.

        Raises
        ------
        ConfigurationError
            For unknown keys or values that cannot be coerced.
        """
        updates: Dict[str, Any] = {}
        for key, raw in values.items():
            if isinstance(raw, Mapping):
                # nested tables (e.g. ``telemetry``) belong to other readers
                continue
            name = str(key).strip().lower().replace("-", "_")
            caster = _CASTERS.get(name)
            if caster is None:
                raise ConfigurationError(
                    f"Unknown configuration key {key!r} in {source}.",
                    details={"key": key, "source": source, "choices": tuple(sorted(_CASTERS))},
                )
            try:
                updates[name] = caster(raw)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(
                    f"Invalid value {raw!r} for {name!r} in {source}.",
                    details={"key": name, "value": raw, "source": source},
                ) from exc
        return dataclasses.replace(self, **updates)


def _require(ok: bool, name: str, value: Any, choices: tuple[str, ...] | None = None) -> None:
    if ok:
        return
    details: Dict[str, Any] = {"param": name, "value": value}
    if choices is not None:
        details["choices"] = choices
    raise ConfigurationError(f"Invalid value {value!r} for {name!r}.", details=details)


def _optional_int(raw: Any) -> Optional[int]:
    if raw is None or (isinstance(raw, str) and raw.strip().lower() in {"", "none"}):
        return None
    return int(raw)


def _text(raw: Any) -> str:
    return str(raw).strip().lower()


_CASTERS: Dict[str, Callable[[Any], Any]] = {
    "explainer": _text,
    "samples": int,
    "noise": float,
    "seed": int,
    "strategy": _text,
    "extreme_cv_policy": _text,
    "epsilon": float,
    "min_samples": int,
    "max_samples": int,
    "step": int,
    "num_perturbations": int,
    "magnitude": float,
    "perturbation_type": _text,
    "robustness_seed": _optional_int,
    "parallel_enabled": coerce_bool,
    "parallel_backend": _text,
    "parallel_workers": _optional_int,
    "parallel_min_batch": int,
    "buffer_pool_capacity": int,
    "buffer_size": int,
}


def load_config(base: ExplainerConfig | None = None, *, use_pyproject: bool = True) -> ExplainerConfig:
    """Return ``base`` (or the defaults) overlaid with pyproject and environment settings."""
    cfg = base if base is not None else ExplainerConfig()
    if use_pyproject:
        section = read_pyproject_section()
        if section:
            logger.debug("Applying pyproject configuration keys: %s", sorted(section))
            cfg = cfg.apply(section, source="pyproject.toml")
    env_tokens = parse_key_value_tokens(os.getenv("PE_EXPLAINER"))
    if env_tokens:
        logger.debug("Applying PE_EXPLAINER overrides: %s", sorted(env_tokens))
        cfg = cfg.apply(env_tokens, source="PE_EXPLAINER")
    return cfg.validate()


class ExplainerBuilder:
    """Fluent helper to assemble an :class:`ExplainerConfig` and build from it.

    Parameters
    ----------
    config : ExplainerConfig, optional
        Starting configuration. When omitted, defaults are loaded through
        :func:`load_config` (pyproject and ``PE_EXPLAINER``).
    """

    def __init__(self, config: ExplainerConfig | None = None) -> None:
        self._cfg = dataclasses.replace(config) if config is not None else load_config()

    def explainer(self, kind: ExplainerKindLiteral) -> ExplainerBuilder:
        """Select ``"permutation"`` or ``"convergent"``."""
        self._cfg.explainer = kind
        return self

    def samples(self, n: int) -> ExplainerBuilder:
        """Set the perturbation trials per feature."""
        self._cfg.samples = n
        return self

    def noise(self, noise: float) -> ExplainerBuilder:
        """Set the width of the uniform baseline offset."""
        self._cfg.noise = noise
        return self

    def seed(self, seed: int) -> ExplainerBuilder:
        """Set the root seed of the sampler."""
        self._cfg.seed = seed
        return self

    def strategy(self, strategy: str) -> ExplainerBuilder:
        """Select the execution strategy.

        Parameters
        ----------
        strategy : {"sequential", "concurrent", "vectorized"}
            Strategy name resolved by the explanation orchestrator.
        """
        self._cfg.strategy = strategy
        return self

    def extreme_cv_policy(self, policy: str) -> ExplainerBuilder:
        """Choose the stability of pathological coefficients of variation."""
        self._cfg.extreme_cv_policy = policy
        return self

    def convergence(
        self,
        *,
        epsilon: float | None = None,
        min_samples: int | None = None,
        max_samples: int | None = None,
        step: int | None = None,
    ) -> ExplainerBuilder:
        """Configure the convergence controller and select the convergent explainer."""
        self._cfg.explainer = "convergent"
        if epsilon is not None:
            self._cfg.epsilon = epsilon
        if min_samples is not None:
            self._cfg.min_samples = min_samples
        if max_samples is not None:
            self._cfg.max_samples = max_samples
        if step is not None:
            self._cfg.step = step
        return self

    def robustness(
        self,
        *,
        num_perturbations: int | None = None,
        magnitude: float | None = None,
        perturbation_type: str | PerturbationType | None = None,
        seed: int | None = None,
    ) -> ExplainerBuilder:
        """Configure the robustness evaluator."""
        if num_perturbations is not None:
            self._cfg.num_perturbations = num_perturbations
        if magnitude is not None:
            self._cfg.magnitude = magnitude
        if perturbation_type is not None:
            self._cfg.perturbation_type = PerturbationType(perturbation_type).value
        if seed is not None:
            self._cfg.robustness_seed = seed
        return self

    def parallel(
        self,
        enabled: bool,
        *,
        backend: str | None = None,
        workers: int | None = None,
        min_batch: int | None = None,
    ) -> ExplainerBuilder:
        """Configure the parallel executor.

        Parameters
        ----------
        enabled : bool
            Whether an executor should be created.
        backend : {"auto", "threads", "processes", "joblib", "sequential"}, optional
            Explicit backend overriding the default when provided.
        """
        self._cfg.parallel_enabled = enabled
        if backend is not None:
            self._cfg.parallel_backend = backend
        if workers is not None:
            self._cfg.parallel_workers = workers
        if min_batch is not None:
            self._cfg.parallel_min_batch = min_batch
        return self

    def telemetry(self, callback: Any | None) -> ExplainerBuilder:
        """Register a telemetry callback for the parallel executor."""
        self._cfg.parallel_telemetry = callback
        return self

    def buffer_pool(self, capacity: int, *, buffer_size: int | None = None) -> ExplainerBuilder:
        """Enable scratch buffer pooling with ``capacity`` buffers (0 disables)."""
        self._cfg.buffer_pool_capacity = capacity
        if buffer_size is not None:
            self._cfg.buffer_size = buffer_size
        return self

    def build_config(self) -> ExplainerConfig:
        """Return a validated copy of the assembled configuration."""
        return dataclasses.replace(self._cfg).validate()

    def build_parallel_executor(self) -> ParallelExecutor | None:
        """Return a configured executor, or None when parallelism is disabled.

        ``PE_PARALLEL`` tokens are applied on top of the builder settings.
        """
        cfg = self.build_config()
        base = ParallelConfig(
            enabled=cfg.parallel_enabled,
            strategy=cfg.parallel_backend,  # type: ignore[arg-type]
            max_workers=cfg.parallel_workers,
            min_batch_size=cfg.parallel_min_batch,
            telemetry=cfg.parallel_telemetry,
        )
        parallel_config = ParallelConfig.from_env(base)
        if not parallel_config.enabled:
            return None
        return ParallelExecutor(parallel_config)

    def build_buffer_pool(self) -> ScratchBufferPool | None:
        """Return a scratch buffer pool, or None when pooling is disabled."""
        cfg = self.build_config()
        if cfg.buffer_pool_capacity == 0:
            return None
        return ScratchBufferPool(cfg.buffer_pool_capacity, cfg.buffer_size)

    def build_explainer(self, context: ModelContext) -> PerturbationExplainer | ConvergentExplainer:
        """Return the explainer selected by ``explainer`` for ``context``."""
        cfg = self.build_config()
        executor = self.build_parallel_executor()
        pool = self.build_buffer_pool()
        if cfg.explainer == "convergent":
            return ConvergentExplainer(
                context,
                epsilon=cfg.epsilon,
                min_samples=cfg.min_samples,
                max_samples=cfg.max_samples,
                step=cfg.step,
                noise=cfg.noise,
                seed=cfg.seed,
                strategy=cfg.strategy,
                executor=executor,
                buffer_pool=pool,
                extreme_cv_policy=cfg.extreme_cv_policy,
            )
        return PerturbationExplainer(
            context,
            samples=cfg.samples,
            noise=cfg.noise,
            seed=cfg.seed,
            strategy=cfg.strategy,
            executor=executor,
            buffer_pool=pool,
            extreme_cv_policy=cfg.extreme_cv_policy,
        )

    def build_robustness_evaluator(self) -> RobustnessEvaluator:
        """Return a robustness evaluator configured from the builder."""
        cfg = self.build_config()
        return RobustnessEvaluator(
            cfg.num_perturbations,
            cfg.magnitude,
            cfg.perturbation_type,
            seed=cfg.robustness_seed,
            executor=self.build_parallel_executor(),
        )


__all__ = [
    "EXPLAINER_KINDS",
    "ExplainerBuilder",
    "ExplainerConfig",
    "ExplainerKindLiteral",
    "load_config",
]

"""Base interface for explain execution strategies.

This module defines the abstract protocol that every explain executor
(sequential, concurrent, vectorized, instance-parallel) implements.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ...explanations import Explanation
    from ._shared import ExplainConfig, ExplainRequest


class BaseExplainExecutor(ABC):
    """Abstract base for explain execution strategies.

    Each executor implements a specific way of computing the per-feature
    attributions of one instance:
    - Sequential: features and samples processed one after another
    - Concurrent: one task per feature dispatched through a ParallelExecutor
    - Vectorized: samples scored and reduced in fixed-width lanes

    All executors return the same immutable ``Explanation`` and agree with the
    sequential reference to floating-point tolerance.
    """

    @abstractmethod
    def supports(self, request: ExplainRequest, config: ExplainConfig) -> bool:
        """Return True if this executor can handle the given request and config.

        Parameters
        ----------
        request : ExplainRequest
            The explain request context
        config : ExplainConfig
            Execution configuration with executor and buffer pool

        Returns
        -------
        bool
            True if the executor can run this request
        """
        ...

    @abstractmethod
    def execute(self, request: ExplainRequest, config: ExplainConfig) -> Explanation:
        """Execute the explain operation using this executor's strategy.

        Parameters
        ----------
        request : ExplainRequest
            The explain request with model, instance and sampling parameters
        config : ExplainConfig
            Execution configuration

        Returns
        -------
        Explanation
            The completed explanation

        Raises
        ------
        NumericError
            If a model prediction is not finite
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the executor's identifying name.

        Used for strategy resolution, metadata and logging.
        """
        ...

    @property
    @abstractmethod
    def priority(self) -> int:
        """Return the executor's selection priority.

        Higher priority executors are listed first by the orchestrator.
        """
        ...


__all__ = ["BaseExplainExecutor"]

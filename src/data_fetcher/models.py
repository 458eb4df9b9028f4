"""Domain models shared by the fetcher and the worker pool.

This module defines the state enumeration, metrics snapshots and the
worker pool configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_KEEP_ALIVE_SECONDS = 30.0
DEFAULT_QUEUE_CAPACITY = 2028
DEFAULT_THREAD_NAME_PREFIX = "dataFetcher-thread-"


class FetchState(str, Enum):
    """State of a single fetcher execution.

    Attributes:
        IDLE: Nodes may still be added; fetch has not been called.
        DISPATCHED: Every producer has been submitted to the executor.
        JOINED: Every producer returned before the deadline.
        DONE: Every installer ran.
        REJECTED: The executor refused a submission.
        FAILED: The deadline expired or a producer raised.
        INSTALL_FAILED: An installer raised.
    """

    IDLE = "idle"
    DISPATCHED = "dispatched"
    JOINED = "joined"
    DONE = "done"
    REJECTED = "rejected"
    FAILED = "failed"
    INSTALL_FAILED = "install_failed"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition can happen from this state."""
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {FetchState.DONE, FetchState.REJECTED, FetchState.FAILED, FetchState.INSTALL_FAILED}
)


@dataclass(frozen=True, slots=True)
class FetchMetrics:
    """Snapshot of a fetcher's progress.

    Attributes:
        state: Current execution state.
        node_count: Number of declared nodes.
        completed_count: Producers that returned normally.
        failed_count: Producers that raised.
        elapsed_ms: Wall time spent in fetch, None before fetch was called.
    """

    state: FetchState
    node_count: int
    completed_count: int
    failed_count: int
    elapsed_ms: float | None


@dataclass(frozen=True, slots=True)
class PoolConfig:
    """Configuration for a WorkerPool.

    Attributes:
        core_workers: Workers kept alive while idle.
        max_workers: Upper bound on live workers.
        keep_alive_seconds: Idle time after which a non-core worker exits.
        queue_capacity: Maximum number of tasks waiting for a worker.
        thread_name_prefix: Worker names are this prefix followed by 1, 2, ...
    """

    core_workers: int
    max_workers: int
    keep_alive_seconds: float = DEFAULT_KEEP_ALIVE_SECONDS
    queue_capacity: int = DEFAULT_QUEUE_CAPACITY
    thread_name_prefix: str = DEFAULT_THREAD_NAME_PREFIX

    def __post_init__(self) -> None:
        if self.core_workers < 0:
            raise ValueError("core_workers must be non-negative")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.max_workers < self.core_workers:
            raise ValueError("max_workers must be greater than or equal to core_workers")
        if self.keep_alive_seconds < 0:
            raise ValueError("keep_alive_seconds must be non-negative")
        if self.queue_capacity < 1:
            raise ValueError("queue_capacity must be at least 1")

    @classmethod
    def from_cpu_count(cls, cpu_count: int | None = None) -> PoolConfig:
        """Build the default configuration for ``cpu_count`` logical processors.

        Args:
            cpu_count: Number of logical processors; detected when None.

        Returns:
            A config with 2P+1 core workers and 3P max workers.
        """
        processors = cpu_count or os.cpu_count() or 1
        return cls(core_workers=2 * processors + 1, max_workers=3 * processors)


@dataclass(frozen=True, slots=True)
class PoolMetrics:
    """Snapshot of a WorkerPool's activity."""

    pool_size: int
    active_count: int
    queued_count: int
    largest_pool_size: int
    completed_count: int
    rejected_count: int

"""Data Fetcher.

Assemble an aggregate object from several independent, slow property fetches
concurrently, under a single deadline, with all-or-nothing installation.
"""

from data_fetcher.errors import (
    DataFetcherError,
    FetchFailedError,
    FetcherStateError,
    InstallFailedError,
    ResourceExhaustedError,
)
from data_fetcher.fetcher import DataFetcher
from data_fetcher.models import (
    DEFAULT_TIMEOUT_SECONDS,
    FetchMetrics,
    FetchState,
    PoolConfig,
    PoolMetrics,
)
from data_fetcher.node import FetchNode, Node
from data_fetcher.pool import WorkerPool, get_default_pool

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    # Fetcher
    "DataFetcher",
    "FetchMetrics",
    "FetchNode",
    "FetchState",
    "Node",
    # Errors
    "DataFetcherError",
    "FetchFailedError",
    "FetcherStateError",
    "InstallFailedError",
    "ResourceExhaustedError",
    # Worker pool
    "PoolConfig",
    "PoolMetrics",
    "WorkerPool",
    "get_default_pool",
]

"""Pytest configuration and fixtures for data-fetcher tests."""

from __future__ import annotations

from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor

import pytest

from data_fetcher import PoolConfig, WorkerPool
from tests.support import InstallRecorder, Profile


@pytest.fixture()
def profile() -> Profile:
    """Provide an empty aggregate."""
    return Profile()


@pytest.fixture()
def recorder() -> InstallRecorder:
    """Provide an installer call recorder."""
    return InstallRecorder()


@pytest.fixture()
def executor() -> Iterator[ThreadPoolExecutor]:
    """Provide a dedicated thread pool wide enough for every test's nodes."""
    with ThreadPoolExecutor(max_workers=8, thread_name_prefix="test-fetch") as pool:
        yield pool


@pytest.fixture()
def worker_pool() -> Iterator[WorkerPool]:
    """Provide a small WorkerPool that is shut down after the test."""
    pool = WorkerPool(
        PoolConfig(
            core_workers=2,
            max_workers=4,
            keep_alive_seconds=0.2,
            queue_capacity=4,
            thread_name_prefix="test-pool-",
        )
    )
    yield pool
    pool.shutdown(wait=True, cancel_futures=True)

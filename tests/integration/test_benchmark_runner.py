"""Integration tests for the assembly benchmark against the mock field service."""

from __future__ import annotations

import time
from collections.abc import Iterator

import pytest
import requests

from benchmarks.mock_server import MockServerConfig, MockServerThread
from benchmarks.runner import (
    ThreadLocalSession,
    assemble_concurrently,
    assemble_serially,
    format_results,
)
from data_fetcher import FetchFailedError, PoolConfig, WorkerPool


@pytest.fixture()
def field_server() -> Iterator[MockServerThread]:
    """Run the mock field service for one test."""
    with MockServerThread(MockServerConfig(base_latency_ms=5.0)) as server:
        yield server


@pytest.fixture()
def pool() -> Iterator[WorkerPool]:
    """Provide a pool wide enough for every field."""
    worker_pool = WorkerPool(PoolConfig(core_workers=4, max_workers=4))
    yield worker_pool
    worker_pool.shutdown()


class TestMockFieldServer:
    """Test cases for the mock field service."""

    def test_health(self, field_server: MockServerThread) -> None:
        """The health endpoint should answer immediately."""
        response = requests.get(f"{field_server.base_url}/health", timeout=5)
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_field_lookup(self, field_server: MockServerThread) -> None:
        """A field lookup should echo the name and honour the delay."""
        start = time.perf_counter()
        response = requests.get(field_server.field_url("name", delay=0.2), timeout=5)
        elapsed = time.perf_counter() - start

        assert response.status_code == 200
        assert response.json()["value"] == "name-value"
        assert elapsed >= 0.2
        assert field_server.server.request_count == 1

    def test_invalid_delay(self, field_server: MockServerThread) -> None:
        """A non-numeric delay should be a 400."""
        response = requests.get(f"{field_server.base_url}/field/name?delay=soon", timeout=5)
        assert response.status_code == 400


class TestAssemblyStrategies:
    """Test cases comparing serial and DataFetcher assembly."""

    def test_concurrent_assembly_beats_serial(
        self, field_server: MockServerThread, pool: WorkerPool
    ) -> None:
        """Four 0.3s lookups should take ~0.3s concurrently and ~1.2s serially."""
        urls = {f"field_{i}": field_server.field_url(f"field_{i}", delay=0.3) for i in range(4)}
        sessions = ThreadLocalSession()

        start = time.perf_counter()
        concurrent = assemble_concurrently(urls, sessions, pool, timeout=5)
        concurrent_time = time.perf_counter() - start

        start = time.perf_counter()
        serial = assemble_serially(urls, sessions)
        serial_time = time.perf_counter() - start

        assert concurrent.fields == serial.fields
        assert concurrent.fields["field_3"] == "field_3-value"
        assert concurrent_time < 0.9
        assert serial_time >= 1.2

    def test_concurrent_assembly_timeout(
        self, field_server: MockServerThread, pool: WorkerPool
    ) -> None:
        """A lookup slower than the deadline should fail the whole assembly."""
        urls = {
            "fast": field_server.field_url("fast", delay=0.0),
            "slow": field_server.field_url("slow", delay=2.0),
        }

        with pytest.raises(FetchFailedError):
            assemble_concurrently(urls, ThreadLocalSession(), pool, timeout=0.5)

    def test_format_results_reports_speedup(self) -> None:
        """format_results should compute the speedup factor and time saved."""
        results = format_results(
            {"average_time_sec": 1.0},
            {"average_time_sec": 0.25},
        )

        comparison = results["comparison"]
        assert comparison["speedup_factor"] == 4.0
        assert comparison["concurrent_faster"] is True
        assert comparison["time_saved_sec"] == 0.75

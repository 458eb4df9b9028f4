#!/usr/bin/env python3
"""Benchmark Runner for Data Fetcher.

This script assembles a response object from several slow remote fields,
once serially and once through DataFetcher, and outputs the comparison in
JSON format for easy processing.

Usage:
    python -m benchmarks.runner [--fields N] [--delay SECONDS] [--runs N] [--output FILE]

Options:
    --fields N       Number of fields per assembled object (default: 5)
    --delay SECONDS  Server-side latency of every field lookup (default: 0.2)
    --runs N         Number of benchmark runs per strategy (default: 3)
    --output FILE    Output JSON file (default: benchmark_output.json)
"""

from __future__ import annotations

import argparse
import json
import sys
import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from statistics import mean, stdev
from typing import Any

import requests

from benchmarks.mock_server import MockServerThread
from data_fetcher import DataFetcher, PoolConfig, WorkerPool


class ThreadLocalSession(threading.local):
    """One requests Session per thread for connection pooling."""

    def __init__(self) -> None:
        super().__init__()
        self.session: requests.Session | None = None

    def get_session(self) -> requests.Session:
        if self.session is None:
            self.session = requests.Session()
        return self.session


class AssembledResponse:
    """Response object whose fields come from separate backend calls."""

    def __init__(self) -> None:
        self.fields: dict[str, Any] = {}

    def set_field(self, name: str, value: Any) -> None:
        self.fields[name] = value


def field_producer(
    sessions: ThreadLocalSession, url: str, timeout: float
) -> Callable[[], Any]:
    """Build a producer that looks up one field over HTTP."""

    def produce() -> Any:
        response = sessions.get_session().get(url, timeout=timeout)
        response.raise_for_status()
        return response.json()["value"]

    return produce


def field_installer(name: str) -> Callable[[AssembledResponse, Any], None]:
    """Build an installer that stores a looked-up value under ``name``."""

    def install(response: AssembledResponse, value: Any) -> None:
        response.set_field(name, value)

    return install


def assemble_serially(urls: dict[str, str], sessions: ThreadLocalSession) -> AssembledResponse:
    """Look up every field one after the other."""
    response = AssembledResponse()
    for name, url in urls.items():
        value = field_producer(sessions, url, timeout=30.0)()
        response.set_field(name, value)
    return response


def assemble_concurrently(
    urls: dict[str, str],
    sessions: ThreadLocalSession,
    pool: WorkerPool,
    timeout: float,
) -> AssembledResponse:
    """Look up every field through a DataFetcher."""
    response = AssembledResponse()
    fetcher = DataFetcher(response)
    for name, url in urls.items():
        fetcher.add_node(field_producer(sessions, url, timeout=timeout), field_installer(name))
    fetcher.fetch(timeout=timeout, executor=pool)
    return response


def run_benchmark(
    strategy: str,
    assemble: Callable[[], AssembledResponse],
    field_count: int,
    runs: int = 3,
) -> dict:
    """Run one assembly strategy several times.

    Args:
        strategy: Name of the strategy for reporting.
        assemble: Builds one fully assembled response.
        field_count: Expected number of fields per response.
        runs: Number of benchmark runs.

    Returns:
        Dictionary with timing statistics.
    """
    print(f"Running {strategy} assembly benchmark ({runs} runs)...")
    durations: list[float] = []

    for i in range(runs):
        print(f"  Run {i + 1}/{runs}...", end=" ", flush=True)
        start = time.perf_counter()
        response = assemble()
        elapsed = time.perf_counter() - start
        if len(response.fields) != field_count:
            raise RuntimeError(
                f"{strategy} assembly produced {len(response.fields)} of {field_count} fields"
            )
        durations.append(elapsed)
        print(f"{elapsed:.3f}s")

    return {
        "strategy": strategy,
        "runs": runs,
        "fields_per_run": field_count,
        "average_time_sec": mean(durations),
        "min_time_sec": min(durations),
        "max_time_sec": max(durations),
        "std_dev_sec": stdev(durations) if len(durations) > 1 else 0,
    }


def format_results(serial_result: dict, concurrent_result: dict) -> dict:
    """Format final benchmark results with comparison.

    Args:
        serial_result: Serial assembly benchmark results.
        concurrent_result: DataFetcher assembly benchmark results.

    Returns:
        Formatted comparison results.
    """
    speedup = (
        serial_result["average_time_sec"] / concurrent_result["average_time_sec"]
        if concurrent_result["average_time_sec"] > 0
        else 0
    )

    return {
        "timestamp": datetime.now(UTC).isoformat(),
        "serial": serial_result,
        "concurrent": concurrent_result,
        "comparison": {
            "speedup_factor": speedup,
            "concurrent_faster": concurrent_result["average_time_sec"]
            < serial_result["average_time_sec"],
            "time_saved_sec": serial_result["average_time_sec"]
            - concurrent_result["average_time_sec"],
        },
    }


def main() -> int:
    """Main entry point for benchmark runner.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    parser = argparse.ArgumentParser(
        description="Benchmark serial versus concurrent response assembly"
    )
    parser.add_argument(
        "--fields",
        type=int,
        default=5,
        help="Number of fields per assembled object (default: 5)",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=0.2,
        help="Server-side latency of every field lookup in seconds (default: 0.2)",
    )
    parser.add_argument(
        "--runs",
        type=int,
        default=3,
        help="Number of benchmark runs per strategy (default: 3)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="benchmark_output.json",
        help="Output JSON file (default: benchmark_output.json)",
    )
    args = parser.parse_args()

    if args.fields < 1:
        print("Error: --fields must be at least 1", file=sys.stderr)
        return 1

    sessions = ThreadLocalSession()
    pool = WorkerPool(PoolConfig(core_workers=args.fields, max_workers=args.fields))
    timeout = max(10.0, args.delay * 4)

    try:
        with MockServerThread() as server:
            urls = {
                f"field_{i}": server.field_url(f"field_{i}", delay=args.delay)
                for i in range(args.fields)
            }

            serial_result = run_benchmark(
                "serial",
                lambda: assemble_serially(urls, sessions),
                args.fields,
                runs=args.runs,
            )
            print()
            concurrent_result = run_benchmark(
                "concurrent",
                lambda: assemble_concurrently(urls, sessions, pool, timeout),
                args.fields,
                runs=args.runs,
            )
            print()

        results = format_results(serial_result, concurrent_result)

        output_path = Path(args.output)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(results, f, indent=2)

        print("=" * 50)
        print("BENCHMARK RESULTS")
        print("=" * 50)
        print(f"Serial:      {serial_result['average_time_sec']:.3f}s")
        print(f"Concurrent:  {concurrent_result['average_time_sec']:.3f}s")
        print(f"Speedup Factor: {results['comparison']['speedup_factor']:.2f}x")
        print(f"Results saved to: {output_path}")
        print("=" * 50)

        return 0

    except Exception as e:
        print(f"Error running benchmark: {e}", file=sys.stderr)
        return 1
    finally:
        pool.shutdown(wait=False)


if __name__ == "__main__":
    sys.exit(main())

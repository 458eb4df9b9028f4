#!/usr/bin/env python3
"""Mock field service for deterministic assembly benchmarks.

This module provides a small aiohttp server standing in for the slow
backends a response object is assembled from. Each field endpoint answers
after a configurable delay, so serial and concurrent assembly can be compared
without external dependencies.

Usage:
    with MockServerThread(MockServerConfig(base_latency_ms=50.0)) as server:
        response = requests.get(server.field_url("name", delay=0.2))
"""

from __future__ import annotations

import asyncio
import random
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from aiohttp import web

# Cap on the delay a client may request.
MAX_DELAY_SECONDS = 60.0


@dataclass(frozen=True, slots=True)
class MockServerConfig:
    """Configuration for the mock field service.

    Attributes:
        host: Host address to bind to (default: 127.0.0.1)
        port: Port number to listen on; 0 picks a free port (default: 0)
        base_latency_ms: Latency added to field responses without an explicit delay
        jitter_seed: Optional seed for reproducible random jitter
    """

    host: str = "127.0.0.1"
    port: int = 0
    base_latency_ms: float = 10.0
    jitter_seed: int | None = None


@dataclass
class MockServer:
    """Async HTTP server answering field lookups after a delay.

    Endpoints:
        GET /health: 200 immediately.
        GET /field/{name}?delay=<seconds>: {"name": ..., "value": ...} after the delay.
    """

    config: MockServerConfig
    _request_count: int = field(default=0, init=False)
    _random: random.Random = field(default_factory=random.Random, init=False)
    _runner: web.AppRunner | None = field(default=None, init=False)
    _bound_port: int | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.config.jitter_seed is not None:
            self._random = random.Random(self.config.jitter_seed)

    @property
    def base_url(self) -> str:
        """Get the base URL of the server."""
        port = self._bound_port or self.config.port
        return f"http://{self.config.host}:{port}"

    @property
    def request_count(self) -> int:
        """Get the number of field requests handled so far."""
        return self._request_count

    def _calculate_delay(self, requested: str | None) -> float:
        """Calculate response delay in seconds.

        Args:
            requested: The ``delay`` query parameter, if any.

        Returns:
            Delay in seconds to wait before responding.
        """
        if requested is not None:
            return min(max(0.0, float(requested)), MAX_DELAY_SECONDS)

        base_delay = self.config.base_latency_ms / 1000.0
        if self.config.jitter_seed is not None:
            # Jitter range: 0% to 20% of base latency
            return base_delay + self._random.uniform(0, 0.2) * base_delay
        return base_delay

    async def handle_health(self, request: web.Request) -> web.Response:
        """Handle health check requests."""
        return web.json_response({"status": "healthy", "server": "mock"})

    async def handle_field(self, request: web.Request) -> web.Response:
        """Handle field lookups.

        Path: /field/{name}

        Returns:
            JSON with the field name and a value derived from it.
        """
        name = request.match_info["name"]
        try:
            delay = self._calculate_delay(request.query.get("delay"))
        except ValueError:
            return web.json_response({"error": "Invalid delay value"}, status=400)

        self._request_count += 1
        await asyncio.sleep(delay)

        return web.json_response(
            {
                "name": name,
                "value": f"{name}-value",
                "delay": delay,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    def _create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self.handle_health)
        app.router.add_get("/field/{name}", self.handle_field)
        return app

    async def start(self) -> None:
        """Start the server.

        Raises:
            RuntimeError: If the server is already running.
        """
        if self._runner is not None:
            raise RuntimeError("Server is already running")

        self._runner = web.AppRunner(self._create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await site.start()

        self._bound_port = self.config.port
        if self._runner.addresses:
            address = self._runner.addresses[0]
            if isinstance(address, tuple) and len(address) >= 2:
                self._bound_port = address[1]
        self._request_count = 0

    async def stop(self) -> None:
        """Stop the server.

        Raises:
            RuntimeError: If the server is not running.
        """
        if self._runner is None:
            raise RuntimeError("Server is not running")

        await self._runner.cleanup()
        self._runner = None
        self._bound_port = None


class MockServerThread:
    """Run a MockServer on a background event loop for synchronous callers.

    Args:
        config: Server configuration; defaults to MockServerConfig().
    """

    def __init__(self, config: MockServerConfig | None = None) -> None:
        self._server = MockServer(config or MockServerConfig())
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever, name="mock-field-server", daemon=True
        )

    @property
    def server(self) -> MockServer:
        """The wrapped server."""
        return self._server

    @property
    def base_url(self) -> str:
        """Base URL of the running server."""
        return self._server.base_url

    def field_url(self, name: str, delay: float | None = None) -> str:
        """Build the URL of a field lookup.

        Args:
            name: Field name.
            delay: Seconds the server waits before answering; server default when None.

        Returns:
            Full URL for the field endpoint.
        """
        url = f"{self.base_url}/field/{name}"
        if delay is not None:
            url += f"?delay={delay}"
        return url

    def start(self, timeout: float = 10.0) -> None:
        """Start the loop thread and the server on it."""
        self._thread.start()
        asyncio.run_coroutine_threadsafe(self._server.start(), self._loop).result(timeout)

    def stop(self, timeout: float = 10.0) -> None:
        """Stop the server, then the loop thread."""
        try:
            asyncio.run_coroutine_threadsafe(self._server.stop(), self._loop).result(timeout)
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout)
            self._loop.close()

    def __enter__(self) -> MockServerThread:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()

"""Concurrent assembly of an aggregate from independent property fetches.

A DataFetcher owns an aggregate value and an ordered list of nodes. Calling
fetch() runs every node's producer on an executor, waits for all of them under
a single deadline, then runs the installers on the calling thread in
declaration order. Either every installer runs or, unless an installer itself
fails, none does.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_EXCEPTION, CancelledError, Executor, Future, wait
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar, overload

from data_fetcher.errors import (
    FetchFailedError,
    FetcherStateError,
    InstallFailedError,
    ResourceExhaustedError,
)
from data_fetcher.models import DEFAULT_TIMEOUT_SECONDS, FetchMetrics, FetchState
from data_fetcher.node import FetchNode, Node
from data_fetcher.pool import get_default_pool

logger = logging.getLogger(__name__)

D = TypeVar("D")
P = TypeVar("P")

_LOG_LEVELS = {
    FetchState.DISPATCHED: logging.DEBUG,
    FetchState.JOINED: logging.DEBUG,
    FetchState.DONE: logging.DEBUG,
    FetchState.REJECTED: logging.WARNING,
    FetchState.FAILED: logging.WARNING,
    FetchState.INSTALL_FAILED: logging.ERROR,
}


class DataFetcher(Generic[D]):
    """Populate an aggregate from several slow sources concurrently.

    Total latency is that of the slowest producer rather than the sum of all
    of them. Producers run on executor workers and must not touch the
    aggregate; installers run on the thread that called fetch().

    A fetcher executes once. Nodes must be added before fetch() is called.

    Args:
        data: The aggregate that installers write into.

    Example:
        ```python
        profile = Profile()
        fetcher = DataFetcher(profile)
        fetcher.add_node(lambda: users.get_name(user_id), Profile.set_name)
        fetcher.add_node(lambda: orders.count_for(user_id), Profile.set_order_count)
        fetcher.fetch(timeout=2)
        ```
    """

    def __init__(self, data: D) -> None:
        self._data = data
        self._nodes: list[FetchNode[D]] = []
        self._state = FetchState.IDLE
        self._started = False
        self._lock = threading.Lock()
        self._futures: list[Future[Any]] = []
        self._start_time: float | None = None
        self._elapsed_ms: float | None = None

    @property
    def data(self) -> D:
        """The aggregate being populated."""
        return self._data

    @property
    def state(self) -> FetchState:
        """Current execution state."""
        return self._state

    @property
    def nodes(self) -> tuple[FetchNode[D], ...]:
        """Declared nodes in installation order."""
        return tuple(self._nodes)

    @overload
    def add_node(self, node: FetchNode[D], /) -> None: ...

    @overload
    def add_node(
        self, producer: Callable[[], P], installer: Callable[[D, P], object], /
    ) -> None: ...

    def add_node(
        self,
        node_or_producer: FetchNode[D] | Callable[[], Any] | None,
        installer: Callable[[D, Any], object] | None = None,
        /,
    ) -> None:
        """Append a node, either prebuilt or from a producer/installer pair.

        Args:
            node_or_producer: A FetchNode, or the producer when ``installer`` is given.
            installer: Writes the produced value into the aggregate.

        Raises:
            ValueError: If the node is None or was already added.
            TypeError: If a single argument is not a FetchNode.
            FetcherStateError: If fetch() has already been called.
        """
        if installer is None:
            if node_or_producer is None:
                raise ValueError("node must not be None")
            if not isinstance(node_or_producer, FetchNode):
                raise TypeError(
                    f"expected a FetchNode or a producer/installer pair, "
                    f"got {type(node_or_producer).__name__}"
                )
            node: FetchNode[D] = node_or_producer
        else:
            node = Node(node_or_producer, installer)  # type: ignore[arg-type]

        with self._lock:
            if self._started:
                raise FetcherStateError(
                    f"cannot add nodes after fetch has been called (state={self._state.value})"
                )
            if any(existing is node for existing in self._nodes):
                raise ValueError("node has already been added to this fetcher")
            self._nodes.append(node)

    def fetch(
        self,
        timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
        executor: Executor | None = None,
    ) -> None:
        """Run every producer concurrently, then install the results in order.

        Args:
            timeout: Seconds to wait for all producers together; None waits forever.
            executor: Where producers run; the process-wide pool when None.

        Raises:
            ValueError: If timeout is negative.
            FetcherStateError: If fetch() was already called on this fetcher.
            ResourceExhaustedError: If the executor rejected a producer.
            FetchFailedError: If the deadline expired or a producer raised.
            InstallFailedError: If an installer raised.
        """
        if timeout is not None and timeout < 0:
            raise ValueError("timeout must be non-negative")

        with self._lock:
            if self._started:
                raise FetcherStateError(
                    f"fetch has already been called on this fetcher (state={self._state.value})"
                )
            self._started = True
            nodes = list(self._nodes)

        if executor is None:
            executor = get_default_pool()

        self._start_time = time.perf_counter()
        self._dispatch(nodes, executor)
        self._transition(FetchState.DISPATCHED)
        self._join(timeout)
        self._transition(FetchState.JOINED)
        self._install(nodes)
        self._transition(FetchState.DONE)

    def get_metrics(self) -> FetchMetrics:
        """Get current metrics for this fetcher.

        Returns:
            FetchMetrics: State, node count, producer outcomes and elapsed time.
        """
        finished = [f for f in self._futures if f.done() and not f.cancelled()]
        failed_count = sum(1 for f in finished if f.exception() is not None)
        return FetchMetrics(
            state=self._state,
            node_count=len(self._nodes),
            completed_count=len(finished) - failed_count,
            failed_count=failed_count,
            elapsed_ms=self._elapsed_ms,
        )

    def _dispatch(self, nodes: Sequence[FetchNode[D]], executor: Executor) -> None:
        """Submit every producer; abandon the dispatched ones on rejection."""
        for index, node in enumerate(nodes):
            try:
                self._futures.append(executor.submit(node.run_producer))
            except RuntimeError as exc:
                self._abandon()
                self._transition(FetchState.REJECTED, node_index=index, error=str(exc))
                raise ResourceExhaustedError(
                    f"executor rejected node {index} of {len(nodes)}: {exc}"
                ) from exc

    def _join(self, timeout: float | None) -> None:
        """Wait on the single barrier; raise FetchFailedError on failure or timeout."""
        _, not_done = wait(self._futures, timeout=timeout, return_when=FIRST_EXCEPTION)

        for index, future in enumerate(self._futures):
            if not future.done():
                continue
            if future.cancelled():
                cause: BaseException | None = CancelledError(
                    f"node {index} was cancelled before its producer ran"
                )
            else:
                cause = future.exception()
            if cause is not None:
                self._abandon()
                self._transition(FetchState.FAILED, node_index=index, error=repr(cause))
                raise FetchFailedError(
                    f"failed to fetch, node {index} did not produce: {cause!r}",
                    cause=cause,
                    node_index=index,
                ) from cause

        if not_done:
            timeout_error = TimeoutError(
                f"{len(not_done)} of {len(self._futures)} nodes unfinished after {timeout}s"
            )
            self._abandon()
            self._transition(FetchState.FAILED, error=str(timeout_error), timed_out=True)
            raise FetchFailedError(
                f"failed to fetch, {timeout_error}",
                cause=timeout_error,
                timed_out=True,
            ) from timeout_error

    def _install(self, nodes: Sequence[FetchNode[D]]) -> None:
        """Run installers on the calling thread in declaration order."""
        for index, node in enumerate(nodes):
            try:
                node.run_installer(self._data)
            except Exception as exc:
                self._transition(FetchState.INSTALL_FAILED, node_index=index, error=repr(exc))
                raise InstallFailedError(
                    f"installer of node {index} raised: {exc!r}",
                    cause=exc,
                    node_index=index,
                ) from exc

    def _abandon(self) -> None:
        """Cancel producers that have not started; running ones finish unobserved."""
        for future in self._futures:
            future.cancel()

    def _transition(self, to_state: FetchState, **fields: Any) -> None:
        """Move to ``to_state`` and log the transition as structured JSON."""
        from_state = self._state
        self._state = to_state
        elapsed_ms = None
        if self._start_time is not None:
            elapsed_ms = (time.perf_counter() - self._start_time) * 1000
            if to_state.is_terminal:
                self._elapsed_ms = elapsed_ms

        level = _LOG_LEVELS[to_state]
        if not logger.isEnabledFor(level):
            return
        log_entry = {
            "event": "data_fetcher_state_change",
            "from_state": from_state.value,
            "to_state": to_state.value,
            "node_count": len(self._nodes),
            "elapsed_ms": elapsed_ms,
            **fields,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        logger.log(level, json.dumps(log_entry, default=str))

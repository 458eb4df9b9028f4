"""Bounded worker pool used by DataFetcher when no executor is supplied.

The pool keeps a set of core workers, grows up to a maximum when its bounded
queue is full, lets surplus workers exit after an idle timeout, and rejects
submissions it cannot hold instead of blocking the caller.
"""

from __future__ import annotations

import itertools
import json
import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from concurrent.futures import Executor, Future
from datetime import UTC, datetime
from typing import Any

from data_fetcher.errors import ResourceExhaustedError
from data_fetcher.models import PoolConfig, PoolMetrics

logger = logging.getLogger(__name__)

# How often an idle core worker checks whether the interpreter is exiting.
_IDLE_POLL_SECONDS = 1.0


class _WorkItem:
    __slots__ = ("future", "fn", "args", "kwargs")

    def __init__(
        self,
        future: Future[Any],
        fn: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> None:
        self.future = future
        self.fn = fn
        self.args = args
        self.kwargs = kwargs

    def run(self) -> bool:
        """Run the call unless it was cancelled; return whether it ran."""
        if not self.future.set_running_or_notify_cancel():
            return False

        try:
            result = self.fn(*self.args, **self.kwargs)
        except BaseException as exc:
            self.future.set_exception(exc)
        else:
            self.future.set_result(result)
        return True


class WorkerPool(Executor):
    """Thread pool with core/max sizing, idle expiry and a bounded queue.

    Admission follows the classic thread-pool order: start a core worker while
    fewer than ``core_workers`` are alive, otherwise queue the task, otherwise
    start a surplus worker up to ``max_workers``, otherwise reject.

    Workers are non-daemon threads, so queued work keeps the process alive.
    Idle workers exit once the main thread has finished, so an idle pool does
    not hold up interpreter exit.

    Args:
        config: Pool sizing; defaults to PoolConfig.from_cpu_count().

    Example:
        ```python
        with WorkerPool(PoolConfig(core_workers=2, max_workers=4)) as pool:
            future = pool.submit(load_profile, user_id)
            profile = future.result(timeout=5)
        ```
    """

    def __init__(self, config: PoolConfig | None = None) -> None:
        self._config = config or PoolConfig.from_cpu_count()
        self._queue: deque[_WorkItem] = deque()
        self._lock = threading.Lock()
        self._work_available = threading.Condition(self._lock)
        self._workers: set[threading.Thread] = set()
        self._thread_counter = itertools.count(1)
        self._shutdown = False

        # Metrics
        self._active_count = 0
        self._largest_pool_size = 0
        self._completed_count = 0
        self._rejected_count = 0

    @property
    def config(self) -> PoolConfig:
        """Sizing configuration of this pool."""
        return self._config

    @property
    def is_shutdown(self) -> bool:
        """Whether shutdown() has been called."""
        return self._shutdown

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future[Any]:
        """Schedule ``fn(*args, **kwargs)`` on a worker.

        Returns:
            A Future representing the pending call.

        Raises:
            ResourceExhaustedError: If the pool is shut down, or every worker is
                busy and the queue is full.
        """
        future: Future[Any] = Future()
        item = _WorkItem(future, fn, args, kwargs)

        with self._lock:
            if self._shutdown:
                self._rejected_count += 1
                raise ResourceExhaustedError("cannot schedule new tasks after shutdown")

            if len(self._workers) < self._config.core_workers:
                self._start_worker(item)
            elif len(self._queue) < self._config.queue_capacity:
                if not self._workers:
                    self._start_worker(None)
                self._queue.append(item)
                self._work_available.notify()
            elif len(self._workers) < self._config.max_workers:
                self._start_worker(item)
            else:
                self._rejected_count += 1
                self._log_event(
                    logging.WARNING,
                    "task_rejected",
                    pool_size=len(self._workers),
                    queued=len(self._queue),
                )
                raise ResourceExhaustedError(
                    f"worker pool saturated: {len(self._workers)} workers busy "
                    f"and {len(self._queue)} tasks queued"
                )

        return future

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        """Stop accepting tasks; queued tasks still run unless cancelled.

        Args:
            wait: Block until every worker has exited.
            cancel_futures: Cancel tasks that have not started yet.
        """
        with self._lock:
            self._shutdown = True
            if cancel_futures:
                while self._queue:
                    self._queue.popleft().future.cancel()
            self._work_available.notify_all()
            workers = list(self._workers)

        if wait:
            current = threading.current_thread()
            for worker in workers:
                if worker is not current:
                    worker.join()

    def get_metrics(self) -> PoolMetrics:
        """Get current metrics for this pool.

        Returns:
            PoolMetrics: Worker counts, queue depth and task totals.
        """
        with self._lock:
            return PoolMetrics(
                pool_size=len(self._workers),
                active_count=self._active_count,
                queued_count=len(self._queue),
                largest_pool_size=self._largest_pool_size,
                completed_count=self._completed_count,
                rejected_count=self._rejected_count,
            )

    def _start_worker(self, first_item: _WorkItem | None) -> None:
        """Start a worker thread; the caller must hold the lock."""
        name = f"{self._config.thread_name_prefix}{next(self._thread_counter)}"
        worker = threading.Thread(target=self._work, args=(first_item,), name=name, daemon=False)
        try:
            worker.start()
        except RuntimeError as exc:
            self._rejected_count += 1
            raise ResourceExhaustedError(f"cannot start worker {name}: {exc}") from exc
        # The worker only touches pool state under the lock held by the caller.
        self._workers.add(worker)
        self._largest_pool_size = max(self._largest_pool_size, len(self._workers))
        if first_item is not None:
            self._active_count += 1

    def _work(self, first_item: _WorkItem | None) -> None:
        item = first_item
        while True:
            if item is None:
                item = self._next_item()
                if item is None:
                    return
            ran = False
            try:
                ran = item.run()
            finally:
                with self._lock:
                    self._active_count -= 1
                    if ran:
                        self._completed_count += 1
            item = None

    def _next_item(self) -> _WorkItem | None:
        """Block until a task is available, or deregister this worker and return None."""
        current = threading.current_thread()
        idle_deadline = time.monotonic() + self._config.keep_alive_seconds

        with self._lock:
            while True:
                if self._queue:
                    self._active_count += 1
                    return self._queue.popleft()

                exit_reason = None
                if self._shutdown:
                    exit_reason = "shutdown"
                elif not threading.main_thread().is_alive():
                    exit_reason = "interpreter_exit"
                elif len(self._workers) > self._config.core_workers:
                    remaining = idle_deadline - time.monotonic()
                    if remaining <= 0:
                        exit_reason = "idle_timeout"
                    else:
                        self._work_available.wait(remaining)
                        continue

                if exit_reason is not None:
                    self._workers.discard(current)
                    self._log_event(
                        logging.DEBUG,
                        "worker_exited",
                        worker=current.name,
                        reason=exit_reason,
                        pool_size=len(self._workers),
                    )
                    return None

                self._work_available.wait(_IDLE_POLL_SECONDS)

    def _log_event(self, level: int, event: str, **fields: Any) -> None:
        """Log a pool event as structured JSON."""
        if not logger.isEnabledFor(level):
            return
        log_entry = {
            "event": event,
            "thread_name_prefix": self._config.thread_name_prefix,
            **fields,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        logger.log(level, json.dumps(log_entry))


_default_pool: WorkerPool | None = None
_default_pool_lock = threading.Lock()


def get_default_pool() -> WorkerPool:
    """Return the process-wide pool, creating it on first use.

    Returns:
        The shared WorkerPool sized from the number of logical processors.
    """
    global _default_pool
    if _default_pool is None:
        with _default_pool_lock:
            if _default_pool is None:
                _default_pool = WorkerPool(PoolConfig.from_cpu_count())
    return _default_pool

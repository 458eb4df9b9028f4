"""Test doubles shared across the unit and integration suites."""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from typing import Any

STRING_PROP = "stringProp"
INT_PROP = 1
LIST_PROP = ["a", "b", "c"]


@dataclass
class Profile:
    """Aggregate with one field per property type."""

    string_prop: str | None = None
    int_prop: int = 0
    list_prop: list[str] | None = None

    def set_string_prop(self, value: str) -> None:
        self.string_prop = value

    def set_int_prop(self, value: int) -> None:
        self.int_prop = value

    def set_list_prop(self, value: list[str]) -> None:
        self.list_prop = value


@dataclass
class InstallRecorder:
    """Builds installers that record the order they are called in."""

    calls: list[str] = field(default_factory=list)
    threads: list[str] = field(default_factory=list)

    def installer(self, name: str) -> Callable[[Any, Any], None]:
        def install(data: Any, value: Any) -> None:
            self.calls.append(name)
            self.threads.append(threading.current_thread().name)
            setattr(data, name, value)

        return install


class RejectingExecutor(Executor):
    """Executor that refuses every submission the way a shut-down pool does."""

    def __init__(self) -> None:
        self.submissions = 0

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future[Any]:
        self.submissions += 1
        raise RuntimeError("cannot schedule new futures after shutdown")


class HoldingExecutor(Executor):
    """Executor that accepts up to ``accept`` tasks and never runs them."""

    def __init__(self, accept: int) -> None:
        self.accept = accept
        self.futures: list[Future[Any]] = []

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future[Any]:
        if len(self.futures) >= self.accept:
            raise RuntimeError("queue full")
        future: Future[Any] = Future()
        self.futures.append(future)
        return future


def raise_error(message: str) -> Callable[[], Any]:
    """Build a producer that raises ValueError(message)."""

    def produce() -> Any:
        raise ValueError(message)

    return produce


class InlineExecutor(Executor):
    """Executor that runs each task synchronously inside submit()."""

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future[Any]:
        future: Future[Any] = Future()
        future.set_running_or_notify_cancel()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


class CancellingExecutor(Executor):
    """Executor that hands back an already-cancelled future for one submission.

    Every other task runs synchronously inside submit().
    """

    def __init__(self, cancel_index: int) -> None:
        self.cancel_index = cancel_index
        self.submissions = 0
        self._inline = InlineExecutor()

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future[Any]:
        index = self.submissions
        self.submissions += 1
        if index == self.cancel_index:
            future: Future[Any] = Future()
            future.cancel()
            return future
        return self._inline.submit(fn, *args, **kwargs)

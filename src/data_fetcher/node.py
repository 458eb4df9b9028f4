"""Fetch nodes: one producer/installer pair per aggregate property."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from data_fetcher.errors import FetcherStateError

D = TypeVar("D")
P = TypeVar("P")
D_contra = TypeVar("D_contra", contravariant=True)


@runtime_checkable
class FetchNode(Protocol[D_contra]):
    """Protocol for anything a DataFetcher can schedule.

    The produced value's type stays private to the node, which lets a single
    fetcher hold nodes producing different types.

    Example:
        >>> from data_fetcher.node import FetchNode, Node
        >>> isinstance(Node(lambda: 1, lambda data, value: None), FetchNode)
        True
    """

    def run_producer(self) -> None:
        """Produce the value on a worker thread and keep it for installation."""
        ...

    def run_installer(self, data: D_contra) -> None:
        """Write the produced value into ``data`` on the caller's thread."""
        ...


class _Unset:
    def __repr__(self) -> str:
        return "<unset>"


_UNSET: Any = _Unset()


class Node(Generic[D, P]):
    """A producer of one property and the installer that stores it.

    The producer runs on an executor worker and must not touch the aggregate.
    Its result is held in the node until the fetcher calls the installer,
    after every producer of the assembly has finished.

    Args:
        producer: Zero-argument callable returning the property value.
        installer: Callable receiving the aggregate and the produced value.

    Example:
        ```python
        node = Node(lambda: user_service.get_name(user_id), Profile.set_name)
        fetcher.add_node(node)
        ```
    """

    __slots__ = ("_producer", "_installer", "_value", "_claimed", "_claim_lock")

    def __init__(self, producer: Callable[[], P], installer: Callable[[D, P], object]) -> None:
        if not callable(producer):
            raise TypeError("producer must be callable")
        if not callable(installer):
            raise TypeError("installer must be callable")
        self._producer = producer
        self._installer = installer
        self._value: P = _UNSET
        self._claimed = False
        self._claim_lock = threading.Lock()

    @property
    def produced(self) -> bool:
        """Whether the producer has returned a value."""
        return self._value is not _UNSET

    def run_producer(self) -> None:
        """Run the producer and store its result.

        Raises:
            FetcherStateError: If the producer has already been started.
        """
        with self._claim_lock:
            if self._claimed:
                raise FetcherStateError("producer has already run for this node")
            self._claimed = True
        self._value = self._producer()

    def run_installer(self, data: D) -> None:
        """Pass the aggregate and the stored value to the installer.

        Raises:
            FetcherStateError: If the producer has not produced a value yet.
        """
        if self._value is _UNSET:
            raise FetcherStateError("installer called before the producer produced a value")
        self._installer(data, self._value)

    def __repr__(self) -> str:
        producer = getattr(self._producer, "__qualname__", repr(self._producer))
        installer = getattr(self._installer, "__qualname__", repr(self._installer))
        return f"Node(producer={producer}, installer={installer}, value={self._value!r})"

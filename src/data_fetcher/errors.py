"""Exceptions raised by the data fetcher and its worker pool."""

from __future__ import annotations


class DataFetcherError(Exception):
    """Base class for every error raised by data_fetcher."""

    pass


class FetcherStateError(DataFetcherError, RuntimeError):
    """Raised when a fetcher or node is used outside its allowed lifecycle."""

    pass


class ResourceExhaustedError(DataFetcherError, RuntimeError):
    """Raised when an executor refuses to accept a submitted task."""

    pass


class FetchFailedError(DataFetcherError):
    """Raised when the join timed out or a producer raised.

    No installer has run when this error is raised, so the aggregate is
    unchanged.

    Attributes:
        cause: The underlying exception (a TimeoutError on deadline expiry).
        node_index: Declaration index of the failing node, None on timeout.
        timed_out: True when the deadline expired before all producers finished.
    """

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        node_index: int | None = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.cause = cause
        self.node_index = node_index
        self.timed_out = timed_out


class InstallFailedError(DataFetcherError):
    """Raised when an installer raised.

    Installers declared before ``node_index`` have already written into the
    aggregate; the remaining ones were skipped.
    """

    def __init__(self, message: str, cause: BaseException, node_index: int) -> None:
        super().__init__(message)
        self.cause = cause
        self.node_index = node_index

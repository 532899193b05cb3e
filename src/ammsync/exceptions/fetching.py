"""
Data fetching exceptions for the ammsync package.

These are raised by batch fetchers and consumed by the concurrent range runner, which retries a
failed range at unit granularity before giving up on individual elements.
"""

from typing import Any

from ammsync.exceptions.base import AmmSyncError


class FetchingError(AmmSyncError):
    """
    Base exception for data fetching errors.
    """


class BatchError(FetchingError):
    """
    Raised when a batch fetch over the half-open range [start, end) fails for any reason, e.g. an
    RPC error, a reverted call, or a response that could not be decoded.
    """

    def __init__(self, start: int, end: int) -> None:
        self.start = start
        self.end = end
        super().__init__(message=f"Batch request for range [{start}, {end}) failed.")

    def __reduce__(self) -> tuple[Any, ...]:
        return self.__class__, (self.start, self.end)

from typing import Any

from ammsync.exceptions.base import AmmSyncError


class ArbitrageError(AmmSyncError):
    """
    Exception raised inside arbitrage path search and simulation helpers.
    """


class EmptyPathError(ArbitrageError):
    """
    Raised when a swap path with no pools is provided.
    """

    def __init__(self) -> None:
        super().__init__(message="A swap path must contain at least one pool.")

    def __reduce__(self) -> tuple[Any, ...]:
        # Pickling will raise an exception if a reduction method is not defined
        return self.__class__, ()


class InvalidSwapPathError(ArbitrageError):
    """
    Raised when a swap path cannot be traversed, e.g. a pool does not hold the token produced by
    the previous hop.
    """

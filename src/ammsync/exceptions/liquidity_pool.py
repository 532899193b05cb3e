from typing import Any

from eth_typing import ChecksumAddress

from ammsync.exceptions.base import AmmSyncError


class LiquidityPoolError(AmmSyncError):
    """
    Exception raised for errors related to liquidity pools.
    """


class UnknownTokenError(LiquidityPoolError):
    """
    Raised when a token is not held by the pool.
    """

    def __init__(self, pool: ChecksumAddress | str, token: ChecksumAddress | str) -> None:
        self.pool = pool
        self.token = token
        super().__init__(message=f"Token {token} is not held by pool {pool}")

    def __reduce__(self) -> tuple[Any, ...]:
        return self.__class__, (self.pool, self.token)

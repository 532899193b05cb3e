from ammsync.exceptions.arbitrage import ArbitrageError, EmptyPathError, InvalidSwapPathError
from ammsync.exceptions.base import AmmSyncError, AmmSyncValueError
from ammsync.exceptions.checkpoint import CheckpointError, CheckpointSaveError, InvalidCheckpointId
from ammsync.exceptions.fetching import BatchError, FetchingError
from ammsync.exceptions.liquidity_pool import LiquidityPoolError, UnknownTokenError

from . import (
    arbitrage,
    checkpoint,
    fetching,
    liquidity_pool,
)

__all__ = (
    "AmmSyncError",
    "AmmSyncValueError",
    "ArbitrageError",
    "BatchError",
    "CheckpointError",
    "CheckpointSaveError",
    "EmptyPathError",
    "FetchingError",
    "InvalidCheckpointId",
    "InvalidSwapPathError",
    "LiquidityPoolError",
    "UnknownTokenError",
    "arbitrage",
    "checkpoint",
    "fetching",
    "liquidity_pool",
)

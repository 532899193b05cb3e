from .factory import UniswapV2Factory
from .fetchers import (
    FactoryPairAddressFetcher,
    PairCreatedLogFetcher,
    PoolDataFetcher,
    SyncLogFetcher,
)
from .functions import constant_product_calc_exact_in, fee_numerator
from .pool import UniswapV2Pool
from .types import UniswapV2PoolSyncUpdate

__all__ = (
    "FactoryPairAddressFetcher",
    "PairCreatedLogFetcher",
    "PoolDataFetcher",
    "SyncLogFetcher",
    "UniswapV2Factory",
    "UniswapV2Pool",
    "UniswapV2PoolSyncUpdate",
    "constant_product_calc_exact_in",
    "fee_numerator",
)

from .functions import get_checksum_address
from .config import settings
from .connection import async_connection_manager, get_async_web3, set_async_web3
from .logging import logger
from .version import __version__

# isort: split

from .chain import ChainDataSource, ContractCall, Web3ChainDataSource
from .checkpoint import (
    Checkpoint,
    CheckpointStorage,
    JsonFileCheckpointStorage,
    PairAddressCheckpoint,
    PoolCheckpoint,
)
from .concurrency import BatchFetcher, run_concurrent, run_concurrent_mapping
from .pathfinding import Direction, build_adjacency, build_token_graph, find_paths
from .simulation import (
    Simulation,
    find_optimal_amount_in,
    simulate_swap_offline,
    simulate_swap_online,
)
from .uniswap_v2 import UniswapV2Factory, UniswapV2Pool
from .weth_value import compute_eth_values, filter_pools_for_eth_value

__all__ = (
    "BatchFetcher",
    "ChainDataSource",
    "Checkpoint",
    "CheckpointStorage",
    "ContractCall",
    "Direction",
    "JsonFileCheckpointStorage",
    "PairAddressCheckpoint",
    "PoolCheckpoint",
    "Simulation",
    "UniswapV2Factory",
    "UniswapV2Pool",
    "Web3ChainDataSource",
    "__version__",
    "async_connection_manager",
    "build_adjacency",
    "build_token_graph",
    "compute_eth_values",
    "filter_pools_for_eth_value",
    "find_optimal_amount_in",
    "find_paths",
    "get_async_web3",
    "get_checksum_address",
    "logger",
    "set_async_web3",
    "settings",
    "simulate_swap_offline",
    "simulate_swap_online",
)

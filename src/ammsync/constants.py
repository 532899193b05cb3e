__all__ = (
    "DEFAULT_OPTIMIZATION_UPPER_BOUND",
    "MAX_UINT8",
    "MAX_UINT128",
    "MIN_UINT8",
    "MIN_UINT128",
    "UNISWAP_V2_FACTORIES",
    "UNISWAP_V2_PAIR_CREATED_EVENT",
    "UNISWAP_V2_ROUTERS",
    "UNISWAP_V2_SYNC_EVENT",
    "WRAPPED_NATIVE_TOKENS",
    "ZERO_ADDRESS",
)

import typing

from eth_typing import ChainId, ChecksumAddress
from hexbytes import HexBytes

from ammsync.functions import get_checksum_address


def _min_uint(_: int) -> int:
    return 0


def _max_uint(bits: int) -> int:
    return typing.cast("int", 2**bits - 1)


MIN_UINT8 = _min_uint(8)
MAX_UINT8 = _max_uint(8)

MIN_UINT128 = _min_uint(128)
MAX_UINT128 = _max_uint(128)

ZERO_ADDRESS: ChecksumAddress = get_checksum_address("0x0000000000000000000000000000000000000000")

# Upper bound of the trade size search interval
DEFAULT_OPTIMIZATION_UPPER_BOUND = 10**20

# keccak("PairCreated(address,address,address,uint256)")
UNISWAP_V2_PAIR_CREATED_EVENT = HexBytes(
    "0x0d3648bd0f6ba80134a33ba9275ac585d9d315f0ad8355cddefde31afa28d0e9"
)
# keccak("Sync(uint112,uint112)")
UNISWAP_V2_SYNC_EVENT = HexBytes(
    "0x1c411e9a96e071241c2f21f7726b17ae89e3cab4c78be50e062b03a9fffbbad1"
)

# Contract addresses for the wrapped native token, keyed by chain ID
WRAPPED_NATIVE_TOKENS: dict[int, ChecksumAddress] = {
    ChainId.ETH: get_checksum_address("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"),
    ChainId.BASE: get_checksum_address("0x4200000000000000000000000000000000000006"),
    ChainId.ARB1: get_checksum_address("0x82aF49447D8a07e3bd95BD0d56f35241523fBab1"),
}

UNISWAP_V2_FACTORIES: dict[int, ChecksumAddress] = {
    ChainId.ETH: get_checksum_address("0x5C69bEe701ef814a2B6a3EDD4B1652CB9cc5aA6f"),
    ChainId.BASE: get_checksum_address("0x8909Dc15e40173Ff4699343b6eB8132c65e18eC6"),
}

UNISWAP_V2_ROUTERS: dict[int, ChecksumAddress] = {
    ChainId.ETH: get_checksum_address("0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D"),
    ChainId.BASE: get_checksum_address("0x4752ba5DBc23f44D87826276BF6Fd6b1C372aD24"),
}

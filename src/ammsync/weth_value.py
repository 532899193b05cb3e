from collections.abc import Iterable, Sequence

from eth_typing import ChecksumAddress

from ammsync.functions import get_checksum_address
from ammsync.logging import logger
from ammsync.uniswap_v2.pool import UniswapV2Pool


def _get_reference_pools(
    pools: Iterable[UniswapV2Pool],
    weth: ChecksumAddress,
) -> dict[ChecksumAddress, tuple[int, int]]:
    """
    For each token paired with WETH, get the (token reserves, WETH reserves) of the pool holding
    the most WETH.
    """

    reference_reserves: dict[ChecksumAddress, tuple[int, int]] = {}
    for pool in pools:
        if weth not in pool.tokens:
            continue
        token = pool.get_token_out(weth)
        weth_reserves, token_reserves = pool.get_reserves_for(weth)
        if token_reserves == 0:
            continue
        if token not in reference_reserves or weth_reserves > reference_reserves[token][1]:
            reference_reserves[token] = (token_reserves, weth_reserves)
    return reference_reserves


def compute_eth_values(
    pools: Sequence[UniswapV2Pool],
    weth: str,
) -> dict[ChecksumAddress, int]:
    """
    Estimate the value of the reserves held by each pool, denominated in WETH, and record it as
    the pool's `eth_value`.

    A pool holding WETH is worth twice its WETH reserves. Other tokens are priced by the pool
    pairing them with the most WETH. A pool with one priced token is worth twice the value of
    that token's reserves, a pool with two priced tokens is worth the sum, and a pool with no
    priced tokens is worth zero.
    """

    weth = get_checksum_address(weth)
    reference_reserves = _get_reference_pools(pools, weth)

    def weth_value_of(token: ChecksumAddress, amount: int) -> int | None:
        if token not in reference_reserves:
            return None
        token_reserves, weth_reserves = reference_reserves[token]
        return amount * weth_reserves // token_reserves

    eth_values: dict[ChecksumAddress, int] = {}
    for pool in pools:
        if weth in pool.tokens:
            weth_reserves, _ = pool.get_reserves_for(weth)
            pool.eth_value = 2 * weth_reserves
            eth_values[ChecksumAddress(pool.address)] = pool.eth_value
            continue

        token_a, token_b = pool.tokens
        value_a = weth_value_of(token_a, pool.reserve_a)
        value_b = weth_value_of(token_b, pool.reserve_b)

        match value_a, value_b:
            case None, None:
                eth_value = 0
            case int(), None:
                eth_value = 2 * value_a
            case None, int():
                eth_value = 2 * value_b
            case _:
                eth_value = value_a + value_b

        pool.eth_value = eth_value
        eth_values[ChecksumAddress(pool.address)] = eth_value

    logger.debug(
        f"Computed WETH values for {len(pools)} pools "
        f"({sum(1 for value in eth_values.values() if value > 0)} nonzero)"
    )
    return eth_values


def filter_pools_for_eth_value(
    pools: Iterable[UniswapV2Pool],
    min_value: int,
) -> list[UniswapV2Pool]:
    """
    Keep the pools with an `eth_value` strictly greater than the minimum.
    """

    return [pool for pool in pools if pool.eth_value > min_value]

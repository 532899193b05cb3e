"""
Swap simulation and trade size optimization along a path of constant product pools.
"""

import dataclasses
from collections.abc import Callable, Sequence
from typing import Self

from eth_typing import ChecksumAddress
from web3.types import BlockIdentifier

from ammsync.chain import ChainDataSource, ContractCall
from ammsync.constants import DEFAULT_OPTIMIZATION_UPPER_BOUND
from ammsync.exceptions import AmmSyncValueError, EmptyPathError, InvalidSwapPathError
from ammsync.exceptions.liquidity_pool import UnknownTokenError
from ammsync.functions import get_checksum_address
from ammsync.logging import logger
from ammsync.uniswap_v2.pool import UniswapV2Pool


def get_token_path(
    start_token: str,
    path: Sequence[UniswapV2Pool],
) -> list[ChecksumAddress]:
    """
    Get the sequence of tokens held between each swap, beginning with the start token.
    """

    if not path:
        raise EmptyPathError

    token = get_checksum_address(start_token)
    tokens = [token]
    for pool in path:
        try:
            token = pool.get_token_out(token)
        except UnknownTokenError:
            raise InvalidSwapPathError(
                message=f"Pool {pool.address} does not hold the input token {token}"
            ) from None
        tokens.append(token)
    return tokens


def simulate_swap_offline(
    start_token: str,
    amount_in: int,
    path: Sequence[UniswapV2Pool],
) -> tuple[int, list[int]]:
    """
    Simulate selling `amount_in` of the start token through each pool in the path.

    Returns the final output amount and the amount path, which holds the input amount followed by
    the output of each swap.
    """

    if amount_in < 0:
        raise AmmSyncValueError(message=f"Swap input must be non-negative, got {amount_in}")

    token_path = get_token_path(start_token, path)

    amount_path = [amount_in]
    for pool, token_in in zip(path, token_path, strict=False):
        amount_path.append(pool.simulate_swap(token_in, amount_path[-1]))

    return amount_path[-1], amount_path


async def simulate_swap_online(
    data_source: ChainDataSource,
    router_address: str,
    start_token: str,
    amount_in: int,
    path: Sequence[UniswapV2Pool],
    block_identifier: BlockIdentifier | None = None,
) -> tuple[int, list[int]]:
    """
    Simulate the swap through the path using the router's `getAmountsOut` function, returning
    the same (amount_out, amount_path) result as `simulate_swap_offline`.

    The router locates each pool from its token pair using its factory, so the result only agrees
    with the offline simulation when every pool in the path was created by that factory and the
    reserves have not changed between the two calls. The router rejects a zero input or an empty
    pool instead of returning zero.
    """

    ((amounts,),) = await data_source.call_batched_contract(
        [
            ContractCall(
                address=get_checksum_address(router_address),
                function_prototype="getAmountsOut(uint256,address[])",
                arguments=(amount_in, get_token_path(start_token, path)),
                return_types=("uint256[]",),
            )
        ],
        block_identifier=block_identifier,
    )
    amount_path = list(amounts)
    return amount_path[-1], amount_path


def find_local_maximum(
    low: int,
    high: int,
    epsilon: int,
    f: Callable[[int], int],
) -> tuple[int, int]:
    """
    Find the maximum of `f` on the interval [low, high] by ternary search, narrowing the interval
    until its width does not exceed `epsilon`. Returns the midpoint of the final interval and the
    number of steps taken.

    The search assumes `f` is unimodal on the interval. If it is not, the result is a local
    maximum.
    """

    if epsilon <= 0:
        raise AmmSyncValueError(message=f"Epsilon must be positive, got {epsilon}")
    if high < low:
        raise AmmSyncValueError(message=f"Invalid search interval [{low}, {high}]")

    steps = 0
    # Integer thirds of an interval narrower than 3 are zero and would not shrink it
    while high - low > max(epsilon, 2):
        third = (high - low) // 3
        mid1 = low + third
        mid2 = high - third

        if f(mid1) < f(mid2):
            low = mid1
        else:
            high = mid2
        steps += 1

    return (low + high) // 2, steps


def find_optimal_amount_in(
    start_token: str,
    path: Sequence[UniswapV2Pool],
    epsilon: int,
    upper_bound: int = DEFAULT_OPTIMIZATION_UPPER_BOUND,
) -> int:
    """
    Find the input amount that maximizes the difference between the output and the input of a
    swap through the path, which returns to the start token.
    """

    # Validate the path once before searching
    get_token_path(start_token, path)

    def profit(amount_in: int) -> int:
        amount_out, _ = simulate_swap_offline(start_token, amount_in, path)
        return amount_out - amount_in

    amount_in, steps = find_local_maximum(
        low=0,
        high=upper_bound,
        epsilon=epsilon,
        f=profit,
    )
    logger.debug(f"Found optimal input {amount_in} in {steps} steps")
    return amount_in


@dataclasses.dataclass(slots=True, frozen=True, kw_only=True)
class Simulation:
    """
    The estimated result of trading the optimal amount through a path.
    """

    start_token: ChecksumAddress
    path: tuple[UniswapV2Pool, ...]
    amount_in: int
    amount_out: int
    amount_path: tuple[int, ...]
    epsilon: int

    @classmethod
    def from_path(
        cls,
        start_token: str,
        path: Sequence[UniswapV2Pool],
        epsilon: int,
        upper_bound: int = DEFAULT_OPTIMIZATION_UPPER_BOUND,
    ) -> Self:
        amount_in = find_optimal_amount_in(
            start_token=start_token,
            path=path,
            epsilon=epsilon,
            upper_bound=upper_bound,
        )
        amount_out, amount_path = simulate_swap_offline(start_token, amount_in, path)
        return cls(
            start_token=get_checksum_address(start_token),
            path=tuple(path),
            amount_in=amount_in,
            amount_out=amount_out,
            amount_path=tuple(amount_path),
            epsilon=epsilon,
        )

    def profit(self) -> int:
        """
        The gain from the trade, with a loss reported as zero.
        """

        return max(0, self.amount_out - self.amount_in)

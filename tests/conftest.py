import logging
from collections import defaultdict
from collections.abc import Sequence
from typing import Any

import aiohttp
import eth_abi.abi
import pytest
from eth_typing import ChecksumAddress
from hexbytes import HexBytes
from multidict import CIMultiDict, CIMultiDictProxy
from web3.types import BlockIdentifier, FilterParams, LogReceipt
from yarl import URL

from ammsync.chain import ContractCall
from ammsync.connection import async_connection_manager
from ammsync.constants import UNISWAP_V2_PAIR_CREATED_EVENT, UNISWAP_V2_SYNC_EVENT, ZERO_ADDRESS
from ammsync.exceptions import FetchingError
from ammsync.functions import get_checksum_address
from ammsync.logging import logger
from ammsync.uniswap_v2.functions import constant_product_calc_exact_in
from ammsync.uniswap_v2.pool import UniswapV2Pool

FACTORY_ADDRESS = get_checksum_address("0x000000000000000000000000000000000000f000")
ROUTER_ADDRESS = get_checksum_address("0x000000000000000000000000000000000000f001")


def make_address(prefix: int, index: int) -> ChecksumAddress:
    return get_checksum_address(f"0x{prefix:04x}{index:036x}")


def make_token(index: int) -> ChecksumAddress:
    return make_address(0x1000, index)


def make_pool(
    index: int,
    token_a: str,
    token_b: str,
    reserve_a: int,
    reserve_b: int,
    fee: int = 300,
) -> UniswapV2Pool:
    return UniswapV2Pool(
        address=make_address(0x2000, index),
        token_a=token_a,
        token_b=token_b,
        token_a_decimals=18,
        token_b_decimals=18,
        reserve_a=reserve_a,
        reserve_b=reserve_b,
        fee=fee,
    )


class FakeChainDataSource:
    """
    A deterministic in-memory chain holding a single Uniswap V2 factory, its pools, their tokens,
    and the event logs emitted by them.

    Contract state is the latest state regardless of the block identifier requested.
    """

    def __init__(
        self,
        factory_address: ChecksumAddress = FACTORY_ADDRESS,
        block_number: int = 1_000,
    ) -> None:
        self.factory_address = factory_address
        self.block_number = block_number
        self.pair_addresses: list[ChecksumAddress] = []
        self.pools: dict[ChecksumAddress, dict[str, Any]] = {}
        self.token_decimals: dict[ChecksumAddress, int] = {}
        self.broken_tokens: set[ChecksumAddress] = set()
        self.failing_pair_indices: set[int] = set()
        # Batches holding more calls than this are rejected with HTTP 429
        self.rate_limit: int | None = None
        self.logs: list[LogReceipt] = []
        self._log_indices: defaultdict[int, int] = defaultdict(int)

        self.batch_calls: list[Sequence[ContractCall]] = []
        self.log_filters: list[FilterParams] = []

    def add_pool(
        self,
        token0: ChecksumAddress,
        token1: ChecksumAddress,
        reserve0: int,
        reserve1: int,
        *,
        decimals0: int = 18,
        decimals1: int = 18,
        created_at_block: int | None = None,
    ) -> ChecksumAddress:
        """
        Register a pool with the factory. If the creation block is given, a `PairCreated` event is
        recorded at that block.
        """

        pool_index = len(self.pair_addresses)
        pool_address = make_address(0x2000, pool_index)
        self.pair_addresses.append(pool_address)
        self.pools[pool_address] = {
            "token0": token0,
            "token1": token1,
            "reserve0": reserve0,
            "reserve1": reserve1,
        }
        self.token_decimals.setdefault(token0, decimals0)
        self.token_decimals.setdefault(token1, decimals1)

        if created_at_block is not None:
            self._add_log(
                address=self.factory_address,
                topics=[
                    UNISWAP_V2_PAIR_CREATED_EVENT,
                    HexBytes(eth_abi.abi.encode(["address"], [token0])),
                    HexBytes(eth_abi.abi.encode(["address"], [token1])),
                ],
                data=HexBytes(
                    eth_abi.abi.encode(["address", "uint256"], [pool_address, pool_index + 1])
                ),
                block_number=created_at_block,
            )

        return pool_address

    def emit_sync(
        self,
        pool_address: ChecksumAddress,
        reserve0: int,
        reserve1: int,
        block_number: int,
    ) -> None:
        self.pools[pool_address]["reserve0"] = reserve0
        self.pools[pool_address]["reserve1"] = reserve1
        self._add_log(
            address=pool_address,
            topics=[UNISWAP_V2_SYNC_EVENT],
            data=HexBytes(eth_abi.abi.encode(["uint112", "uint112"], [reserve0, reserve1])),
            block_number=block_number,
        )

    def _add_log(
        self,
        address: ChecksumAddress,
        topics: list[HexBytes],
        data: HexBytes,
        block_number: int,
    ) -> None:
        log_index = self._log_indices[block_number]
        self._log_indices[block_number] += 1
        self.logs.append(
            LogReceipt(
                address=address,
                topics=topics,
                data=data,
                blockNumber=block_number,
                logIndex=log_index,
            )  # type: ignore[typeddict-item]
        )

    def _pool_for_tokens(self, token_in: str, token_out: str) -> dict[str, Any]:
        for pool in self.pools.values():
            if {pool["token0"], pool["token1"]} == {token_in, token_out}:
                return pool
        msg = "UniswapV2Library: INVALID_PATH"
        raise FetchingError(msg)

    def _call(self, call: ContractCall) -> tuple[Any, ...]:
        match call.function_prototype:
            case "allPairsLength()":
                return (len(self.pair_addresses),)
            case "allPairs(uint256)":
                (index,) = call.arguments
                if index in self.failing_pair_indices:
                    msg = f"allPairs({index}) failed"
                    raise FetchingError(msg)
                if index >= len(self.pair_addresses):
                    msg = "execution reverted"
                    raise FetchingError(msg)
                return (self.pair_addresses[index],)
            case "token0()":
                return (self.pools[call.address]["token0"],)
            case "token1()":
                return (self.pools[call.address]["token1"],)
            case "getReserves()":
                pool = self.pools[call.address]
                return (pool["reserve0"], pool["reserve1"], 0)
            case "decimals()":
                if call.address in self.broken_tokens:
                    msg = "execution reverted"
                    raise FetchingError(msg)
                return (self.token_decimals[call.address],)
            case "getAmountsOut(uint256,address[])":
                amount_in, token_path = call.arguments
                amounts = [amount_in]
                for token_in, token_out in zip(token_path, token_path[1:]):
                    pool = self._pool_for_tokens(token_in, token_out)
                    reserves_in, reserves_out = (
                        (pool["reserve0"], pool["reserve1"])
                        if token_in == pool["token0"]
                        else (pool["reserve1"], pool["reserve0"])
                    )
                    amounts.append(
                        constant_product_calc_exact_in(
                            amount_in=amounts[-1],
                            reserves_in=reserves_in,
                            reserves_out=reserves_out,
                            fee=300,
                        )
                    )
                return (amounts,)
            case _:
                msg = f"Unsupported function {call.function_prototype}"
                raise FetchingError(msg)

    async def call_batched_contract(
        self,
        calls: Sequence[ContractCall],
        block_identifier: BlockIdentifier | None = None,  # noqa: ARG002
    ) -> list[tuple[Any, ...]]:
        self.batch_calls.append(calls)
        if self.rate_limit is not None and len(calls) > self.rate_limit:
            url = URL("http://localhost:8545")
            raise aiohttp.ClientResponseError(
                request_info=aiohttp.RequestInfo(
                    url=url,
                    method="POST",
                    headers=CIMultiDictProxy(CIMultiDict()),
                    real_url=url,
                ),
                history=(),
                status=429,
                message="Too Many Requests",
            )
        return [self._call(call) for call in calls]

    async def get_logs(self, filter_params: FilterParams) -> list[LogReceipt]:
        self.log_filters.append(filter_params)
        from_block = filter_params["fromBlock"]
        to_block = filter_params["toBlock"]
        assert isinstance(from_block, int)
        assert isinstance(to_block, int)
        address = filter_params.get("address")
        topics = filter_params.get("topics") or []

        return [
            log
            for log in sorted(self.logs, key=lambda log: (log["blockNumber"], log["logIndex"]))
            if from_block <= log["blockNumber"] <= to_block
            and (address is None or log["address"] == address)
            and (not topics or log["topics"][0] == topics[0])
        ]

    async def get_block_number(self) -> int:
        return self.block_number


@pytest.fixture(autouse=True)
def _initialize_and_reset_after_each_test():
    """
    Before each test, clear/reset global values and singletons
    """
    async_connection_manager.connections.clear()
    async_connection_manager._default_chain_id = None


@pytest.fixture(scope="session", autouse=True)
def _set_ammsync_logging():
    """
    Set the logging level to DEBUG for the test run
    """
    logger.setLevel(logging.DEBUG)


@pytest.fixture
def fake_chain() -> FakeChainDataSource:
    return FakeChainDataSource()


@pytest.fixture
def triangle_tokens() -> tuple[ChecksumAddress, ChecksumAddress, ChecksumAddress]:
    # WETH, B, C
    return make_token(0), make_token(1), make_token(2)


@pytest.fixture
def triangle_chain(
    triangle_tokens: tuple[ChecksumAddress, ChecksumAddress, ChecksumAddress],
) -> FakeChainDataSource:
    """
    A chain holding a profitable WETH -> B -> C -> WETH cycle:
        1 WETH -> 2 B -> 2 C -> 1.1 WETH, before fees
    """

    weth, token_b, token_c = triangle_tokens
    chain = FakeChainDataSource()
    chain.add_pool(weth, token_b, 1_000 * 10**18, 2_000 * 10**18, created_at_block=10)
    chain.add_pool(token_b, token_c, 2_000 * 10**18, 2_000 * 10**18, created_at_block=11)
    chain.add_pool(token_c, weth, 2_000 * 10**18, 1_100 * 10**18, created_at_block=12)
    return chain


@pytest.fixture
def triangle_pools(
    triangle_tokens: tuple[ChecksumAddress, ChecksumAddress, ChecksumAddress],
) -> list[UniswapV2Pool]:
    weth, token_b, token_c = triangle_tokens
    return [
        make_pool(0, weth, token_b, 1_000 * 10**18, 2_000 * 10**18),
        make_pool(1, token_b, token_c, 2_000 * 10**18, 2_000 * 10**18),
        make_pool(2, token_c, weth, 2_000 * 10**18, 1_100 * 10**18),
    ]


__all__ = (
    "FACTORY_ADDRESS",
    "ROUTER_ADDRESS",
    "ZERO_ADDRESS",
    "FakeChainDataSource",
    "make_address",
    "make_pool",
    "make_token",
)

"""
Batch fetchers for Uniswap V2 factories and pools.

Each fetcher retrieves the results for a half-open range [start, end) of indices (factory pair
registry positions, positions in a list of pool addresses, or block numbers) and raises
`BatchError` if anything about the request fails, leaving retry decisions to the concurrent range
runner.
"""

from collections.abc import Collection, Sequence

import aiohttp
import eth_abi.abi
from eth_abi.exceptions import DecodingError
from eth_typing import ChecksumAddress
from web3.exceptions import Web3Exception
from web3.types import BlockIdentifier, FilterParams

from ammsync.chain import ChainDataSource, ContractCall
from ammsync.constants import UNISWAP_V2_PAIR_CREATED_EVENT, UNISWAP_V2_SYNC_EVENT, ZERO_ADDRESS
from ammsync.exceptions import BatchError, FetchingError
from ammsync.functions import get_checksum_address
from ammsync.logging import logger
from ammsync.uniswap_v2.pool import DEFAULT_FEE, UniswapV2Pool
from ammsync.uniswap_v2.types import UniswapV2PoolSyncUpdate

# Failures of the remote call or of decoding its result. Anything else is a bug and propagates.
RECOVERABLE_FETCH_EXCEPTIONS = (
    aiohttp.ClientError,
    DecodingError,
    FetchingError,
    LookupError,
    OSError,
    TypeError,
    ValueError,
    Web3Exception,
)


class FactoryPairAddressFetcher:
    """
    Fetch pool addresses from the factory's `allPairs` registry by index.
    """

    def __init__(
        self,
        data_source: ChainDataSource,
        factory_address: ChecksumAddress,
        block_identifier: BlockIdentifier | None = None,
    ) -> None:
        self.data_source = data_source
        self.factory_address = factory_address
        self.block_identifier = block_identifier

    async def fetch(self, start: int, end: int) -> list[ChecksumAddress]:
        try:
            results = await self.data_source.call_batched_contract(
                [
                    ContractCall(
                        address=self.factory_address,
                        function_prototype="allPairs(uint256)",
                        arguments=(index,),
                        return_types=("address",),
                    )
                    for index in range(start, end)
                ],
                block_identifier=self.block_identifier,
            )
            pair_addresses = [get_checksum_address(pair_address) for (pair_address,) in results]
        except RECOVERABLE_FETCH_EXCEPTIONS as exc:
            logger.debug(f"Pair address fetch [{start}, {end}) failed: {exc!r}")
            raise BatchError(start, end) from exc

        return [address for address in pair_addresses if address != ZERO_ADDRESS]


class PairCreatedLogFetcher:
    """
    Fetch the addresses of pools created by the factory from its `PairCreated` event logs, for
    the block range [start, end).
    """

    def __init__(self, data_source: ChainDataSource, factory_address: ChecksumAddress) -> None:
        self.data_source = data_source
        self.factory_address = factory_address

    async def fetch(self, start: int, end: int) -> list[ChecksumAddress]:
        try:
            logs = await self.data_source.get_logs(
                FilterParams(
                    address=self.factory_address,
                    fromBlock=start,
                    toBlock=end - 1,
                    topics=[UNISWAP_V2_PAIR_CREATED_EVENT],
                )
            )
            pair_addresses: list[ChecksumAddress] = []
            for log in logs:
                if (
                    log["topics"][0] != UNISWAP_V2_PAIR_CREATED_EVENT
                    or get_checksum_address(log["address"]) != self.factory_address
                ):
                    continue
                pair_address, _ = eth_abi.abi.decode(
                    types=["address", "uint256"],
                    data=log["data"],
                )
                pair_addresses.append(get_checksum_address(pair_address))
        except RECOVERABLE_FETCH_EXCEPTIONS as exc:
            logger.debug(f"PairCreated log fetch for blocks [{start}, {end}) failed: {exc!r}")
            raise BatchError(start, end) from exc

        return pair_addresses


class PoolDataFetcher:
    """
    Fetch the tokens, token decimals, and reserves for a slice [start, end) of pool addresses.
    """

    def __init__(
        self,
        data_source: ChainDataSource,
        pool_addresses: Sequence[ChecksumAddress],
        fee: int = DEFAULT_FEE,
        block_identifier: BlockIdentifier | None = None,
    ) -> None:
        self.data_source = data_source
        self.pool_addresses = pool_addresses
        self.fee = fee
        self.block_identifier = block_identifier

    async def fetch(self, start: int, end: int) -> list[UniswapV2Pool]:
        pool_addresses = self.pool_addresses[start:end]

        try:
            pool_results = await self.data_source.call_batched_contract(
                [
                    ContractCall(
                        address=pool_address,
                        function_prototype=function_prototype,
                        return_types=return_types,
                    )
                    for pool_address in pool_addresses
                    for function_prototype, return_types in (
                        ("token0()", ("address",)),
                        ("token1()", ("address",)),
                        ("getReserves()", ("uint112", "uint112", "uint32")),
                    )
                ],
                block_identifier=self.block_identifier,
            )

            pool_tokens_and_reserves = []
            for i, pool_address in enumerate(pool_addresses):
                (token0,), (token1,), (reserves0, reserves1, _) = pool_results[3 * i : 3 * i + 3]
                pool_tokens_and_reserves.append(
                    (
                        pool_address,
                        get_checksum_address(token0),
                        get_checksum_address(token1),
                        reserves0,
                        reserves1,
                    )
                )

            tokens = list(
                dict.fromkeys(
                    token
                    for _, token0, token1, _, _ in pool_tokens_and_reserves
                    for token in (token0, token1)
                )
            )
            decimal_results = await self.data_source.call_batched_contract(
                [
                    ContractCall(
                        address=token,
                        function_prototype="decimals()",
                        return_types=("uint8",),
                    )
                    for token in tokens
                ],
                block_identifier=self.block_identifier,
            )
            token_decimals = {
                token: decimals for token, (decimals,) in zip(tokens, decimal_results, strict=True)
            }

            return [
                UniswapV2Pool(
                    address=pool_address,
                    token_a=token0,
                    token_b=token1,
                    token_a_decimals=token_decimals[token0],
                    token_b_decimals=token_decimals[token1],
                    reserve_a=reserves0,
                    reserve_b=reserves1,
                    fee=self.fee,
                )
                for pool_address, token0, token1, reserves0, reserves1 in pool_tokens_and_reserves
            ]
        except RECOVERABLE_FETCH_EXCEPTIONS as exc:
            logger.debug(f"Pool data fetch [{start}, {end}) failed: {exc!r}")
            raise BatchError(start, end) from exc


class SyncLogFetcher:
    """
    Fetch the most recent `Sync` event for each known pool within the block range [start, end).

    Logs are requested without an address filter, since the set of tracked pools is usually far
    larger than what an RPC node accepts in a single filter, and are matched against the known
    addresses locally.
    """

    def __init__(
        self,
        data_source: ChainDataSource,
        pool_addresses: Collection[ChecksumAddress],
    ) -> None:
        self.data_source = data_source
        self.pool_addresses = frozenset(pool_addresses)

    async def fetch(self, start: int, end: int) -> dict[ChecksumAddress, UniswapV2PoolSyncUpdate]:
        latest_updates: dict[ChecksumAddress, UniswapV2PoolSyncUpdate] = {}

        try:
            logs = await self.data_source.get_logs(
                FilterParams(
                    fromBlock=start,
                    toBlock=end - 1,
                    topics=[UNISWAP_V2_SYNC_EVENT],
                )
            )
            for log in logs:
                pool_address = get_checksum_address(log["address"])
                if (
                    pool_address not in self.pool_addresses
                    or log["topics"][0] != UNISWAP_V2_SYNC_EVENT
                ):
                    continue

                reserves0, reserves1 = eth_abi.abi.decode(
                    types=["uint112", "uint112"],
                    data=log["data"],
                )
                update = UniswapV2PoolSyncUpdate(
                    address=pool_address,
                    block_number=log["blockNumber"],
                    log_index=log["logIndex"],
                    reserves_token0=reserves0,
                    reserves_token1=reserves1,
                )

                if (
                    pool_address not in latest_updates
                    or update.position > latest_updates[pool_address].position
                ):
                    latest_updates[pool_address] = update
        except RECOVERABLE_FETCH_EXCEPTIONS as exc:
            logger.debug(f"Sync log fetch for blocks [{start}, {end}) failed: {exc!r}")
            raise BatchError(start, end) from exc

        return latest_updates

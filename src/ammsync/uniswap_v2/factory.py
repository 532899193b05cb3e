from collections.abc import Sequence

from eth_typing import ChecksumAddress
from web3.types import BlockIdentifier

from ammsync.chain import ChainDataSource, ContractCall
from ammsync.concurrency import DEFAULT_MAX_UNIT_RETRIES, run_concurrent, run_concurrent_mapping
from ammsync.exceptions import AmmSyncValueError
from ammsync.functions import get_checksum_address
from ammsync.logging import logger
from ammsync.types.aliases import BlockNumber
from ammsync.uniswap_v2.fetchers import (
    FactoryPairAddressFetcher,
    PairCreatedLogFetcher,
    PoolDataFetcher,
    SyncLogFetcher,
)
from ammsync.uniswap_v2.pool import DEFAULT_FEE, UniswapV2Pool
from ammsync.uniswap_v2.types import UniswapV2PoolSyncUpdate


class UniswapV2Factory:
    """
    A Uniswap V2 factory, the registry contract that creates and indexes pools for token pairs.

    Discovery uses one of two strategies: a full scan of the `allPairs` registry by index, used to
    bootstrap, or a replay of `PairCreated` logs over a block range, used to catch up afterwards.
    """

    def __init__(
        self,
        address: str,
        fee: int = DEFAULT_FEE,
        *,
        max_unit_retries: int = DEFAULT_MAX_UNIT_RETRIES,
        show_progress: bool = True,
    ) -> None:
        self.address = get_checksum_address(address)
        self.fee = fee
        self.max_unit_retries = max_unit_retries
        self.show_progress = show_progress

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(address={self.address}, fee={self.fee})"

    async def get_all_pairs_length(
        self,
        data_source: ChainDataSource,
        block_identifier: BlockIdentifier | None = None,
    ) -> int:
        ((all_pairs_length,),) = await data_source.call_batched_contract(
            [
                ContractCall(
                    address=self.address,
                    function_prototype="allPairsLength()",
                    return_types=("uint256",),
                )
            ],
            block_identifier=block_identifier,
        )
        return int(all_pairs_length)

    async def get_pair_addresses_from_factory(
        self,
        data_source: ChainDataSource,
        start: int,
        end: int,
        step: int,
        block_identifier: BlockIdentifier | None = None,
    ) -> list[ChecksumAddress]:
        """
        Get the pool addresses at registry indices [start, end).
        """

        return await run_concurrent(
            start=start,
            end=end,
            step=step,
            fetcher=FactoryPairAddressFetcher(
                data_source=data_source,
                factory_address=self.address,
                block_identifier=block_identifier,
            ),
            max_unit_retries=self.max_unit_retries,
            description="Fetching pair addresses",
            show_progress=self.show_progress,
        )

    async def get_pair_addresses_from_logs(
        self,
        data_source: ChainDataSource,
        from_block: BlockNumber,
        to_block: BlockNumber,
        step: int,
    ) -> list[ChecksumAddress]:
        """
        Get the addresses of pools created in blocks [from_block, to_block], in creation order.
        """

        if to_block < from_block:
            raise AmmSyncValueError(message="End block cannot be earlier than start block.")

        return await run_concurrent(
            start=from_block,
            end=to_block + 1,
            step=step,
            fetcher=PairCreatedLogFetcher(
                data_source=data_source,
                factory_address=self.address,
            ),
            max_unit_retries=self.max_unit_retries,
            description="Fetching PairCreated events",
            show_progress=self.show_progress,
        )

    async def get_pool_data(
        self,
        data_source: ChainDataSource,
        pool_addresses: Sequence[ChecksumAddress],
        step: int,
        block_identifier: BlockIdentifier | None = None,
    ) -> list[UniswapV2Pool]:
        """
        Get the tokens, decimals, and reserves for each pool. Pools that cannot be fetched (e.g. a
        token without a working `decimals()` function) are omitted.
        """

        pools = await run_concurrent(
            start=0,
            end=len(pool_addresses),
            step=step,
            fetcher=PoolDataFetcher(
                data_source=data_source,
                pool_addresses=pool_addresses,
                fee=self.fee,
                block_identifier=block_identifier,
            ),
            max_unit_retries=self.max_unit_retries,
            description="Fetching pool data",
            show_progress=self.show_progress,
        )
        if len(pools) != len(pool_addresses):
            logger.info(f"Fetched data for {len(pools)} of {len(pool_addresses)} pools")
        return pools

    async def get_latest_sync_events(
        self,
        data_source: ChainDataSource,
        pool_addresses: Sequence[ChecksumAddress],
        from_block: BlockNumber,
        to_block: BlockNumber,
        step: int,
    ) -> dict[ChecksumAddress, UniswapV2PoolSyncUpdate]:
        """
        Get the latest `Sync` event emitted by each of the pools in blocks [from_block, to_block].
        """

        if to_block < from_block:
            raise AmmSyncValueError(message="End block cannot be earlier than start block.")

        return await run_concurrent_mapping(
            start=from_block,
            end=to_block + 1,
            step=step,
            fetcher=SyncLogFetcher(
                data_source=data_source,
                pool_addresses=pool_addresses,
            ),
            max_unit_retries=self.max_unit_retries,
            description="Fetching Sync events",
            show_progress=self.show_progress,
        )

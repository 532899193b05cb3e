import dataclasses

from eth_typing import ChecksumAddress

from ammsync.types.aliases import BlockNumber


@dataclasses.dataclass(slots=True, frozen=True, kw_only=True)
class UniswapV2PoolSyncUpdate:
    """
    The reserves reported by a pool's `Sync` event, positioned by block number and log index.
    """

    address: ChecksumAddress
    block_number: BlockNumber
    log_index: int
    reserves_token0: int
    reserves_token1: int

    @property
    def position(self) -> tuple[BlockNumber, int]:
        return self.block_number, self.log_index


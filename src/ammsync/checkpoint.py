"""
Incremental, persisted synchronization state.

A checkpoint records the data gathered from a factory (its pool addresses, or the pools
themselves) together with the last block reflected in that data. The first `get_or_create` call
for a factory performs a full scan of the factory registry; later `sync` calls only replay the
event logs emitted since `last_block`.
"""

import abc
from collections.abc import Sequence
from pathlib import Path
from typing import Any, ClassVar, Protocol, Self

import pydantic_core
from eth_typing import ChecksumAddress
from eth_utils.address import is_hex_address
from pydantic import TypeAdapter

from ammsync.chain import ChainDataSource
from ammsync.config import settings
from ammsync.exceptions import CheckpointSaveError, InvalidCheckpointId
from ammsync.functions import get_checksum_address
from ammsync.logging import logger
from ammsync.types.aliases import BlockNumber
from ammsync.uniswap_v2.factory import UniswapV2Factory
from ammsync.uniswap_v2.pool import UniswapV2Pool


class CheckpointStorage(Protocol):
    """
    A minimal protocol for persisting serialized checkpoints by ID.
    """

    def load(self, checkpoint_id: str) -> bytes | None:
        """
        Return the stored bytes for the checkpoint, or `None` if nothing has been stored.
        """
        ...

    def save(self, checkpoint_id: str, data: bytes) -> None: ...


class JsonFileCheckpointStorage:
    """
    Stores each checkpoint as a JSON file named after its ID inside a directory.

    Files are written to a temporary sibling and renamed over the original, so an interrupted
    write never replaces a good checkpoint with a partial one.
    """

    def __init__(self, directory: Path | str | None = None) -> None:
        self.directory = (
            Path(directory).expanduser() if directory is not None else settings.checkpoint.directory
        )

    def path(self, checkpoint_id: str) -> Path:
        return self.directory / f"{checkpoint_id}.json"

    def load(self, checkpoint_id: str) -> bytes | None:
        try:
            return self.path(checkpoint_id).read_bytes()
        except FileNotFoundError:
            return None

    def save(self, checkpoint_id: str, data: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path(checkpoint_id)
        temp_path = path.with_suffix(".json.tmp")
        temp_path.write_bytes(data)
        temp_path.replace(path)


class Checkpoint[DataT](abc.ABC):
    """
    Persisted synchronization state for the data produced by one factory.

    Subclasses define the payload type, how it is gathered from scratch, and how the delta for a
    block range is merged into it. The ID is derived from the factory address and the payload
    kind, so the factory can be recovered from a stored checkpoint.
    """

    kind: ClassVar[str]
    data_type: ClassVar[Any]

    def __init__(
        self,
        *,
        last_block: BlockNumber,
        data: DataT,
        id: str,  # noqa: A002
        chunk_size: int | None = None,
        block_chunk_size: int | None = None,
        storage: CheckpointStorage | None = None,
        factory: UniswapV2Factory | None = None,
    ) -> None:
        self.last_block = last_block
        self.data = data
        self.id = id
        self.chunk_size = chunk_size if chunk_size is not None else settings.sync.chunk_size
        self.block_chunk_size = (
            block_chunk_size if block_chunk_size is not None else settings.sync.block_chunk_size
        )
        self.storage: CheckpointStorage = (
            storage if storage is not None else JsonFileCheckpointStorage()
        )
        self.factory = (
            factory
            if factory is not None
            else UniswapV2Factory(
                address=self.factory_address_from_id(id),
                max_unit_retries=settings.sync.max_unit_retries,
            )
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id}, last_block={self.last_block})"

    @classmethod
    def make_id(cls, factory_address: str) -> str:
        return f"{cls.kind}-{get_checksum_address(factory_address)}"

    @classmethod
    def factory_address_from_id(cls, checkpoint_id: str) -> ChecksumAddress:
        """
        Recover the address of the factory that produced the checkpoint with this ID.
        """

        kind, _, address = checkpoint_id.rpartition("-")
        if kind != cls.kind or not is_hex_address(address):
            raise InvalidCheckpointId(checkpoint_id)
        return get_checksum_address(address)

    @classmethod
    def _data_adapter(cls) -> TypeAdapter[DataT]:
        return TypeAdapter(cls.data_type)

    def to_json(self) -> bytes:
        return self._serialize(last_block=self.last_block, data=self.data)

    def _serialize(self, last_block: BlockNumber, data: DataT) -> bytes:
        return pydantic_core.to_json(
            {
                "last_block": last_block,
                "data": self._data_adapter().dump_python(data, mode="json"),
                "id": self.id,
            },
            indent=2,
        )

    @classmethod
    def from_json(
        cls,
        raw: bytes,
        *,
        chunk_size: int | None = None,
        block_chunk_size: int | None = None,
        storage: CheckpointStorage | None = None,
        factory: UniswapV2Factory | None = None,
    ) -> Self:
        """
        Build a checkpoint from its serialized form. Raises `ValueError` if the content is not a
        valid checkpoint of this kind.
        """

        checkpoint = pydantic_core.from_json(raw)
        if not isinstance(checkpoint, dict) or checkpoint.keys() != {"last_block", "data", "id"}:
            msg = "Checkpoint must be an object with exactly the keys last_block, data, and id"
            raise ValueError(msg)  # noqa: TRY004

        last_block = TypeAdapter(BlockNumber).validate_python(checkpoint["last_block"])
        checkpoint_id = TypeAdapter(str).validate_python(checkpoint["id"])
        try:
            cls.factory_address_from_id(checkpoint_id)
        except InvalidCheckpointId as exc:
            raise ValueError(exc.message) from exc

        return cls(
            last_block=last_block,
            data=cls._data_adapter().validate_python(checkpoint["data"]),
            id=checkpoint_id,
            chunk_size=chunk_size,
            block_chunk_size=block_chunk_size,
            storage=storage,
            factory=factory,
        )

    @classmethod
    def load(
        cls,
        checkpoint_id: str,
        storage: CheckpointStorage | None = None,
        *,
        chunk_size: int | None = None,
        block_chunk_size: int | None = None,
        factory: UniswapV2Factory | None = None,
    ) -> Self | None:
        """
        Load a stored checkpoint. Returns `None` if no checkpoint is stored under this ID, or if
        the stored checkpoint cannot be read.
        """

        if storage is None:
            storage = JsonFileCheckpointStorage()

        raw = storage.load(checkpoint_id)
        if raw is None:
            return None

        try:
            checkpoint = cls.from_json(
                raw,
                chunk_size=chunk_size,
                block_chunk_size=block_chunk_size,
                storage=storage,
                factory=factory,
            )
        except ValueError as exc:
            logger.warning(f"Ignoring unreadable checkpoint {checkpoint_id}: {exc}")
            return None

        if checkpoint.id != checkpoint_id:
            logger.warning(
                f"Ignoring checkpoint stored as {checkpoint_id} with mismatched ID {checkpoint.id}"
            )
            return None

        return checkpoint

    @classmethod
    async def get_or_create(
        cls,
        data_source: ChainDataSource,
        factory: UniswapV2Factory,
        chunk_size: int,
        storage: CheckpointStorage | None = None,
        *,
        block_chunk_size: int | None = None,
    ) -> Self:
        """
        Load the checkpoint for this factory, or build one from a full scan of the factory
        registry and persist it if none can be loaded.
        """

        if storage is None:
            storage = JsonFileCheckpointStorage()

        checkpoint_id = cls.make_id(factory.address)
        if (
            checkpoint := cls.load(
                checkpoint_id,
                storage,
                chunk_size=chunk_size,
                block_chunk_size=block_chunk_size,
                factory=factory,
            )
        ) is not None:
            logger.info(f"Loaded checkpoint {checkpoint_id} at block {checkpoint.last_block}")
            return checkpoint

        logger.info(f"Creating checkpoint {checkpoint_id} from a full factory scan")
        current_block = await data_source.get_block_number()
        checkpoint = cls(
            last_block=current_block,
            data=await cls._bootstrap(
                data_source=data_source,
                factory=factory,
                chunk_size=chunk_size,
                block_number=current_block,
            ),
            id=checkpoint_id,
            chunk_size=chunk_size,
            block_chunk_size=block_chunk_size,
            storage=storage,
            factory=factory,
        )
        checkpoint._save(last_block=checkpoint.last_block, data=checkpoint.data)
        return checkpoint

    async def sync(self, data_source: ChainDataSource) -> Self:
        """
        Bring the checkpoint up to the current chain head by replaying the logs emitted in the
        blocks after `last_block`, then persist it. Does nothing if the chain has not advanced.

        The in-memory checkpoint is only updated after the new state has been saved.
        """

        current_block = await data_source.get_block_number()
        if current_block <= self.last_block:
            logger.debug(
                f"Checkpoint {self.id} at block {self.last_block} is current "
                f"(chain head {current_block})"
            )
            return self

        logger.info(f"Syncing checkpoint {self.id} from block {self.last_block} to {current_block}")
        data = await self._fetch_delta(
            data_source=data_source,
            from_block=self.last_block + 1,
            to_block=current_block,
        )
        self._save(last_block=current_block, data=data)
        self.last_block = current_block
        self.data = data
        return self

    def _save(self, last_block: BlockNumber, data: DataT) -> None:
        try:
            self.storage.save(self.id, self._serialize(last_block=last_block, data=data))
        except OSError as exc:
            raise CheckpointSaveError(
                checkpoint_id=self.id,
                path=(
                    self.storage.path(self.id)
                    if isinstance(self.storage, JsonFileCheckpointStorage)
                    else None
                ),
            ) from exc
        logger.debug(f"Saved checkpoint {self.id} at block {last_block}")

    @classmethod
    @abc.abstractmethod
    async def _bootstrap(
        cls,
        data_source: ChainDataSource,
        factory: UniswapV2Factory,
        chunk_size: int,
        block_number: BlockNumber,
    ) -> DataT:
        """
        Gather the complete payload from scratch, as of the given block.
        """

    @abc.abstractmethod
    async def _fetch_delta(
        self,
        data_source: ChainDataSource,
        from_block: BlockNumber,
        to_block: BlockNumber,
    ) -> DataT:
        """
        Return a new payload with the changes from blocks [from_block, to_block] merged in,
        without modifying the current payload.
        """


def _new_addresses(
    known: Sequence[ChecksumAddress],
    discovered: Sequence[ChecksumAddress],
) -> list[ChecksumAddress]:
    known_addresses = set(known)
    return [address for address in dict.fromkeys(discovered) if address not in known_addresses]


class PairAddressCheckpoint(Checkpoint[list[ChecksumAddress]]):
    """
    The addresses of all pools created by a factory, in registry order.
    """

    kind = "uniswap_v2_pair_addresses"
    data_type = list[ChecksumAddress]

    @classmethod
    async def _bootstrap(
        cls,
        data_source: ChainDataSource,
        factory: UniswapV2Factory,
        chunk_size: int,
        block_number: BlockNumber,
    ) -> list[ChecksumAddress]:
        all_pairs_length = await factory.get_all_pairs_length(
            data_source, block_identifier=block_number
        )
        return await factory.get_pair_addresses_from_factory(
            data_source=data_source,
            start=0,
            end=all_pairs_length,
            step=chunk_size,
            block_identifier=block_number,
        )

    async def _fetch_delta(
        self,
        data_source: ChainDataSource,
        from_block: BlockNumber,
        to_block: BlockNumber,
    ) -> list[ChecksumAddress]:
        created = await self.factory.get_pair_addresses_from_logs(
            data_source=data_source,
            from_block=from_block,
            to_block=to_block,
            step=self.block_chunk_size,
        )
        new_addresses = _new_addresses(self.data, created)
        logger.info(f"Found {len(new_addresses)} new pairs in blocks {from_block}-{to_block}")
        return [*self.data, *new_addresses]


class PoolCheckpoint(Checkpoint[list[UniswapV2Pool]]):
    """
    All pools created by a factory, with their tokens and reserves.

    Syncing applies the latest `Sync` event of each known pool and fetches the data of pools
    created since the last sync.
    """

    kind = "uniswap_v2_pools"
    data_type = list[UniswapV2Pool]

    @classmethod
    async def _bootstrap(
        cls,
        data_source: ChainDataSource,
        factory: UniswapV2Factory,
        chunk_size: int,
        block_number: BlockNumber,
    ) -> list[UniswapV2Pool]:
        pair_addresses = await PairAddressCheckpoint._bootstrap(
            data_source=data_source,
            factory=factory,
            chunk_size=chunk_size,
            block_number=block_number,
        )
        return await factory.get_pool_data(
            data_source=data_source,
            pool_addresses=pair_addresses,
            step=chunk_size,
            block_identifier=block_number,
        )

    async def _fetch_delta(
        self,
        data_source: ChainDataSource,
        from_block: BlockNumber,
        to_block: BlockNumber,
    ) -> list[UniswapV2Pool]:
        pools = [pool.model_copy() for pool in self.data]
        known_addresses = [ChecksumAddress(pool.address) for pool in pools]

        sync_updates = await self.factory.get_latest_sync_events(
            data_source=data_source,
            pool_addresses=known_addresses,
            from_block=from_block,
            to_block=to_block,
            step=self.block_chunk_size,
        )
        for pool in pools:
            if (update := sync_updates.get(ChecksumAddress(pool.address))) is not None:
                pool.apply_sync_update(update)
        logger.info(f"Updated reserves for {len(sync_updates)} pools")

        new_addresses = _new_addresses(
            known_addresses,
            await self.factory.get_pair_addresses_from_logs(
                data_source=data_source,
                from_block=from_block,
                to_block=to_block,
                step=self.block_chunk_size,
            ),
        )
        new_pools = await self.factory.get_pool_data(
            data_source=data_source,
            pool_addresses=new_addresses,
            step=self.chunk_size,
            block_identifier=to_block,
        )
        logger.info(f"Found {len(new_pools)} new pools in blocks {from_block}-{to_block}")

        return [*pools, *new_pools]

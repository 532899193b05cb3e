"""
Chain data source abstraction.

The synchronization machinery only needs three capabilities from a blockchain node: a batched
read-only contract call, an event log query, and the current block number. `ChainDataSource`
describes that surface so alternative transports (or deterministic fakes) can be substituted for
the Web3-backed implementation.
"""

import dataclasses
from collections.abc import Sequence
from typing import Any, Protocol

import eth_abi.abi
from eth_typing import ChecksumAddress
from web3 import AsyncBaseProvider, AsyncWeb3
from web3.types import BlockIdentifier, FilterParams, LogReceipt, TxParams

from ammsync.functions import encode_function_calldata
from ammsync.logging import logger
from ammsync.types.aliases import BlockNumber


@dataclasses.dataclass(slots=True, frozen=True, kw_only=True)
class ContractCall:
    address: ChecksumAddress
    function_prototype: str
    arguments: tuple[Any, ...] = ()
    return_types: tuple[str, ...]

    @property
    def calldata(self) -> bytes:
        return encode_function_calldata(
            function_prototype=self.function_prototype,
            function_arguments=self.arguments,
        )


class ChainDataSource(Protocol):
    async def call_batched_contract(
        self,
        calls: Sequence[ContractCall],
        block_identifier: BlockIdentifier | None = None,
    ) -> list[tuple[Any, ...]]:
        """
        Execute all calls in a single round trip, returning the ABI-decoded result of each call in
        the order given. Any failure (transport error, revert, decode error) is raised.
        """
        ...

    async def get_logs(self, filter_params: FilterParams) -> list[LogReceipt]: ...

    async def get_block_number(self) -> BlockNumber: ...


class Web3ChainDataSource:
    """
    A `ChainDataSource` backed by an `AsyncWeb3` instance, using JSON-RPC batch requests for
    batched contract calls.
    """

    def __init__(self, w3: AsyncWeb3[AsyncBaseProvider]) -> None:
        self.w3 = w3

    async def call_batched_contract(
        self,
        calls: Sequence[ContractCall],
        block_identifier: BlockIdentifier | None = None,
    ) -> list[tuple[Any, ...]]:
        if not calls:
            return []

        if block_identifier is None:
            block_identifier = "latest"

        async with self.w3.batch_requests() as batch:
            for call in calls:
                batch.add(
                    self.w3.eth.call(
                        TxParams(to=call.address, data=call.calldata),
                        block_identifier=block_identifier,
                    )
                )
            responses = await batch.async_execute()

        logger.debug(f"Executed batch of {len(calls)} contract calls")

        return [
            eth_abi.abi.decode(types=call.return_types, data=response)
            for call, response in zip(calls, responses, strict=True)
        ]

    async def get_logs(self, filter_params: FilterParams) -> list[LogReceipt]:
        return await self.w3.eth.get_logs(filter_params)

    async def get_block_number(self) -> BlockNumber:
        return await self.w3.eth.block_number

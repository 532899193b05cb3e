from collections.abc import Iterable

from ammsync.chain import Web3ChainDataSource
from ammsync.checkpoint import JsonFileCheckpointStorage, PoolCheckpoint
from ammsync.config import CONFIG_FILE, settings
from ammsync.connection import async_connection_manager, build_async_web3
from ammsync.constants import UNISWAP_V2_FACTORIES, UNISWAP_V2_ROUTERS, WRAPPED_NATIVE_TOKENS
from ammsync.functions import get_checksum_address
from ammsync.logging import logger
from ammsync.simulation import Simulation, simulate_swap_online
from ammsync.uniswap_v2.factory import UniswapV2Factory


async def get_data_source_from_config(*, chain_id: int) -> Web3ChainDataSource:
    if chain_id not in async_connection_manager.connections:
        endpoint = settings.rpc.get(chain_id)
        if endpoint is None:
            msg = f"Chain ID {chain_id} does not have an RPC defined in config file {CONFIG_FILE}"
            raise ValueError(msg)

        w3 = await build_async_web3(endpoint)
        if (connected_chain_id := await async_connection_manager.register_web3(w3)) != chain_id:
            msg = (
                f"The chain ID ({connected_chain_id}) at endpoint {endpoint} does not match "
                f"the chain ID ({chain_id}) defined in the config file."
            )
            raise ValueError(msg)

    return Web3ChainDataSource(async_connection_manager.get_web3(chain_id))


def get_factory_address(*, chain_id: int, factory_address: str | None) -> str:
    if factory_address is not None:
        return get_checksum_address(factory_address)
    try:
        return UNISWAP_V2_FACTORIES[chain_id]
    except KeyError:
        msg = f"No default Uniswap V2 factory for chain ID {chain_id}, provide one with --factory"
        raise ValueError(msg) from None


def get_router_address(*, chain_id: int, router_address: str | None) -> str:
    if router_address is not None:
        return get_checksum_address(router_address)
    try:
        return UNISWAP_V2_ROUTERS[chain_id]
    except KeyError:
        msg = f"No default Uniswap V2 router for chain ID {chain_id}, provide one with --router"
        raise ValueError(msg) from None


def get_wrapped_native_token(*, chain_id: int, token_address: str | None) -> str:
    if token_address is not None:
        return get_checksum_address(token_address)
    try:
        return WRAPPED_NATIVE_TOKENS[chain_id]
    except KeyError:
        msg = f"No default wrapped native token for chain ID {chain_id}, provide one with --token"
        raise ValueError(msg) from None


async def sync_pool_checkpoint(
    chain_id: int,
    factory_address: str,
    chunk_size: int,
) -> PoolCheckpoint:
    """
    Load or create the pool checkpoint for the factory, then sync it to the chain head.
    """

    data_source = await get_data_source_from_config(chain_id=chain_id)
    factory = UniswapV2Factory(
        address=factory_address,
        max_unit_retries=settings.sync.max_unit_retries,
    )
    checkpoint = await PoolCheckpoint.get_or_create(
        data_source=data_source,
        factory=factory,
        chunk_size=chunk_size,
        storage=JsonFileCheckpointStorage(settings.checkpoint.directory),
        block_chunk_size=settings.sync.block_chunk_size,
    )
    return await checkpoint.sync(data_source)


async def count_router_mismatches(
    chain_id: int,
    router_address: str,
    simulations: Iterable[Simulation],
    block_number: int,
) -> int:
    """
    Repeat each simulation with the router's `getAmountsOut` at the given block, logging and
    counting the simulations whose amount path differs from the offline result.
    """

    data_source = await get_data_source_from_config(chain_id=chain_id)

    mismatches = 0
    for simulation in simulations:
        _, online_amounts = await simulate_swap_online(
            data_source,
            router_address,
            simulation.start_token,
            simulation.amount_in,
            simulation.path,
            block_identifier=block_number,
        )
        if online_amounts != list(simulation.amount_path):
            logger.warning(
                f"Router amounts {online_amounts} do not match simulated amounts "
                f"{list(simulation.amount_path)} for pools "
                f"{[pool.address for pool in simulation.path]}"
            )
            mismatches += 1
    return mismatches

import asyncio
import csv
from collections.abc import Iterable
from pathlib import Path

import click

from ammsync.cli import cli
from ammsync.cli.utils import (
    count_router_mismatches,
    get_factory_address,
    get_router_address,
    get_wrapped_native_token,
    sync_pool_checkpoint,
)
from ammsync.config import settings
from ammsync.logging import logger
from ammsync.pathfinding import Direction, build_adjacency, find_paths
from ammsync.simulation import Simulation, get_token_path
from ammsync.weth_value import compute_eth_values, filter_pools_for_eth_value

CSV_FIELDS = (
    "start_token",
    "pools",
    "tokens",
    "amount_in",
    "amount_out",
    "profit",
    "epsilon",
)


def write_simulations_to_csv(simulations: Iterable[Simulation], path: Path) -> int:
    """
    Write one row per simulation, returning the number of rows written.
    """

    rows = 0
    with path.open("w", newline="") as file:
        writer = csv.DictWriter(file, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for simulation in simulations:
            writer.writerow(
                {
                    "start_token": simulation.start_token,
                    "pools": "|".join(pool.address for pool in simulation.path),
                    "tokens": "|".join(get_token_path(simulation.start_token, simulation.path)),
                    "amount_in": simulation.amount_in,
                    "amount_out": simulation.amount_out,
                    "profit": simulation.profit(),
                    "epsilon": simulation.epsilon,
                }
            )
            rows += 1
    return rows


@cli.group()
def path() -> None:
    """
    Path commands
    """


@path.command("simulate")
@click.option(
    "--chain",
    "chain_id",
    type=int,
    default=1,
    help="The chain ID (default 1).",
)
@click.option(
    "--factory",
    "factory_address",
    help="The Uniswap V2 factory address. Defaults to the Uniswap deployment for the chain.",
)
@click.option(
    "--token",
    "token_address",
    help="The start and end token for each path. Defaults to the wrapped native token.",
)
@click.option(
    "--max-length",
    type=int,
    default=None,
    help="The maximum number of pools in a path (default from the config file).",
)
@click.option(
    "--min-eth-value",
    type=int,
    default=None,
    help="Exclude pools with a WETH value at or below this amount (default from the config file).",
)
@click.option(
    "--epsilon",
    type=int,
    default=None,
    help="The precision of the trade size search (default from the config file).",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default="simulations.csv",
    show_default=True,
    help="The CSV file to write.",
)
@click.option(
    "--verify",
    is_flag=True,
    help="Check each profitable simulation against the router's getAmountsOut.",
)
@click.option(
    "--router",
    "router_address",
    help="The router used by --verify. Defaults to the Uniswap deployment for the chain.",
)
def path_simulate(
    chain_id: int,
    factory_address: str | None,
    token_address: str | None,
    max_length: int | None,
    min_eth_value: int | None,
    epsilon: int | None,
    output: Path,
    verify: bool,  # noqa: FBT001
    router_address: str | None,
) -> None:
    """
    Sync the pools for a factory, then simulate the optimal trade through each cyclic path from
    the start token.
    """

    token = get_wrapped_native_token(chain_id=chain_id, token_address=token_address)
    factory_address = get_factory_address(chain_id=chain_id, factory_address=factory_address)
    router = (
        get_router_address(chain_id=chain_id, router_address=router_address) if verify else None
    )

    async def _simulate() -> tuple[list[Simulation], int | None]:
        checkpoint = await sync_pool_checkpoint(
            chain_id=chain_id,
            factory_address=factory_address,
            chunk_size=settings.sync.chunk_size,
        )

        pools = checkpoint.data
        compute_eth_values(pools, weth=token)
        pools = filter_pools_for_eth_value(
            pools,
            min_eth_value if min_eth_value is not None else settings.simulation.min_eth_value,
        )
        logger.info(f"{len(pools)} pools remain after filtering by WETH value")

        paths = find_paths(
            start_token=token,
            adjacency=build_adjacency(pools),
            max_length=(
                max_length if max_length is not None else settings.simulation.max_path_length
            ),
            direction=Direction.FORWARD_AND_REVERSE,
        )
        simulations = sorted(
            (
                Simulation.from_path(
                    start_token=token,
                    path=swap_path,
                    epsilon=epsilon if epsilon is not None else settings.simulation.epsilon,
                )
                for swap_path in paths
            ),
            key=lambda simulation: simulation.profit(),
            reverse=True,
        )

        if router is None:
            return simulations, None

        # The router reverts on a zero input
        mismatches = await count_router_mismatches(
            chain_id=chain_id,
            router_address=router,
            simulations=[simulation for simulation in simulations if simulation.profit() > 0],
            block_number=checkpoint.last_block,
        )
        return simulations, mismatches

    simulations, mismatches = asyncio.run(_simulate())

    rows = write_simulations_to_csv(simulations, output)
    click.echo(f"Wrote {rows} simulations to {output}")
    if mismatches is not None:
        click.echo(f"{mismatches} simulations did not match the router")

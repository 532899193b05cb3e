import asyncio

import click

from ammsync.cli import cli
from ammsync.cli.utils import get_factory_address, sync_pool_checkpoint
from ammsync.config import settings


@cli.group()
def pool() -> None:
    """
    Pool commands
    """


@pool.command("sync")
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
    "--chunk",
    "chunk_size",
    type=int,
    default=None,
    help="The number of pools requested per batch (default from the config file).",
)
def pool_sync(chain_id: int, factory_address: str | None, chunk_size: int | None) -> None:
    """
    Create or update the pool checkpoint for a factory.
    """

    checkpoint = asyncio.run(
        sync_pool_checkpoint(
            chain_id=chain_id,
            factory_address=get_factory_address(chain_id=chain_id, factory_address=factory_address),
            chunk_size=chunk_size if chunk_size is not None else settings.sync.chunk_size,
        )
    )
    click.echo(f"{checkpoint.id}: {len(checkpoint.data)} pools at block {checkpoint.last_block}")

from pathlib import Path

import pytest
from pydantic import HttpUrl, ValidationError, WebsocketUrl
from web3 import AsyncHTTPProvider

from ammsync import async_connection_manager, get_async_web3
from ammsync.config import (
    CheckpointSettings,
    Settings,
    load_config_from_file,
    save_config_to_file,
)
from ammsync.connection import build_async_web3
from ammsync.connection.async_connection_manager import _fast_decode_rpc_response
from ammsync.exceptions import AmmSyncValueError

CONFIG_TOML = """
[checkpoint]
directory = "/tmp/ammsync/checkpoints"

[rpc]
1 = "http://localhost:8545"
8453 = "wss://localhost:8546"
42161 = "~/ethereum/node.ipc"

[sync]
chunk_size = 50

[simulation]
max_path_length = 3
"""


def test_load_config_from_file(tmp_path: Path):
    config_path = tmp_path / "config.toml"
    config_path.write_text(CONFIG_TOML)

    config = load_config_from_file(config_path)

    assert config.checkpoint.directory == Path("/tmp/ammsync/checkpoints")
    assert config.rpc[1] == HttpUrl("http://localhost:8545")
    assert config.rpc[8453] == WebsocketUrl("wss://localhost:8546")
    assert config.rpc[42161] == Path.home() / "ethereum" / "node.ipc"

    # Unset values take their defaults
    assert config.sync.chunk_size == 50
    assert config.sync.block_chunk_size == 2_000
    assert config.sync.max_unit_retries == 1
    assert config.simulation.max_path_length == 3
    assert config.simulation.epsilon == 10**14
    assert config.simulation.min_eth_value == 10**19


def test_save_config_to_file(tmp_path: Path):
    config_path = tmp_path / "config.toml"
    config_path.write_text(CONFIG_TOML)
    config = load_config_from_file(config_path)

    saved_path = tmp_path / "saved.toml"
    save_config_to_file(config, saved_path)
    assert load_config_from_file(saved_path) == config


@pytest.mark.parametrize(
    "sync_settings",
    [
        {"chunk_size": 0},
        {"block_chunk_size": -1},
        {"max_unit_retries": 0},
    ],
)
def test_invalid_sync_settings(sync_settings: dict[str, int]):
    with pytest.raises(ValidationError):
        Settings(
            checkpoint=CheckpointSettings(directory=Path("/tmp")),
            rpc={},
            sync=sync_settings,  # type: ignore[arg-type]
        )


def test_fast_decode_rpc_response():
    assert _fast_decode_rpc_response(b'{"jsonrpc": "2.0", "id": 1, "result": "0x1"}') == {
        "jsonrpc": "2.0",
        "id": 1,
        "result": "0x1",
    }

    with pytest.raises(ValueError, match="JSON failure"):
        _fast_decode_rpc_response(b"not json")


async def test_build_async_web3_for_http_endpoint():
    w3 = await build_async_web3(HttpUrl("http://localhost:8545"))
    assert isinstance(w3.provider, AsyncHTTPProvider)


def test_connection_manager_without_connections():
    with pytest.raises(AmmSyncValueError):
        _ = async_connection_manager.default_chain_id

    with pytest.raises(AmmSyncValueError):
        async_connection_manager.get_web3(1)

    with pytest.raises(AmmSyncValueError):
        get_async_web3()

import tomllib
from pathlib import Path
from typing import Annotated

import tomlkit
from pydantic import (
    BaseModel,
    Field,
    HttpUrl,
    PlainSerializer,
    PositiveInt,
    WebsocketUrl,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from ammsync.logging import logger
from ammsync.types.aliases import ChainId

CONFIG_DIR = Path.home() / ".config" / "ammsync"
CONFIG_FILE = CONFIG_DIR / "config.toml"
CHECKPOINT_DIR = CONFIG_DIR / "checkpoints"


class CheckpointSettings(BaseModel):
    # Serialize the path as a string representation of the absolute path
    directory: Annotated[
        Path,
        PlainSerializer(lambda path: str(path.absolute()), return_type=str),
    ]


class SyncSettings(BaseModel):
    # Number of indices (pair registry entries or pool addresses) requested per batch
    chunk_size: PositiveInt = 100
    # Number of blocks requested per log query
    block_chunk_size: PositiveInt = 2_000
    # Attempts made for each single-element fetch after its batch failed
    max_unit_retries: PositiveInt = 1


class SimulationSettings(BaseModel):
    epsilon: PositiveInt = 10**14
    max_path_length: PositiveInt = 4
    min_eth_value: int = Field(default=10**19, ge=0)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AMMSYNC_", env_nested_delimiter="__")

    checkpoint: CheckpointSettings
    rpc: dict[
        ChainId,
        HttpUrl | WebsocketUrl | Path,
    ]
    sync: SyncSettings = SyncSettings()
    simulation: SimulationSettings = SimulationSettings()

    @field_validator("rpc", mode="after")
    def validate_paths(
        cls,  # noqa: N805
        rpc_dict: dict[ChainId, HttpUrl | WebsocketUrl | Path],
    ) -> dict[ChainId, HttpUrl | WebsocketUrl | Path]:
        """
        Validate the endpoints.

        This will convert all file paths (IPC sockets) to an absolute reference, leaving HTTP and
        WS URLs as-is.
        """

        return {
            chain_id: endpoint.expanduser().absolute() if isinstance(endpoint, Path) else endpoint
            for chain_id, endpoint in rpc_dict.items()
        }


def load_config_from_file(config_path: Path) -> Settings:
    return Settings.model_validate(
        tomllib.loads(
            config_path.read_text(),
        ),
    )


def save_config_to_file(config: Settings, config_path: Path = CONFIG_FILE) -> None:
    config_path.write_text(
        tomlkit.dumps(
            config.model_dump(mode="json"),
        ),
    )


if not CONFIG_DIR.exists():
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    logger.info(f"Created a configuration directory at {CONFIG_DIR}.")

if CONFIG_FILE.exists():
    settings = load_config_from_file(CONFIG_FILE)
else:
    settings = Settings(
        checkpoint=CheckpointSettings(
            directory=CHECKPOINT_DIR,
        ),
        rpc={},
    )

    save_config_to_file(settings)
    logger.info(f"Created a configuration file at {CONFIG_FILE}.")

from pathlib import Path
from typing import Any

from ammsync.exceptions.base import AmmSyncError


class CheckpointError(AmmSyncError):
    """
    Exception raised for errors related to checkpoint persistence.
    """


class CheckpointSaveError(CheckpointError):
    """
    Raised when a checkpoint could not be written to storage.
    """

    def __init__(self, checkpoint_id: str, path: Path | None = None) -> None:
        self.checkpoint_id = checkpoint_id
        self.path = path
        super().__init__(
            message=f"Could not save checkpoint {checkpoint_id}"
            + (f" to {path}" if path is not None else "")
        )

    def __reduce__(self) -> tuple[Any, ...]:
        return self.__class__, (self.checkpoint_id, self.path)


class InvalidCheckpointId(CheckpointError):
    """
    Raised when a checkpoint ID cannot be decoded into a factory address.
    """

    def __init__(self, checkpoint_id: str) -> None:
        self.checkpoint_id = checkpoint_id
        super().__init__(message=f"Invalid checkpoint ID {checkpoint_id!r}")

    def __reduce__(self) -> tuple[Any, ...]:
        return self.__class__, (self.checkpoint_id,)

"""Storage port for the persisted mount mapping (``mounts.json``)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Final, Protocol

from wasm_task_orchestrator.domain.models import MountMapping
from wasm_task_orchestrator.utils.fs import atomic_write

if TYPE_CHECKING:
    import os

MAPPING_FILE_NAME: Final[str] = "mounts.json"

logger = logging.getLogger(__name__)


class MappingNotFoundError(FileNotFoundError):
    """Raised when a working directory has no mapping file (not provisioned)."""


class MountMappingPort(Protocol):
    """Read/write contract shared by provisioning, resolution and execution."""

    @property
    def workdir(self) -> Path: ...

    def read(self) -> MountMapping: ...

    def write(self, mapping: MountMapping) -> None: ...


class MountMappingStore:
    """File-backed mapping store rooted at a working directory.

    There is no locking: provisioning must complete before any reader runs.
    """

    def __init__(self, workdir: str | os.PathLike[str]) -> None:
        self._workdir = Path(workdir)

    @property
    def workdir(self) -> Path:
        return self._workdir

    @property
    def path(self) -> Path:
        return self._workdir / MAPPING_FILE_NAME

    def read(self) -> MountMapping:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError as exc:
            raise MappingNotFoundError(
                f"mount mapping not found: {self.path!s} (was the working directory deployed?)"
            ) from exc
        mapping = MountMapping.from_json(raw)
        logger.debug("read mount mapping", extra={"path": str(self.path), "entries": len(mapping)})
        return mapping

    def write(self, mapping: MountMapping) -> None:
        atomic_write(self.path, mapping.to_json())
        logger.debug("wrote mount mapping", extra={"path": str(self.path), "entries": len(mapping)})


__all__ = ["MAPPING_FILE_NAME", "MappingNotFoundError", "MountMappingPort", "MountMappingStore"]

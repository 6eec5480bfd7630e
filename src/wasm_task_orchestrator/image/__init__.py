"""Task image access: archive byte lookup and manifest loading."""

from wasm_task_orchestrator.image.archive import (
    ArchiveEntryNotFoundError,
    ImageArchive,
    ImageArchiveError,
)
from wasm_task_orchestrator.image.manifest_loader import (
    DEPLOY_MANIFEST_ENTRY,
    VALIDATION_MANIFEST_ENTRY,
    load_manifest,
)

__all__ = [
    "ArchiveEntryNotFoundError",
    "DEPLOY_MANIFEST_ENTRY",
    "ImageArchive",
    "ImageArchiveError",
    "VALIDATION_MANIFEST_ENTRY",
    "load_manifest",
]

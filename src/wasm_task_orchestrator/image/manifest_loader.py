"""Load task manifests from image archives."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from wasm_task_orchestrator.domain.models import Manifest
from wasm_task_orchestrator.image.archive import ImageArchive

if TYPE_CHECKING:
    import os

DEPLOY_MANIFEST_ENTRY: Final[str] = "gu-package.json"
VALIDATION_MANIFEST_ENTRY: Final[str] = "manifest.json"

logger = logging.getLogger(__name__)


def load_manifest(
    image: ImageArchive | str | os.PathLike[str],
    *,
    entry: str = DEPLOY_MANIFEST_ENTRY,
) -> Manifest:
    """Deserialize ``entry`` of the image as a :class:`Manifest`.

    Raises ``ArchiveEntryNotFoundError`` when the entry is absent and
    ``MalformedDataError`` when it is present but cannot be parsed.
    """

    if isinstance(image, ImageArchive):
        raw = image.read_bytes(entry)
        image_path = image.path
    else:
        with ImageArchive(image) as archive:
            raw = archive.read_bytes(entry)
            image_path = archive.path

    manifest = Manifest.from_json(raw)
    logger.debug(
        "loaded manifest",
        extra={
            "image": str(image_path),
            "entry": entry,
            "mount_points": len(manifest.mount_points),
            "entry_points": len(manifest.entry_points),
        },
    )
    return manifest


__all__ = ["DEPLOY_MANIFEST_ENTRY", "VALIDATION_MANIFEST_ENTRY", "load_manifest"]

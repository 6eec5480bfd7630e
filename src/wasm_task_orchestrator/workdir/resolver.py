"""Resolve guest-side destinations to host paths through the mount mapping."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from wasm_task_orchestrator.domain.models import MountMapping, ResolveResult
from wasm_task_orchestrator.domain.paths import is_prefix, normalize_path, strip_prefix

if TYPE_CHECKING:
    from wasm_task_orchestrator.domain.paths import GuestPath

logger = logging.getLogger(__name__)


def resolve_destination(
    mapping: MountMapping,
    workdir: str | os.PathLike[str],
    destination: GuestPath,
) -> ResolveResult:
    """Map ``destination`` to ``workdir/<host_id>/<remainder>``.

    Mounts are tried in persisted order and the first whose normalized path is
    a component-wise prefix of the normalized destination wins, even when a
    later mount would be a longer match. No match is a regular result.
    """

    target = normalize_path(destination)
    for entry in mapping:
        mount_path = normalize_path(entry.mount_point.path)
        if is_prefix(mount_path, target):
            remainder = strip_prefix(mount_path, target)
            # An empty remainder still joins, leaving a trailing separator.
            host_path = os.path.join(Path(workdir, entry.host_id), *remainder.parts or ("",))
            logger.debug(
                "resolved destination",
                extra={"destination": str(destination), "host_path": host_path},
            )
            return ResolveResult(host_path=host_path)
        logger.debug(
            "mount point does not match destination",
            extra={"destination": str(target), "mount_point": entry.mount_point.path},
        )

    return ResolveResult()


__all__ = ["resolve_destination"]

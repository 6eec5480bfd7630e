"""
wasm-task-orchestrator — mount provisioning

File: src/wasm_task_orchestrator/workdir/provisioner.py
Last updated: 2026-10-16

Purpose
- Allocate one fresh host directory per declared mount point and persist the
  ordered mapping to the working directory.

Functional requirements
- Mount points are processed in declaration order; the persisted order equals it.
- Each host directory is created exclusively, directly under the working directory.
- Creation failures abort immediately. Directories created earlier in the same
  call are left in place; callers use a fresh working directory per task instance.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from wasm_task_orchestrator.domain.ids import generate_mount_id
from wasm_task_orchestrator.domain.models import MountMapping, MountMappingEntry, MountPoint
from wasm_task_orchestrator.utils.fs import create_empty_directory
from wasm_task_orchestrator.workdir.mapping_store import MountMappingPort

logger = logging.getLogger(__name__)

MountIdFactory = Callable[[], str]


def provision_mounts(
    mount_points: Sequence[MountPoint],
    store: MountMappingPort,
    *,
    id_factory: MountIdFactory = generate_mount_id,
) -> MountMapping:
    """Create host directories for ``mount_points`` and write the mapping file."""

    mapping = MountMapping()
    for index, mount_point in enumerate(mount_points):
        host_id = id_factory()
        entry = MountMappingEntry(host_id=host_id, mount_point=mount_point)
        host_dir = create_empty_directory(store.workdir / entry.host_id)
        mapping = mapping.append(entry)
        logger.info(
            "provisioned mount directory",
            extra={"index": index, "mount_point": mount_point.path, "host_dir": str(host_dir)},
        )

    store.write(mapping)
    return mapping


__all__ = ["MountIdFactory", "provision_mounts"]

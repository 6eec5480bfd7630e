"""Working-directory state: mount provisioning, the mapping file, and path resolution."""

from wasm_task_orchestrator.workdir.mapping_store import (
    MAPPING_FILE_NAME,
    MappingNotFoundError,
    MountMappingPort,
    MountMappingStore,
)
from wasm_task_orchestrator.workdir.provisioner import provision_mounts
from wasm_task_orchestrator.workdir.resolver import resolve_destination

__all__ = [
    "MAPPING_FILE_NAME",
    "MappingNotFoundError",
    "MountMappingPort",
    "MountMappingStore",
    "provision_mounts",
    "resolve_destination",
]

"""Sandbox engine boundary and entry point execution."""

from wasm_task_orchestrator.sandbox.engine import (
    DRY_RUN_ENGINE,
    IMAGE_ROOT,
    DryRunSandbox,
    NodeMode,
    SandboxCall,
    SandboxEngine,
    SandboxError,
    SandboxFactory,
    load_engine_factory,
)
from wasm_task_orchestrator.sandbox.orchestrator import (
    SCRIPT_SUFFIX,
    EntryPointArtifacts,
    InvalidEntryPointError,
    artifact_paths,
    engine_failure_step,
    extract_artifacts,
    run_entry_point,
    select_entry_point,
)

__all__ = [
    "DRY_RUN_ENGINE",
    "DryRunSandbox",
    "EntryPointArtifacts",
    "IMAGE_ROOT",
    "InvalidEntryPointError",
    "NodeMode",
    "SCRIPT_SUFFIX",
    "SandboxCall",
    "SandboxEngine",
    "SandboxError",
    "SandboxFactory",
    "artifact_paths",
    "engine_failure_step",
    "extract_artifacts",
    "load_engine_factory",
    "run_entry_point",
    "select_entry_point",
]

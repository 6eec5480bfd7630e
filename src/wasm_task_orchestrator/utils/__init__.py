"""Utility exports for filesystem helpers."""

from wasm_task_orchestrator.utils.fs import atomic_write, create_empty_directory

__all__ = ["atomic_write", "create_empty_directory"]

"""Stable constants shared across the task runner."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1

# Command-line program name and the config/environment surface derived from it.
PROGRAM_NAME: Final[str] = "wasm-task"
DEFAULT_CONFIG_FILE: Final[str] = "wasm-task.toml"
ENV_PREFIX: Final[str] = "WASM_TASK_"

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PROGRAM_NAME",
]

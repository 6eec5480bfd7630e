"""
wasm-task-orchestrator

File: src/wasm_task_orchestrator/__init__.py
Last updated: 2026-10-16

Purpose
- Package root for the packaged WASM task runner: image validation, mount
  provisioning, container path resolution and sandboxed entry point execution.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]

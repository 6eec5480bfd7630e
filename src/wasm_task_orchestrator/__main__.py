"""Module entrypoint for ``python -m wasm_task_orchestrator``."""

from __future__ import annotations

from wasm_task_orchestrator.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())

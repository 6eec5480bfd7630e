"""Unit tests for the dry-run sandbox engine and engine selection."""

from __future__ import annotations

from pathlib import Path

import pytest

from wasm_task_orchestrator.sandbox import (
    DRY_RUN_ENGINE,
    IMAGE_ROOT,
    DryRunSandbox,
    NodeMode,
    SandboxCall,
    SandboxError,
    load_engine_factory,
)


def test_dry_run_records_calls_in_order() -> None:
    sandbox = DryRunSandbox()
    sandbox.work_dir("/out")
    sandbox.set_exec_args(["--flag"])
    sandbox.init()
    sandbox.mount(Path("task.zip"), IMAGE_ROOT, NodeMode.RO)
    assert sandbox.run(b"js", b"wasm!") is None

    assert sandbox.calls == [
        SandboxCall("work_dir", ("/out",)),
        SandboxCall("set_exec_args", (("--flag",),)),
        SandboxCall("init"),
        SandboxCall("mount", (Path("task.zip"), "@", NodeMode.RO)),
        SandboxCall("run", (2, 5)),
    ]


def test_dry_run_enforces_call_ordering() -> None:
    sandbox = DryRunSandbox()
    with pytest.raises(SandboxError, match="mount must be called after init"):
        sandbox.mount(Path("x"), "/out", NodeMode.RW)
    with pytest.raises(SandboxError, match="run must be called after init"):
        sandbox.run(b"", b"")

    sandbox.init()
    with pytest.raises(SandboxError, match="work_dir must be called before init"):
        sandbox.work_dir("/out")
    with pytest.raises(SandboxError, match="init must be called before init"):
        sandbox.init()

    sandbox.run(b"", b"")
    with pytest.raises(SandboxError, match="called after run"):
        sandbox.mount(Path("x"), "/out", NodeMode.RW)


def test_load_builtin_engine() -> None:
    factory = load_engine_factory(DRY_RUN_ENGINE)
    assert isinstance(factory(), DryRunSandbox)
    assert load_engine_factory("  dry-run ") is factory


def test_load_engine_from_import_reference() -> None:
    factory = load_engine_factory("wasm_task_orchestrator.sandbox.engine:DryRunSandbox")
    assert factory is DryRunSandbox


@pytest.mark.parametrize(
    ("reference", "message"),
    [
        ("", "non-empty string"),
        ("firecracker", "invalid sandbox engine"),
        ("module_without_attribute:", "invalid sandbox engine"),
        ("wasm_task_orchestrator_missing_module:factory", "unable to import"),
        ("wasm_task_orchestrator.sandbox.engine:NoSuchFactory", "has no attribute"),
        ("wasm_task_orchestrator.sandbox.engine:IMAGE_ROOT", "is not callable"),
    ],
)
def test_load_engine_rejects_bad_references(reference: str, message: str) -> None:
    with pytest.raises(SandboxError, match=message):
        load_engine_factory(reference)

"""
wasm-task-orchestrator — unit tests for entry point execution

File: tests/unit/sandbox/test_entry_point_runner.py
Last updated: 2026-10-16

Purpose
- Validate artifact extraction, engine call order, and failure propagation of
  the entry point runner against a recording engine.
"""

from __future__ import annotations

import json
import zipfile
from collections.abc import Sequence
from pathlib import Path, PurePosixPath

import pytest

from wasm_task_orchestrator.domain.models import (
    EntryPoint,
    MalformedDataError,
)
from wasm_task_orchestrator.domain.paths import PathEscapeError
from wasm_task_orchestrator.image import ArchiveEntryNotFoundError, load_manifest
from wasm_task_orchestrator.sandbox import (
    IMAGE_ROOT,
    InvalidEntryPointError,
    NodeMode,
    artifact_paths,
    engine_failure_step,
    run_entry_point,
    select_entry_point,
)
from wasm_task_orchestrator.workdir import MappingNotFoundError, MountMappingStore, provision_mounts

WASM_BYTES = b"\x00asm\x01\x00\x00\x00"
JS_BYTES = b"// loader"


class RecordingEngine:
    """Engine double that records every call and can fail on a chosen step."""

    def __init__(self, *, fail_on: str | None = None) -> None:
        self.calls: list[tuple[object, ...]] = []
        self._fail_on = fail_on

    def work_dir(self, path: str) -> None:
        self._call("work_dir", path)

    def set_exec_args(self, args: Sequence[str]) -> None:
        self._call("set_exec_args", list(args))

    def init(self) -> None:
        self._call("init")

    def mount(self, source: Path, dest: str, mode: NodeMode) -> None:
        self._call("mount", Path(source), dest, mode)

    def run(self, script: bytes, module: bytes) -> object:
        self._call("run", script, module)
        return "ignored result"

    def _call(self, operation: str, *arguments: object) -> None:
        self.calls.append((operation, *arguments))
        if operation == self._fail_on:
            raise OSError(f"engine refused {operation}")


class _EngineFactory:
    def __init__(self, engine: RecordingEngine) -> None:
        self.engine = engine
        self.created = 0

    def __call__(self) -> RecordingEngine:
        self.created += 1
        return self.engine


def _build_image(path: Path, manifest: dict[str, object], *, with_js: bool = True) -> Path:
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("gu-package.json", json.dumps(manifest))
        archive.writestr("bin/run.wasm", WASM_BYTES)
        if with_js:
            archive.writestr("bin/run.js", JS_BYTES)
    return path


_SCENARIO_MANIFEST: dict[str, object] = {
    "mount_points": [{"path": "/out"}],
    "entry_points": [{"id": "run", "wasm_path": "bin/run.wasm"}],
}


def test_end_to_end_provision_then_execute(tmp_path: Path) -> None:
    image = _build_image(tmp_path / "task.zip", _SCENARIO_MANIFEST)
    workdir = tmp_path / "work"
    workdir.mkdir()
    store = MountMappingStore(workdir)

    manifest = load_manifest(image)
    mapping = provision_mounts(manifest.mount_points, store)
    (entry,) = tuple(mapping)

    engine = RecordingEngine()
    factory = _EngineFactory(engine)
    returned = run_entry_point(
        image,
        store,
        select_entry_point(manifest, "run"),
        manifest,
        engine_factory=factory,
    )

    assert returned is engine
    assert factory.created == 1
    assert engine.calls == [
        ("set_exec_args", []),
        ("init",),
        ("mount", image, IMAGE_ROOT, NodeMode.RO),
        ("mount", workdir / entry.host_id, "/out", NodeMode.RW),
        ("run", JS_BYTES, WASM_BYTES),
    ]


def test_work_dir_and_exec_args_are_applied_before_init(tmp_path: Path) -> None:
    manifest_payload = {**_SCENARIO_MANIFEST, "work_dir": "/out"}
    image = _build_image(tmp_path / "task.zip", manifest_payload)
    store = MountMappingStore(tmp_path)
    manifest = load_manifest(image)
    provision_mounts(manifest.mount_points, store)

    engine = RecordingEngine()
    run_entry_point(
        image,
        store,
        manifest.entry_points[0],
        manifest,
        engine_factory=lambda: engine,
        exec_args=("--input", "a b"),
    )

    assert [call[0] for call in engine.calls[:3]] == ["work_dir", "set_exec_args", "init"]
    assert engine.calls[0] == ("work_dir", "/out")
    assert engine.calls[1] == ("set_exec_args", ["--input", "a b"])


def test_mapping_mounts_follow_persisted_order(tmp_path: Path) -> None:
    manifest_payload = {
        "mount_points": [{"path": "/b"}, {"rw": "/a"}, {"path": "/c"}],
        "entry_points": [{"id": "run", "wasm_path": "bin/run.wasm"}],
    }
    image = _build_image(tmp_path / "task.zip", manifest_payload)
    store = MountMappingStore(tmp_path)
    manifest = load_manifest(image)
    mapping = provision_mounts(manifest.mount_points, store)

    engine = RecordingEngine()
    run_entry_point(image, store, manifest.entry_points[0], manifest, engine_factory=lambda: engine)

    mounts = [call for call in engine.calls if call[0] == "mount"][1:]
    assert [call[2] for call in mounts] == ["/b", "/a", "/c"]
    assert [call[1] for call in mounts] == [tmp_path / entry.host_id for entry in mapping]
    assert {call[3] for call in mounts} == {NodeMode.RW}


def test_invalid_entry_point_performs_no_mounting(tmp_path: Path) -> None:
    image = _build_image(tmp_path / "task.zip", _SCENARIO_MANIFEST)
    manifest = load_manifest(image)
    engine = RecordingEngine()

    with pytest.raises(InvalidEntryPointError, match="invalid entry point: Run") as excinfo:
        entry_point = select_entry_point(manifest, "Run")
        run_entry_point(image, MountMappingStore(tmp_path), entry_point, manifest,
                        engine_factory=lambda: engine)

    assert excinfo.value.entry_point_id == "Run"
    assert engine.calls == []


def test_missing_script_companion_fails_before_engine(tmp_path: Path) -> None:
    image = _build_image(tmp_path / "task.zip", _SCENARIO_MANIFEST, with_js=False)
    store = MountMappingStore(tmp_path)
    manifest = load_manifest(image)
    provision_mounts(manifest.mount_points, store)
    factory = _EngineFactory(RecordingEngine())

    with pytest.raises(ArchiveEntryNotFoundError) as excinfo:
        run_entry_point(image, store, manifest.entry_points[0], manifest, engine_factory=factory)

    assert excinfo.value.entry_name == "bin/run.js"
    assert factory.created == 0


def test_unprovisioned_workdir_fails_before_engine(tmp_path: Path) -> None:
    image = _build_image(tmp_path / "task.zip", _SCENARIO_MANIFEST)
    manifest = load_manifest(image)
    factory = _EngineFactory(RecordingEngine())

    with pytest.raises(MappingNotFoundError):
        run_entry_point(
            image,
            MountMappingStore(tmp_path / "work"),
            manifest.entry_points[0],
            manifest,
            engine_factory=factory,
        )
    assert factory.created == 0


@pytest.mark.parametrize("step", ["init", "mount", "run"])
def test_engine_failures_propagate_unchanged(tmp_path: Path, step: str) -> None:
    image = _build_image(tmp_path / "task.zip", _SCENARIO_MANIFEST)
    store = MountMappingStore(tmp_path)
    manifest = load_manifest(image)
    provision_mounts(manifest.mount_points, store)
    engine = RecordingEngine(fail_on=step)

    with pytest.raises(OSError, match=f"engine refused {step}") as excinfo:
        run_entry_point(image, store, manifest.entry_points[0], manifest,
                        engine_factory=lambda: engine)

    assert type(excinfo.value) is OSError
    assert engine_failure_step(excinfo.value) == step
    assert engine.calls[-1][0] == step


def test_engine_failure_step_ignores_unrelated_errors() -> None:
    assert engine_failure_step(ValueError("boom")) is None


@pytest.mark.parametrize(
    ("wasm_path", "expected_wasm", "expected_js"),
    [
        ("bin/run.wasm", "bin/run.wasm", "bin/run.js"),
        ("/bin//run.wasm", "bin/run.wasm", "bin/run.js"),
        ("run", "run", "run.js"),
        ("lib/app.v2.wasm", "lib/app.v2.wasm", "lib/app.v2.js"),
    ],
)
def test_artifact_paths(wasm_path: str, expected_wasm: str, expected_js: str) -> None:
    wasm, js = artifact_paths(EntryPoint(id="x", wasm_path=wasm_path))
    assert wasm == PurePosixPath(expected_wasm)
    assert js == PurePosixPath(expected_js)


def test_artifact_paths_reject_escapes_and_empty_paths() -> None:
    with pytest.raises(PathEscapeError):
        artifact_paths(EntryPoint(id="x", wasm_path="../outside.wasm"))
    with pytest.raises(MalformedDataError, match="does not name a module"):
        artifact_paths(EntryPoint(id="x", wasm_path="/"))


def test_manifest_without_mounts_only_mounts_image(tmp_path: Path) -> None:
    image = _build_image(
        tmp_path / "task.zip",
        {"entry_points": [{"id": "run", "wasm_path": "bin/run.wasm"}]},
    )
    store = MountMappingStore(tmp_path)
    manifest = load_manifest(image)
    provision_mounts(manifest.mount_points, store)
    engine = RecordingEngine()

    run_entry_point(
        image, store, manifest.entry_points[0], manifest,
        engine_factory=lambda: engine,
    )

    assert [call for call in engine.calls if call[0] == "mount"] == [
        ("mount", image, IMAGE_ROOT, NodeMode.RO)
    ]


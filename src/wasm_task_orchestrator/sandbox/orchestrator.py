"""
wasm-task-orchestrator — entry point execution

File: src/wasm_task_orchestrator/sandbox/orchestrator.py
Last updated: 2026-10-16

Purpose
- Run one entry point of a task image inside a sandbox engine with the image
  and every provisioned mount attached.

Functional requirements
- The module path is normalized; its script companion shares the path with a
  ``.js`` extension. Both are read by exact in-archive lookup.
- Engine call order: work_dir (if declared), set_exec_args, init, image mount
  (read-only at the image root), mapping mounts (read-write, persisted order), run.
- Engine failures propagate unchanged, annotated with the failing step.
- Unknown entry point ids fail before any archive or engine access.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Final

from wasm_task_orchestrator.domain.models import MalformedDataError
from wasm_task_orchestrator.domain.paths import normalize_path
from wasm_task_orchestrator.image.archive import ImageArchive
from wasm_task_orchestrator.sandbox.engine import IMAGE_ROOT, NodeMode

if TYPE_CHECKING:
    import os
    from collections.abc import Iterator

    from wasm_task_orchestrator.domain.models import EntryPoint, Manifest
    from wasm_task_orchestrator.sandbox.engine import SandboxEngine, SandboxFactory
    from wasm_task_orchestrator.workdir.mapping_store import MountMappingPort

SCRIPT_SUFFIX: Final[str] = ".js"

_STEP_NOTE_PREFIX: Final[str] = "sandbox "
_STEP_NOTE_SUFFIX: Final[str] = " failed"

logger = logging.getLogger(__name__)


class InvalidEntryPointError(LookupError):
    """Raised when a requested entry point id is not declared by the manifest."""

    def __init__(self, entry_point_id: str) -> None:
        self.entry_point_id = entry_point_id
        super().__init__(f"invalid entry point: {entry_point_id}")


@dataclass(frozen=True, slots=True)
class EntryPointArtifacts:
    wasm_path: PurePosixPath
    js_path: PurePosixPath
    wasm_bytes: bytes
    js_bytes: bytes


def select_entry_point(manifest: Manifest, entry_point_id: str) -> EntryPoint:
    entry_point = manifest.find_entry_point(entry_point_id)
    if entry_point is None:
        raise InvalidEntryPointError(entry_point_id)
    return entry_point


def artifact_paths(entry_point: EntryPoint) -> tuple[PurePosixPath, PurePosixPath]:
    """Return the normalized ``(wasm, js)`` in-archive paths of ``entry_point``."""

    wasm_path = normalize_path(entry_point.wasm_path)
    if not wasm_path.parts:
        raise MalformedDataError(
            f"EntryPoint.wasm_path: {entry_point.wasm_path!r} does not name a module"
        )
    return wasm_path, wasm_path.with_suffix(SCRIPT_SUFFIX)


def extract_artifacts(archive: ImageArchive, entry_point: EntryPoint) -> EntryPointArtifacts:
    wasm_path, js_path = artifact_paths(entry_point)
    logger.info(
        "extracting entry point artifacts",
        extra={"entry_point": entry_point.id, "js": str(js_path), "wasm": str(wasm_path)},
    )
    wasm_bytes = archive.read_bytes(wasm_path.as_posix())
    js_bytes = archive.read_bytes(js_path.as_posix())
    return EntryPointArtifacts(
        wasm_path=wasm_path,
        js_path=js_path,
        wasm_bytes=wasm_bytes,
        js_bytes=js_bytes,
    )


def run_entry_point(
    image_path: str | os.PathLike[str],
    store: MountMappingPort,
    entry_point: EntryPoint,
    manifest: Manifest,
    *,
    engine_factory: SandboxFactory,
    exec_args: Sequence[str] = (),
) -> SandboxEngine:
    """Execute ``entry_point`` and return the engine instance that ran it.

    ``open`` and ``exec`` both land here; they differ only in which entry point
    was selected and in ``exec_args``.
    """

    image = Path(image_path)
    with ImageArchive(image) as archive:
        artifacts = extract_artifacts(archive, entry_point)
    mapping = store.read()

    with _engine_step("create"):
        sandbox = engine_factory()
    if manifest.work_dir is not None:
        with _engine_step("work_dir"):
            sandbox.work_dir(manifest.work_dir)
    with _engine_step("set_exec_args"):
        sandbox.set_exec_args(list(exec_args))
    with _engine_step("init"):
        sandbox.init()

    with _engine_step("mount"):
        sandbox.mount(image, IMAGE_ROOT, NodeMode.RO)
    for entry in mapping:
        host_dir = store.workdir / entry.host_id
        with _engine_step("mount"):
            sandbox.mount(host_dir, entry.mount_point.path, NodeMode.RW)
        logger.debug(
            "mounted provisioned directory",
            extra={"host_dir": str(host_dir), "mount_point": entry.mount_point.path},
        )

    with _engine_step("run"):
        _ = sandbox.run(artifacts.js_bytes, artifacts.wasm_bytes)
    logger.info("entry point finished", extra={"entry_point": entry_point.id})
    return sandbox


def engine_failure_step(exc: BaseException) -> str | None:
    """Return the engine step ``exc`` escaped from, or ``None`` if it did not."""

    for note in getattr(exc, "__notes__", ()):
        if note.startswith(_STEP_NOTE_PREFIX) and note.endswith(_STEP_NOTE_SUFFIX):
            return note[len(_STEP_NOTE_PREFIX) : -len(_STEP_NOTE_SUFFIX)]
    return None


@contextmanager
def _engine_step(step: str) -> Iterator[None]:
    try:
        yield
    except Exception as exc:
        exc.add_note(f"{_STEP_NOTE_PREFIX}{step}{_STEP_NOTE_SUFFIX}")
        raise


__all__ = [
    "EntryPointArtifacts",
    "InvalidEntryPointError",
    "SCRIPT_SUFFIX",
    "artifact_paths",
    "engine_failure_step",
    "extract_artifacts",
    "run_entry_point",
    "select_entry_point",
]

"""Sandbox engine port, the built-in dry-run engine, and engine selection."""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Final, Protocol

logger = logging.getLogger(__name__)

IMAGE_ROOT: Final[str] = "@"
DRY_RUN_ENGINE: Final[str] = "dry-run"


class SandboxError(RuntimeError):
    """Base error for sandbox engine failures raised by this package."""


class NodeMode(StrEnum):
    """Access mode of a sandbox mount."""

    RO = "ro"
    RW = "rw"


class SandboxEngine(Protocol):
    """Operations consumed from the external execution engine.

    Each call may raise; callers let the exception propagate unchanged.
    """

    def work_dir(self, path: str) -> None: ...

    def set_exec_args(self, args: Sequence[str]) -> None: ...

    def init(self) -> None: ...

    def mount(self, source: Path, dest: str, mode: NodeMode) -> None: ...

    def run(self, script: bytes, module: bytes) -> object: ...


SandboxFactory = Callable[[], SandboxEngine]


@dataclass(frozen=True, slots=True)
class SandboxCall:
    """One recorded engine operation."""

    operation: str
    arguments: tuple[object, ...] = ()


class DryRunSandbox:
    """Engine that validates and records the orchestration without executing.

    Enforces the engine's call ordering: configuration before ``init``, mounts
    and ``run`` after it.
    """

    def __init__(self) -> None:
        self.calls: list[SandboxCall] = []
        self._initialized = False
        self._finished = False

    def work_dir(self, path: str) -> None:
        self._require_state(initialized=False, operation="work_dir")
        self._record("work_dir", path)

    def set_exec_args(self, args: Sequence[str]) -> None:
        self._require_state(initialized=False, operation="set_exec_args")
        self._record("set_exec_args", tuple(args))

    def init(self) -> None:
        self._require_state(initialized=False, operation="init")
        self._initialized = True
        self._record("init")

    def mount(self, source: Path, dest: str, mode: NodeMode) -> None:
        self._require_state(initialized=True, operation="mount")
        self._record("mount", Path(source), dest, NodeMode(mode))

    def run(self, script: bytes, module: bytes) -> object:
        self._require_state(initialized=True, operation="run")
        self._finished = True
        self._record("run", len(script), len(module))
        return None

    def _record(self, operation: str, *arguments: object) -> None:
        call = SandboxCall(operation=operation, arguments=arguments)
        self.calls.append(call)
        logger.info(
            "dry-run sandbox call",
            extra={"operation": operation, "arguments": [str(item) for item in arguments]},
        )

    def _require_state(self, *, initialized: bool, operation: str) -> None:
        if self._finished:
            raise SandboxError(f"{operation} called after run")
        if self._initialized != initialized:
            expected = "after" if initialized else "before"
            raise SandboxError(f"{operation} must be called {expected} init")


_BUILTIN_ENGINES: Final[dict[str, SandboxFactory]] = {
    DRY_RUN_ENGINE: DryRunSandbox,
}


def load_engine_factory(reference: str) -> SandboxFactory:
    """Return the engine factory named by ``reference``.

    ``reference`` is a built-in engine name or ``package.module:attribute``.
    """

    if not isinstance(reference, str) or not reference.strip():
        raise SandboxError("sandbox engine reference must be a non-empty string")
    cleaned = reference.strip()
    builtin = _BUILTIN_ENGINES.get(cleaned)
    if builtin is not None:
        return builtin

    module_name, separator, attribute_path = cleaned.partition(":")
    if not separator or not module_name or not attribute_path:
        allowed = ", ".join(sorted(_BUILTIN_ENGINES))
        raise SandboxError(
            f"invalid sandbox engine {cleaned!r}; expected one of: {allowed} or 'module:factory'"
        )

    try:
        target: object = importlib.import_module(module_name)
    except ImportError as exc:
        raise SandboxError(f"unable to import sandbox engine module {module_name!r}: {exc}") from exc

    for attribute in attribute_path.split("."):
        try:
            target = getattr(target, attribute)
        except AttributeError as exc:
            raise SandboxError(
                f"sandbox engine {cleaned!r}: {module_name!r} has no attribute {attribute_path!r}"
            ) from exc

    if not callable(target):
        raise SandboxError(f"sandbox engine {cleaned!r} is not callable")
    return target  # type: ignore[return-value]


__all__ = [
    "DRY_RUN_ENGINE",
    "DryRunSandbox",
    "IMAGE_ROOT",
    "NodeMode",
    "SandboxCall",
    "SandboxEngine",
    "SandboxError",
    "SandboxFactory",
    "load_engine_factory",
]

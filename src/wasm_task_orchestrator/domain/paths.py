"""
wasm-task-orchestrator — guest path normalization

File: src/wasm_task_orchestrator/domain/paths.py
Last updated: 2026-10-16

Purpose
- Turn arbitrary guest-declared or guest-supplied paths into canonical relative
  paths that can be joined onto any confinement root.

Functional requirements
- Classify every component as ROOT, PREFIX, NORMAL or OTHER.
- ROOT and PREFIX components are discarded (POSIX paths have no PREFIX; a
  leading ``c:`` is a plain name), NORMAL components are kept, and any
  OTHER component rejects the whole path with ``PathEscapeError``.
- Prefix tests operate on components, never on raw string prefixes.

Non-functional requirements
- Pure functions, no filesystem access.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Iterator

GuestPath = str | os.PathLike[str]

_SEPARATOR: Final[str] = "/"
_CURRENT_DIR: Final[str] = "."
_PARENT_DIR: Final[str] = ".."
_FORBIDDEN_CHARS: Final[tuple[str, ...]] = ("\x00", "\\")


class ComponentKind(str, Enum):
    """Classification of a single path component."""

    ROOT = "root"
    # Drive or UNC prefix. Never produced for POSIX guest paths.
    PREFIX = "prefix"
    NORMAL = "normal"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class PathComponent:
    kind: ComponentKind
    text: str


class PathEscapeError(PermissionError):
    """Raised when a path contains a component that could escape its mount."""

    def __init__(self, path: str, component: PathComponent) -> None:
        self.path = path
        self.component = component
        super().__init__(
            f"permission denied: path {path!r} contains disallowed component {component.text!r}"
        )


def iter_components(path: GuestPath) -> Iterator[PathComponent]:
    """Yield classified components of ``path`` from left to right.

    Repeated separators produce no components. A ``.`` is only reported when it
    leads a relative path; interior ``.`` components are dropped.
    """

    text = _as_text(path)
    rest = text
    anchored = False

    if rest.startswith(_SEPARATOR):
        yield PathComponent(ComponentKind.ROOT, _SEPARATOR)
        rest = rest.lstrip(_SEPARATOR)
        anchored = True

    for index, part in enumerate(rest.split(_SEPARATOR)):
        if not part:
            continue
        if part == _CURRENT_DIR:
            if index == 0 and not anchored:
                yield PathComponent(ComponentKind.OTHER, part)
            continue
        if part == _PARENT_DIR or any(char in part for char in _FORBIDDEN_CHARS):
            yield PathComponent(ComponentKind.OTHER, part)
            continue
        yield PathComponent(ComponentKind.NORMAL, part)


def normalize_path(path: GuestPath) -> PurePosixPath:
    """Return the confinement-safe relative form of ``path``.

    Fails closed: the first component that is neither a root marker, a prefix
    nor a plain name aborts normalization with :class:`PathEscapeError`.
    """

    text = _as_text(path)
    parts: list[str] = []
    for component in iter_components(text):
        if component.kind is ComponentKind.ROOT or component.kind is ComponentKind.PREFIX:
            continue
        if component.kind is ComponentKind.NORMAL:
            parts.append(component.text)
            continue
        raise PathEscapeError(text, component)
    return PurePosixPath(*parts)


def is_prefix(prefix: PurePosixPath, path: PurePosixPath) -> bool:
    """Component-wise prefix test on already-normalized paths."""

    prefix_parts = _parts(prefix)
    path_parts = _parts(path)
    return path_parts[: len(prefix_parts)] == prefix_parts


def strip_prefix(prefix: PurePosixPath, path: PurePosixPath) -> PurePosixPath:
    """Return ``path`` without its leading ``prefix`` components."""

    if not is_prefix(prefix, path):
        raise ValueError(f"{path!s} does not start with {prefix!s}")
    return PurePosixPath(*_parts(path)[len(_parts(prefix)) :])


def _parts(path: PurePosixPath) -> tuple[str, ...]:
    # PurePosixPath("") renders as "." but has no parts.
    return tuple(part for part in path.parts if part != _SEPARATOR)


def _as_text(path: GuestPath) -> str:
    text = os.fspath(path)
    if not isinstance(text, str):
        raise TypeError(f"path must be text, got {type(text).__name__}")
    return text


__all__ = [
    "ComponentKind",
    "GuestPath",
    "PathComponent",
    "PathEscapeError",
    "is_prefix",
    "iter_components",
    "normalize_path",
    "strip_prefix",
]

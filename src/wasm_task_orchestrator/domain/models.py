"""Dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import NoReturn, TypeVar

from wasm_task_orchestrator.domain.paths import ComponentKind, iter_components

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

logger = logging.getLogger(__name__)

TModel = TypeVar("TModel", bound="CanonicalModel")

_MAX_TEXT = 4096
_MAX_COLLECTION = 1024
_PRETTY_INDENT = 2

_MANIFEST_METADATA_FIELDS = frozenset({"id", "name", "version", "description"})


class MalformedDataError(ValueError):
    """Raised when manifest or mapping data is present but cannot be parsed."""


class MountAccess(StrEnum):
    """Access tag of a mount point declared in tagged form (``{"rw": "/out"}``)."""

    RO = "ro"
    RW = "rw"
    WO = "wo"


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    def to_dict(self) -> dict[str, JSONValue]:
        _fail(self.__class__.__name__, "to_dict is not implemented for this model type")

    def to_json(self) -> str:
        return _canonical_json(self.to_dict())

    @classmethod
    def from_json(cls: type[TModel], raw: str | bytes) -> TModel:
        return cls.from_dict(_expect_object(_parse_json(raw, cls.__name__), cls.__name__))

    @classmethod
    def from_dict(cls: type[TModel], data: Mapping[str, object]) -> TModel:
        _fail(cls.__name__, "from_dict is not implemented for this model type")


@dataclass(frozen=True, slots=True)
class MountPoint(CanonicalModel):
    """A guest-visible location the task expects to read and write."""

    path: str
    access: MountAccess | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", _as_path_text(self.path, "MountPoint.path"))
        if self.access is not None and not isinstance(self.access, MountAccess):
            object.__setattr__(self, "access", _as_access(self.access, "MountPoint.access"))

    def to_dict(self) -> dict[str, JSONValue]:
        if self.access is None:
            return {"path": self.path}
        return {self.access.value: self.path}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> MountPoint:
        return _parse_mount_point(data, "MountPoint")


@dataclass(frozen=True, slots=True)
class EntryPoint(CanonicalModel):
    """A runnable unit: a compiled module plus the script sitting next to it."""

    id: str
    wasm_path: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_str(self.id, "EntryPoint.id", strip=False))
        object.__setattr__(self, "wasm_path", _as_path_text(self.wasm_path, "EntryPoint.wasm_path"))

    def to_dict(self) -> dict[str, JSONValue]:
        return {"id": self.id, "wasm_path": self.wasm_path}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> EntryPoint:
        return _parse_entry_point(data, "EntryPoint")


@dataclass(frozen=True, slots=True)
class Manifest(CanonicalModel):
    """Task image description. Immutable once loaded."""

    mount_points: tuple[MountPoint, ...] = ()
    entry_points: tuple[EntryPoint, ...] = ()
    work_dir: str | None = None
    main: EntryPoint | None = None
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "mount_points", tuple(self.mount_points))
        object.__setattr__(self, "entry_points", tuple(self.entry_points))
        if self.work_dir is not None:
            object.__setattr__(self, "work_dir", _as_path_text(self.work_dir, "Manifest.work_dir"))
        unknown = sorted(key for key in self.metadata if key not in _MANIFEST_METADATA_FIELDS)
        if unknown:
            _fail("Manifest.metadata", f"unexpected fields: {unknown}")
        object.__setattr__(self, "metadata", dict(self.metadata))

    def find_entry_point(self, entry_point_id: str) -> EntryPoint | None:
        """Exact, case-sensitive lookup in declaration order."""

        for entry_point in self.entry_points:
            if entry_point.id == entry_point_id:
                return entry_point
        return None

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {}
        for key in sorted(self.metadata):
            out[key] = self.metadata[key]
        if self.work_dir is not None:
            out["work_dir"] = self.work_dir
        out["mount_points"] = [item.to_dict() for item in self.mount_points]
        if self.main is not None:
            out["main"] = self.main.to_dict()
        out["entry_points"] = [item.to_dict() for item in self.entry_points]
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Manifest:
        parsed = _expect_object(
            data,
            "Manifest",
            known={"work_dir", "mount_points", "main", "entry_points"} | _MANIFEST_METADATA_FIELDS,
        )
        work_dir = parsed.get("work_dir")
        main = parsed.get("main")
        return cls(
            mount_points=tuple(
                _parse_mount_point(item, f"Manifest.mount_points[{index}]")
                for index, item in enumerate(
                    _as_sequence(parsed.get("mount_points", []), "Manifest.mount_points")
                )
            ),
            entry_points=tuple(
                _parse_entry_point(item, f"Manifest.entry_points[{index}]")
                for index, item in enumerate(
                    _as_sequence(parsed.get("entry_points", []), "Manifest.entry_points")
                )
            ),
            work_dir=None if work_dir is None else _as_path_text(work_dir, "Manifest.work_dir"),
            main=None if main is None else _parse_entry_point(main, "Manifest.main"),
            metadata={
                key: _as_str(parsed[key], f"Manifest.{key}", strip=False)
                for key in sorted(_MANIFEST_METADATA_FIELDS)
                if parsed.get(key) is not None
            },
        )


@dataclass(frozen=True, slots=True)
class MountMappingEntry:
    """Pairing of a host directory name with the mount point it backs."""

    host_id: str
    mount_point: MountPoint

    def __post_init__(self) -> None:
        object.__setattr__(self, "host_id", _as_host_id(self.host_id, "MountMappingEntry.host_id"))
        if not isinstance(self.mount_point, MountPoint):
            _fail(
                "MountMappingEntry.mount_point",
                f"expected MountPoint, got {type(self.mount_point).__name__}",
            )

    def to_json_value(self) -> list[JSONValue]:
        return [self.host_id, self.mount_point.to_dict()]


@dataclass(frozen=True, slots=True)
class MountMapping:
    """Ordered mount mapping persisted as ``mounts.json``.

    Order is resolution priority; it must survive storage unchanged, so the
    mapping serializes as a JSON array of ``[host_id, mount_point]`` pairs.
    """

    entries: tuple[MountMappingEntry, ...] = ()

    def __post_init__(self) -> None:
        entries = tuple(self.entries)
        seen: set[str] = set()
        for index, entry in enumerate(entries):
            if entry.host_id in seen:
                _fail(f"MountMapping[{index}]", f"duplicate host id {entry.host_id!r}")
            seen.add(entry.host_id)
        object.__setattr__(self, "entries", entries)

    def __iter__(self) -> Iterator[MountMappingEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def append(self, entry: MountMappingEntry) -> MountMapping:
        """Return a new mapping with ``entry`` added last."""

        return MountMapping(entries=(*self.entries, entry))

    def to_json(self) -> str:
        payload = [entry.to_json_value() for entry in self.entries]
        return json.dumps(payload, indent=_PRETTY_INDENT, ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str | bytes) -> MountMapping:
        items = _as_sequence(_parse_json(raw, "MountMapping"), "MountMapping")
        entries: list[MountMappingEntry] = []
        for index, item in enumerate(items):
            path = f"MountMapping[{index}]"
            pair = _as_sequence(item, path)
            if len(pair) != 2:
                _fail(path, f"expected [host_id, mount_point] pair, got {len(pair)} item(s)")
            entries.append(
                MountMappingEntry(
                    host_id=_as_host_id(pair[0], f"{path}[0]"),
                    mount_point=_parse_mount_point(pair[1], f"{path}[1]"),
                )
            )
        return cls(entries=tuple(entries))


@dataclass(frozen=True, slots=True)
class ResolveResult:
    """Outcome of resolving a guest path; ``host_path is None`` means unresolved."""

    host_path: str | None = None

    @property
    def resolved(self) -> bool:
        return self.host_path is not None

    def to_json_value(self) -> JSONValue:
        if self.host_path is None:
            return "unresolvedPath"
        return {"resolvedPath": self.host_path}

    def to_json(self) -> str:
        return json.dumps(self.to_json_value(), indent=_PRETTY_INDENT, ensure_ascii=False)


def _fail(path: str, message: str) -> NoReturn:
    raise MalformedDataError(f"{path}: {message}")


def _canonical_json(value: JSONValue) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _parse_json(raw: str | bytes, path: str) -> object:
    if not isinstance(raw, (str, bytes, bytearray)):
        _fail(path, f"expected JSON text, got {type(raw).__name__}")
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        _fail(path, f"invalid JSON: {exc}")


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str] | None = None,
    known: set[str] | frozenset[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    if known is not None:
        expected = set(known) | set(required or ())
        ignored = sorted(key for key in parsed if key not in expected)
        if ignored:
            logger.debug("ignoring unknown fields", extra={"model": path, "fields": ignored})

    missing = sorted(key for key in (required or ()) if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")

    return parsed


def _as_str(value: object, path: str, *, strip: bool = True, max_len: int = _MAX_TEXT) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip() if strip else value
    if not normalized:
        _fail(path, "must not be empty")
    if len(normalized) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return normalized


def _as_path_text(value: object, path: str) -> str:
    parsed = _as_str(value, path, strip=False)
    if "\x00" in parsed:
        _fail(path, "must not contain NUL bytes")
    return parsed


def _as_host_id(value: object, path: str) -> str:
    parsed = _as_str(value, path, strip=False, max_len=255)
    components = list(iter_components(parsed))
    # Joined directly onto the working directory: exactly one plain name.
    if len(components) != 1 or components[0].kind is not ComponentKind.NORMAL:
        _fail(path, f"host id {parsed!r} must be a single plain directory name")
    return parsed


def _as_access(value: object, path: str) -> MountAccess:
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return MountAccess(value)
    except ValueError:
        allowed = ", ".join(sorted(item.value for item in MountAccess))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_sequence(value: object, path: str) -> list[object]:
    if not isinstance(value, (list, tuple)):
        _fail(path, f"expected array, got {type(value).__name__}")
    if len(value) > _MAX_COLLECTION:
        _fail(path, f"too many items (>{_MAX_COLLECTION})")
    return list(value)


def _parse_mount_point(value: object, path: str) -> MountPoint:
    parsed = _expect_object(value, path)
    if "path" in parsed:
        parsed = _expect_object(parsed, path, required={"path"}, known=set())
        return MountPoint(path=_as_path_text(parsed["path"], f"{path}.path"))

    tags = sorted(parsed)
    if len(tags) != 1:
        _fail(path, f"expected {{'path': ...}} or a single access tag, got fields {tags}")
    tag = tags[0]
    return MountPoint(
        path=_as_path_text(parsed[tag], f"{path}.{tag}"),
        access=_as_access(tag, path),
    )


def _parse_entry_point(value: object, path: str) -> EntryPoint:
    parsed = _expect_object(value, path, required={"id", "wasm_path"}, known=set())
    return EntryPoint(
        id=_as_str(parsed["id"], f"{path}.id", strip=False),
        wasm_path=_as_path_text(parsed["wasm_path"], f"{path}.wasm_path"),
    )


__all__ = [
    "CanonicalModel",
    "EntryPoint",
    "JSONValue",
    "MalformedDataError",
    "Manifest",
    "MountAccess",
    "MountMapping",
    "MountMappingEntry",
    "MountPoint",
    "ResolveResult",
]

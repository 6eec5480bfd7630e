"""
wasm-task-orchestrator — runtime config loader.

File: src/wasm_task_orchestrator/config/loader.py
Last updated: 2026-10-16

Purpose
- Build the effective runtime config by stacking layers over the built-in
  defaults: ``wasm-task.toml``, then ``WASM_TASK_*`` environment variables, then
  CLI overrides. Later layers win.

Functional requirements
- A missing default config file is not an error; a missing explicit one is.
- Every layer is validated after it is applied, so the error names the layer
  that introduced the bad value.
- ``observability.log_dir`` is resolved against the config file's directory.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any, Final, Literal, NamedTuple

from wasm_task_orchestrator.config.schema import (
    PATH_FIELDS,
    ConfigValidationError,
    assert_valid_config,
    default_config,
    merge_config,
)
from wasm_task_orchestrator.constants import DEFAULT_CONFIG_FILE, ENV_PREFIX

_ScalarKind = Literal["str", "int"]

# Fields whose default is ``None`` still get an environment variable.
_NULLABLE_FIELDS: Final[tuple[tuple[str, ...], ...]] = (("observability", "log_dir"),)


class _EnvBinding(NamedTuple):
    name: str
    path: tuple[str, ...]
    kind: _ScalarKind


class ConfigLoadError(ValueError):
    """Raised when a config layer cannot be read or coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config (CLI > env > file > defaults)."""

    source = _locate_config_file(config_path)
    layers: tuple[tuple[str, Mapping[str, object]], ...] = (
        (f"file {source}", _read_toml(source, required=config_path is not None)),
        ("environment", _env_layer(os.environ if environ is None else environ)),
        ("command line", _cli_layer(cli_overrides or {})),
    )

    effective: dict[str, Any] = assert_valid_config(default_config())
    for label, payload in layers:
        if not payload:
            continue
        try:
            effective = assert_valid_config(merge_config(effective, payload))
        except ConfigValidationError as exc:
            exc.add_note(f"while applying config from {label}")
            raise

    return assert_valid_config(normalize_paths(effective, base_dir=source.parent))


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Return a copy of ``config`` with path fields made absolute under ``base_dir``."""

    out = merge_config({}, config)
    for path in PATH_FIELDS:
        *parents, leaf = path
        section: Any = out
        for key in parents:
            section = section.get(key) if isinstance(section, dict) else None
        if isinstance(section, dict) and isinstance(section.get(leaf), str):
            section[leaf] = _absolute_posix(section[leaf], base_dir)
    return out


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Return deterministic JSON dump of the effective config."""

    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_bindings() -> tuple[_EnvBinding, ...]:
    """Environment variables understood by the loader, sorted by name."""

    bindings = {binding.name: binding for binding in _scalar_bindings(default_config())}
    for path in _NULLABLE_FIELDS:
        name = _env_name(path)
        bindings.setdefault(name, _EnvBinding(name=name, path=path, kind="str"))
    return tuple(bindings[name] for name in sorted(bindings))


def _locate_config_file(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.is_file():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _env_layer(environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for binding in _env_bindings():
        raw = environ.get(binding.name)
        if raw is not None:
            _assign(layer, binding.path, _coerce(raw.strip(), binding))
    return layer


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted in sorted(overrides):
        value = overrides[dotted]
        if value is None:
            continue
        path = tuple(part for part in dotted.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        _assign(layer, path, value)
    return layer


def _scalar_bindings(
    payload: Mapping[str, object], prefix: tuple[str, ...] = ()
) -> Iterator[_EnvBinding]:
    for key, value in payload.items():
        path = (*prefix, key)
        if isinstance(value, Mapping):
            yield from _scalar_bindings(value, path)
        elif isinstance(value, int) and not isinstance(value, bool):
            yield _EnvBinding(name=_env_name(path), path=path, kind="int")
        elif isinstance(value, str):
            yield _EnvBinding(name=_env_name(path), path=path, kind="str")


def _coerce(value: str, binding: _EnvBinding) -> object:
    if binding.kind == "str":
        return value
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigLoadError(
            f"{binding.name} -> {'.'.join(binding.path)} must be an integer"
        ) from exc


def _assign(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    *parents, leaf = path
    for key in parents:
        child = target.get(key)
        if not isinstance(child, dict):
            child = target[key] = {}
        target = child
    target[leaf] = value


def _absolute_posix(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


def _env_name(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "load_config",
    "normalize_paths",
]

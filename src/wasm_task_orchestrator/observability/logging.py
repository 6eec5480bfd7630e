"""Structured logging setup with JSON-lines or text output on stderr."""

from __future__ import annotations

import contextvars
import json
import logging
import math
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final, Literal

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_DEFAULT_LOGGER_NAME: Final[str] = "wasm_task_orchestrator"
_LOG_FILE_SUFFIX: Final[str] = ".jsonl"
_NON_FINITE_VALUE: Final[str] = "<non-finite>"

_CORRELATION_KEYS: Final[tuple[str, ...]] = (
    "command",
    "image",
    "workdir",
    "entry_point",
)

_STANDARD_LOG_RECORD_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
    }
)

_CorrelationState = tuple[tuple[str, str], ...]
_CORRELATION_CONTEXT: contextvars.ContextVar[_CorrelationState] = contextvars.ContextVar(
    "wasm_task_observability_correlation", default=()
)

_ACTIVE_HANDLE_LOCK = threading.Lock()
_ACTIVE_HANDLE: StructuredLoggingHandle | None = None


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for one command's structured logging."""

    command: str
    level: int | str = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_dir: Path | str | None = None
    logger_name: str = _DEFAULT_LOGGER_NAME
    log_to_stderr: bool = True


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    command: str,
    level: int | str | None = None,
    logger_name: str = _DEFAULT_LOGGER_NAME,
) -> logging.Logger:
    """Configure structured logging from an ``[observability]`` mapping.

    Parameters
    ----------
    observability_config:
        Mapping compatible with ``[observability]`` settings in ``wasm-task.toml``.
    command:
        Name of the CLI command being run; bound as correlation context and used
        as the log file stem when ``log_dir`` is configured.
    level:
        Optional override for ``log_level``.
    logger_name:
        Logger name to configure.
    """

    cfg = dict(observability_config or {})
    raw_level: object = level if level is not None else cfg.get("log_level", "INFO")
    resolved_level: int | str = raw_level if isinstance(raw_level, (int, str)) else "INFO"
    raw_format = cfg.get("log_format", "json")
    log_format: Literal["json", "text"] = "text" if raw_format == "text" else "json"
    raw_log_dir = cfg.get("log_dir")
    log_dir = raw_log_dir if isinstance(raw_log_dir, (Path, str)) else None

    handle = setup_structured_logging(
        LoggingConfig(
            command=command,
            level=resolved_level,
            log_format=log_format,
            log_dir=log_dir,
            logger_name=logger_name,
        )
    )
    return handle.logger


class _JsonLineFormatter(logging.Formatter):
    """Formatter that emits canonical JSON objects per log line."""

    def __init__(self, *, base_context: Mapping[str, str]) -> None:
        super().__init__()
        self._base_context = dict(base_context)

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _iso8601z_from_epoch(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation = _merge_correlation_context(record, self._base_context)
        for key, value in sorted(correlation.items()):
            event[key] = value

        extras = _extract_extra_fields(record)
        if extras:
            event["fields"] = extras

        if record.exc_info is not None:
            event["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            event["stack"] = str(record.stack_info)

        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class _TextLineFormatter(logging.Formatter):
    """Human-readable single-line formatter with trailing ``key=value`` fields."""

    def __init__(self, *, base_context: Mapping[str, str]) -> None:
        super().__init__()
        self._base_context = dict(base_context)

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            _iso8601z_from_epoch(record.created),
            record.levelname,
            f"{record.name}:",
            record.getMessage(),
        ]
        merged: dict[str, JSONValue] = dict(
            _merge_correlation_context(record, self._base_context)
        )
        merged.update(_extract_extra_fields(record))
        for key in sorted(merged):
            value = merged[key]
            rendered = value if isinstance(value, str) else json.dumps(value, sort_keys=True)
            parts.append(f"{key}={rendered}")
        line = " ".join(parts)
        if record.exc_info is not None:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class StructuredLoggingHandle:
    """Runtime handle for an active structured logging setup."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        command: str,
        log_path: Path | None,
        handlers: tuple[logging.Handler, ...],
    ) -> None:
        self.logger = logger
        self.command = command
        self.log_path = log_path
        self._handlers = handlers
        self._shutdown_lock = threading.Lock()
        self._is_shutdown = False

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    def flush(self) -> None:
        for handler in self._handlers:
            handler.flush()

    def shutdown(self) -> None:
        with self._shutdown_lock:
            if self._is_shutdown:
                return
            for handler in self._handlers:
                self.logger.removeHandler(handler)
                handler.flush()
                handler.close()
            self._is_shutdown = True


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Configure structured logging for a single command invocation."""
    _shutdown_previous_active_handle()

    command = _validate_non_empty(config.command, "command")
    logger_name = _validate_non_empty(config.logger_name, "logger_name")
    level = _parse_log_level(config.level)

    base_context = {"command": command}
    formatter: logging.Formatter
    if config.log_format == "text":
        formatter = _TextLineFormatter(base_context=base_context)
    elif config.log_format == "json":
        formatter = _JsonLineFormatter(base_context=base_context)
    else:
        raise ValueError(f"unsupported log format {config.log_format!r}")

    handlers: list[logging.Handler] = []
    if config.log_to_stderr:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(level)
        stderr_handler.setFormatter(formatter)
        handlers.append(stderr_handler)

    log_path: Path | None = None
    if config.log_dir is not None:
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / f"{command}{_LOG_FILE_SUFFIX}"
        # Files always carry JSON lines so they stay machine-readable.
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(_JsonLineFormatter(base_context=base_context))
        handlers.append(file_handler)

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.propagate = False

    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    for handler in handlers:
        logger.addHandler(handler)
    if not handlers:
        logger.addHandler(logging.NullHandler())

    handle = StructuredLoggingHandle(
        logger=logger,
        command=command,
        log_path=log_path,
        handlers=tuple(handlers),
    )

    with _ACTIVE_HANDLE_LOCK:
        global _ACTIVE_HANDLE
        _ACTIVE_HANDLE = handle

    return handle


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Flush and close all sinks of ``handle`` (default: the active handle)."""
    resolved = handle if handle is not None else get_active_logging_handle()
    if resolved is None:
        return

    resolved.shutdown()

    with _ACTIVE_HANDLE_LOCK:
        global _ACTIVE_HANDLE
        if _ACTIVE_HANDLE is resolved:
            _ACTIVE_HANDLE = None


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    """Return the currently active handle, if one exists."""
    with _ACTIVE_HANDLE_LOCK:
        return _ACTIVE_HANDLE


def get_logger(name: str | None = None) -> logging.Logger:
    """Return the package logger or one of its children."""
    if not name:
        return logging.getLogger(_DEFAULT_LOGGER_NAME)
    if name == _DEFAULT_LOGGER_NAME or name.startswith(f"{_DEFAULT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_DEFAULT_LOGGER_NAME}.{name}")


def get_correlation_context() -> dict[str, str]:
    """Return the current correlation context as a plain dictionary."""
    return dict(_CORRELATION_CONTEXT.get())


def set_correlation_fields(**fields: str | None) -> contextvars.Token[_CorrelationState]:
    """Set correlation fields for the active context and return a reset token."""
    state = get_correlation_context()
    for key, value in fields.items():
        key_name = _validate_non_empty(key, "correlation key")
        if value is None:
            state.pop(key_name, None)
            continue
        state[key_name] = _validate_non_empty(value, "correlation value")
    return _CORRELATION_CONTEXT.set(tuple(state.items()))


def reset_correlation_fields(token: contextvars.Token[_CorrelationState]) -> None:
    """Reset correlation context to a previous token."""
    _CORRELATION_CONTEXT.reset(token)


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Temporarily bind correlation fields for log records in scope."""
    token = set_correlation_fields(**fields)
    try:
        yield
    finally:
        reset_correlation_fields(token)


def _shutdown_previous_active_handle() -> None:
    existing = get_active_logging_handle()
    if existing is not None:
        existing.shutdown()

    with _ACTIVE_HANDLE_LOCK:
        global _ACTIVE_HANDLE
        _ACTIVE_HANDLE = None


def _validate_non_empty(value: str, label: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{label} must be a string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{label} must not be empty")
    return normalized


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value

    if not isinstance(value, str):
        raise ValueError(f"level must be int or str, got {type(value).__name__}")

    normalized = value.strip().upper()
    parsed = logging.getLevelName(normalized)
    if isinstance(parsed, int):
        return parsed

    raise ValueError(f"unsupported logging level {value!r}")


def _iso8601z_from_epoch(epoch_seconds: float) -> str:
    timestamp = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _merge_correlation_context(
    record: logging.LogRecord,
    base_context: Mapping[str, str],
) -> dict[str, str]:
    merged = dict(base_context)
    merged.update(get_correlation_context())

    for key in _CORRELATION_KEYS:
        value = getattr(record, key, None)
        if isinstance(value, str):
            stripped = value.strip()
            if stripped:
                merged[key] = stripped

    return merged


def _extract_extra_fields(record: logging.LogRecord) -> dict[str, JSONValue]:
    fields: dict[str, JSONValue] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_LOG_RECORD_FIELDS:
            continue
        if key in _CORRELATION_KEYS:
            continue
        if key.startswith("_"):
            continue
        fields[key] = _normalize_json_value(value)
    return fields


def _normalize_json_value(value: object) -> JSONValue:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value):
            return value
        return _NON_FINITE_VALUE
    if isinstance(value, str):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        output: dict[str, JSONValue] = {}
        for key, item in value.items():
            output[str(key)] = _normalize_json_value(item)
        return output
    if isinstance(value, (list, tuple)):
        return [_normalize_json_value(item) for item in value]
    return repr(value)


__all__ = [
    "JSONScalar",
    "JSONValue",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "correlation_scope",
    "get_active_logging_handle",
    "get_correlation_context",
    "get_logger",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]

"""Command-line interface router for wasm-task."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import yaml

from wasm_task_orchestrator import __version__
from wasm_task_orchestrator.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
)
from wasm_task_orchestrator.config.schema import LOG_LEVELS
from wasm_task_orchestrator.constants import PROGRAM_NAME
from wasm_task_orchestrator.domain.models import MalformedDataError, Manifest
from wasm_task_orchestrator.domain.paths import PathEscapeError
from wasm_task_orchestrator.image import ImageArchiveError, load_manifest
from wasm_task_orchestrator.main import ExitCode
from wasm_task_orchestrator.observability import (
    correlation_scope,
    get_logger,
    setup_logging,
    shutdown_logging,
)
from wasm_task_orchestrator.sandbox import (
    DryRunSandbox,
    InvalidEntryPointError,
    SandboxEngine,
    SandboxError,
    SandboxFactory,
    engine_failure_step,
    load_engine_factory,
    run_entry_point,
    select_entry_point,
)
from wasm_task_orchestrator.ui.render import CLIRenderer, create_renderer
from wasm_task_orchestrator.workdir import (
    MappingNotFoundError,
    MountMappingStore,
    provision_mounts,
    resolve_destination,
)

logger = get_logger("ui.cli")

# Errors meaning the image, its manifest, or the working directory's mapping
# cannot be used as given.
_INPUT_ERRORS: Final[tuple[type[Exception], ...]] = (
    ImageArchiveError,
    MalformedDataError,
    PathEscapeError,
    InvalidEntryPointError,
    MappingNotFoundError,
)


# Not frozen: contextlib assigns ``__traceback__`` when re-raising through a
# generator-based context manager.
@dataclass(eq=False)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = int(ExitCode.TASK_FAILED)

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog=PROGRAM_NAME,
        description=(
            "wasm-task — provision, resolve and run packaged WASM tasks.\n\n"
            "Common workflows:\n"
            "  wasm-task validate-image task.zip\n"
            "  wasm-task deploy -t task.zip -w ./work\n"
            "  wasm-task exec --image task.zip --workdir ./work run --flag\n"
            "  wasm-task resolve-path --image task.zip --workdir ./work /out/result.txt\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ./wasm-task.toml if present).",
    )
    common.add_argument(
        "--log-level",
        dest="log_level",
        default=None,
        type=str.upper,
        choices=LOG_LEVELS,
        help="Override observability.log_level.",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Log at DEBUG level unless --log-level is given.",
    )

    engine = argparse.ArgumentParser(add_help=False)
    engine.add_argument(
        "--engine",
        dest="engine",
        default=None,
        help="Override sandbox.engine ('dry-run' or 'package.module:factory').",
    )

    task = argparse.ArgumentParser(add_help=False)
    task.add_argument("--image", required=True, help="Path to the task image archive.")
    task.add_argument("--workdir", required=True, help="Provisioned working directory.")
    task.add_argument(
        "--spec",
        default=None,
        help="Task spec path supplied by the calling agent (recorded, not interpreted).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # validate-image ------------------------------------------------------
    validate_parser = subparsers.add_parser(
        "validate-image",
        parents=[common],
        help="Load and print an image's manifest",
    )
    validate_parser.add_argument("image_path", help="Path to the task image archive.")
    validate_parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Emit canonical JSON instead of the YAML view.",
    )
    validate_parser.set_defaults(handler=_cmd_validate_image)

    # deploy --------------------------------------------------------------
    deploy_parser = subparsers.add_parser(
        "deploy",
        parents=[common],
        help="Provision mount directories and write mounts.json",
        description=(
            "Create one fresh directory per declared mount point under WORKDIR and\n"
            "persist the mapping. Use an empty working directory per task instance."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    deploy_parser.add_argument(
        "-t", "--task-package", required=True, help="Path to the task image archive."
    )
    deploy_parser.add_argument(
        "-w", "--workdir", required=True, help="Working directory to provision."
    )
    deploy_parser.set_defaults(handler=_cmd_deploy)

    # open ----------------------------------------------------------------
    open_parser = subparsers.add_parser(
        "open",
        parents=[common, engine, task],
        help="Run the manifest's main entry point",
    )
    open_parser.set_defaults(handler=_cmd_open)

    # exec ----------------------------------------------------------------
    exec_parser = subparsers.add_parser(
        "exec",
        parents=[common, engine, task],
        help="Run a named entry point with program arguments",
    )
    exec_parser.add_argument("prog", help="Entry point id (exact, case-sensitive).")
    exec_parser.add_argument(
        "args",
        nargs=argparse.REMAINDER,
        help="Arguments passed to the entry point.",
    )
    exec_parser.set_defaults(handler=_cmd_exec)

    # resolve-path --------------------------------------------------------
    resolve_parser = subparsers.add_parser(
        "resolve-path",
        parents=[common, task],
        help="Map a path inside the container to its host location",
    )
    resolve_parser.add_argument("destination", help="Path inside the container.")
    resolve_parser.set_defaults(handler=_cmd_resolve_path)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return int(ExitCode.USAGE_ERROR)

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return int(exc.exit_code)
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_validate_image(args: argparse.Namespace) -> int:
    image = _require_path(getattr(args, "image_path", None), "image")

    with _command_session(args, image=image) as config:
        entry = _config_str(config, "image", "validation_manifest_entry")
        with _task_errors():
            manifest = load_manifest(image, entry=entry)
        logger.info(
            "validated image manifest",
            extra={"manifest_entry": entry, "manifest": manifest.to_dict()},
        )

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "validate-image",
                "image": str(image),
                "manifest_entry": entry,
                "manifest": manifest.to_dict(),
            }
        )
        return 0

    renderer = _get_renderer(args)
    _render_manifest(renderer, manifest)
    return 0


def _cmd_deploy(args: argparse.Namespace) -> int:
    image = _require_path(getattr(args, "task_package", None), "task package")
    workdir = _require_path(getattr(args, "workdir", None), "workdir")

    with _command_session(args, image=image, workdir=workdir) as config:
        entry = _config_str(config, "image", "manifest_entry")
        with _task_errors():
            manifest = load_manifest(image, entry=entry)
            store = MountMappingStore(workdir)
            try:
                mapping = provision_mounts(manifest.mount_points, store)
            except OSError as exc:
                raise CLIError(f"provisioning failed: {exc}") from exc

    renderer = _get_renderer(args)
    renderer.table(
        ["MOUNT POINT", "HOST DIRECTORY"],
        [[entry.mount_point.path, str(workdir / entry.host_id)] for entry in mapping],
        title=f"Provisioned {len(mapping)} mount(s) in {workdir}",
    )
    if renderer.verbose:
        renderer.text(f"Mapping written to {store.path}")
    return 0


def _cmd_open(args: argparse.Namespace) -> int:
    image = _require_path(getattr(args, "image", None), "image")
    workdir = _require_path(getattr(args, "workdir", None), "workdir")

    with _command_session(args, image=image, workdir=workdir) as config:
        _note_spec(args)
        entry = _config_str(config, "image", "manifest_entry")
        factory = _engine_factory(config)
        with _task_errors():
            manifest = load_manifest(image, entry=entry)
            if manifest.main is None:
                logger.info("manifest declares no main entry point; nothing to run")
                return 0
            with correlation_scope(entry_point=manifest.main.id):
                sandbox = run_entry_point(
                    image,
                    MountMappingStore(workdir),
                    manifest.main,
                    manifest,
                    engine_factory=factory,
                )

    _render_engine_calls(_get_renderer(args), sandbox)
    return 0


def _cmd_exec(args: argparse.Namespace) -> int:
    image = _require_path(getattr(args, "image", None), "image")
    workdir = _require_path(getattr(args, "workdir", None), "workdir")
    prog = getattr(args, "prog", None)
    if not isinstance(prog, str):
        raise CLIError("invalid entry point id: expected string", exit_code=ExitCode.USAGE_ERROR)
    exec_args = _string_sequence(getattr(args, "args", None))

    with _command_session(args, image=image, workdir=workdir) as config:
        _note_spec(args)
        entry = _config_str(config, "image", "manifest_entry")
        factory = _engine_factory(config)
        with _task_errors():
            manifest = load_manifest(image, entry=entry)
            entry_point = select_entry_point(manifest, prog)
            with correlation_scope(entry_point=entry_point.id):
                sandbox = run_entry_point(
                    image,
                    MountMappingStore(workdir),
                    entry_point,
                    manifest,
                    engine_factory=factory,
                    exec_args=exec_args,
                )

    _render_engine_calls(_get_renderer(args), sandbox)
    return 0


def _cmd_resolve_path(args: argparse.Namespace) -> int:
    image = _require_path(getattr(args, "image", None), "image")
    workdir = _require_path(getattr(args, "workdir", None), "workdir")
    destination = getattr(args, "destination", None)
    if not isinstance(destination, str):
        raise CLIError("invalid destination: expected string", exit_code=ExitCode.USAGE_ERROR)

    with _command_session(args, image=image, workdir=workdir):
        _note_spec(args)
        logger.info("resolving container path", extra={"destination": destination})
        with _task_errors():
            mapping = MountMappingStore(workdir).read()
            result = resolve_destination(mapping, workdir, destination)

    print(result.to_json())
    return 0


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(verbose=_flag(args, "verbose"))


def _render_manifest(renderer: CLIRenderer, manifest: Manifest) -> None:
    rendered = yaml.safe_dump(
        manifest.to_dict(),
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=False,
        width=120,
    )
    renderer.text(rendered.rstrip("\n"))


def _render_engine_calls(renderer: CLIRenderer, sandbox: SandboxEngine) -> None:
    if not isinstance(sandbox, DryRunSandbox):
        return
    renderer.table(
        ["OPERATION", "ARGUMENTS"],
        [
            [call.operation, " ".join(str(item) for item in call.arguments)]
            for call in sandbox.calls
        ],
        title="Dry-run sandbox calls:",
    )


# ---------------------------------------------------------------------------
# Helpers — config, logging, error translation
# ---------------------------------------------------------------------------


@contextmanager
def _command_session(
    args: argparse.Namespace,
    *,
    image: Path,
    workdir: Path | None = None,
) -> Iterator[dict[str, Any]]:
    """Load config, configure logging and bind correlation for one command."""

    command = _require_str(getattr(args, "command", None), "command")
    config = _load_effective_config(args)
    observability = config.get("observability")
    setup_logging(
        observability if isinstance(observability, Mapping) else None,
        command=command,
    )
    try:
        with correlation_scope(
            image=str(image),
            workdir=None if workdir is None else str(workdir),
        ):
            logger.debug("command started", extra={"argv_command": command})
            logger.debug("effective config", extra={"config": dump_effective_config(config)})
            yield config
    except CLIError as exc:
        logger.error("command failed", extra={"error": str(exc), "exit_code": exc.exit_code})
        raise
    finally:
        shutdown_logging()


@contextmanager
def _task_errors() -> Iterator[None]:
    """Translate task failures into ``CLIError`` with their exit codes."""

    try:
        yield
    except CLIError:
        raise
    except _INPUT_ERRORS as exc:
        raise CLIError(str(exc), exit_code=ExitCode.INPUT_ERROR) from exc
    except Exception as exc:
        step = engine_failure_step(exc)
        if step is None:
            raise
        raise CLIError(f"sandbox {step} failed: {exc}", exit_code=ExitCode.TASK_FAILED) from exc


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    overrides: dict[str, object] = {}

    log_level = _optional_str(getattr(args, "log_level", None))
    if log_level is not None:
        overrides["observability.log_level"] = log_level
    elif _flag(args, "verbose"):
        overrides["observability.log_level"] = "DEBUG"

    engine = _optional_str(getattr(args, "engine", None))
    if engine is not None:
        overrides["sandbox.engine"] = engine

    try:
        return load_config(config_path, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=ExitCode.USAGE_ERROR) from exc


def _engine_factory(config: Mapping[str, object]) -> SandboxFactory:
    reference = _config_str(config, "sandbox", "engine")
    try:
        factory = load_engine_factory(reference)
    except SandboxError as exc:
        raise CLIError(str(exc), exit_code=ExitCode.USAGE_ERROR) from exc
    logger.debug("selected sandbox engine", extra={"engine": reference})
    return factory


def _config_str(config: Mapping[str, object], section: str, key: str) -> str:
    values = config.get(section)
    if not isinstance(values, Mapping):
        raise CLIError(f"missing config section: {section}", exit_code=ExitCode.USAGE_ERROR)
    value = values.get(key)
    if not isinstance(value, str) or not value:
        raise CLIError(f"missing config value: {section}.{key}", exit_code=ExitCode.USAGE_ERROR)
    return value


def _note_spec(args: argparse.Namespace) -> None:
    spec = _optional_str(getattr(args, "spec", None))
    if spec is not None:
        logger.info("task spec supplied; not interpreted", extra={"spec": spec})


# ---------------------------------------------------------------------------
# Helpers — argument parsing
# ---------------------------------------------------------------------------


def _require_str(value: object, name: str) -> str:
    if not isinstance(value, str):
        raise CLIError(f"invalid {name}: expected string", exit_code=ExitCode.USAGE_ERROR)
    cleaned = value.strip()
    if not cleaned:
        raise CLIError(f"invalid {name}: value cannot be empty", exit_code=ExitCode.USAGE_ERROR)
    return cleaned


def _require_path(value: object, name: str) -> Path:
    return Path(_require_str(value, name)).expanduser()


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise CLIError("invalid optional string argument", exit_code=ExitCode.USAGE_ERROR)
    cleaned = value.strip()
    return cleaned or None


def _flag(args: argparse.Namespace, name: str) -> bool:
    value = getattr(args, name, False)
    return bool(value)


def _string_sequence(value: object) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise CLIError("invalid sequence argument", exit_code=ExitCode.USAGE_ERROR)
    items: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise CLIError("invalid sequence argument", exit_code=ExitCode.USAGE_ERROR)
        items.append(item)
    return tuple(items)


__all__ = ["CLIError", "build_parser", "run_cli"]

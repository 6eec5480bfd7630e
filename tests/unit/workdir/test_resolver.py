"""Unit tests for destination resolution through the mount mapping."""

from __future__ import annotations

from pathlib import Path

import pytest

from wasm_task_orchestrator.domain.models import (
    MountAccess,
    MountMapping,
    MountMappingEntry,
    MountPoint,
)
from wasm_task_orchestrator.domain.paths import PathEscapeError
from wasm_task_orchestrator.workdir import resolve_destination

WORKDIR = Path("/work")


def _mapping(*pairs: tuple[str, str]) -> MountMapping:
    return MountMapping(
        entries=tuple(
            MountMappingEntry(host_id=host_id, mount_point=MountPoint(path=path))
            for host_id, path in pairs
        )
    )


def test_first_declared_match_wins_over_longer_prefix() -> None:
    mapping = _mapping(("id1", "/data"), ("id2", "/data/cache"))

    result = resolve_destination(mapping, WORKDIR, "/data/cache/x")

    assert result.host_path == str(WORKDIR / "id1" / "cache" / "x")


def test_later_mount_matches_when_earlier_does_not() -> None:
    mapping = _mapping(("id1", "/data/cache"), ("id2", "/data"))

    assert resolve_destination(mapping, WORKDIR, "/data/cache/x").host_path == str(
        WORKDIR / "id1" / "x"
    )
    assert resolve_destination(mapping, WORKDIR, "/data/other").host_path == str(
        WORKDIR / "id2" / "other"
    )


def test_mount_root_itself_resolves_to_host_directory() -> None:
    result = resolve_destination(_mapping(("id1", "/out")), WORKDIR, "/out")
    assert result.host_path == f"{WORKDIR / 'id1'}/"


def test_prefix_match_is_component_wise() -> None:
    result = resolve_destination(_mapping(("id1", "/data")), WORKDIR, "/database/x")
    assert not result.resolved
    assert result.to_json() == '"unresolvedPath"'


def test_no_matching_mount_is_unresolved_not_error() -> None:
    result = resolve_destination(_mapping(("id1", "/data")), WORKDIR, "/other")
    assert result.host_path is None


def test_empty_mapping_is_unresolved() -> None:
    assert not resolve_destination(MountMapping(), WORKDIR, "/out").resolved


def test_destinations_are_normalized_before_matching() -> None:
    mapping = _mapping(("id1", "out/"))

    result = resolve_destination(mapping, WORKDIR, "//out/./logs//run.txt")

    assert result.host_path == str(WORKDIR / "id1" / "logs" / "run.txt")


def test_tagged_mount_points_resolve_like_plain_ones() -> None:
    mapping = MountMapping(
        entries=(
            MountMappingEntry(
                host_id="id1", mount_point=MountPoint(path="/out", access=MountAccess.RW)
            ),
        )
    )
    assert resolve_destination(mapping, WORKDIR, "/out/a").host_path == str(
        WORKDIR / "id1" / "a"
    )


def test_root_mount_point_matches_everything() -> None:
    mapping = _mapping(("root", "/"), ("id2", "/out"))
    assert resolve_destination(mapping, WORKDIR, "/out/a").host_path == str(
        WORKDIR / "root" / "out" / "a"
    )


def test_escaping_destination_is_rejected() -> None:
    with pytest.raises(PathEscapeError):
        resolve_destination(_mapping(("id1", "/out")), WORKDIR, "/out/../etc/passwd")


def test_colon_component_is_not_stripped_as_drive() -> None:
    mapping = _mapping(("id1", "/out"))

    assert not resolve_destination(mapping, WORKDIR, "x:/out/secret").resolved
    assert resolve_destination(mapping, WORKDIR, "/out/a:b.txt").host_path == str(
        WORKDIR / "id1" / "a:b.txt"
    )

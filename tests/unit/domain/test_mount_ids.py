"""Unit tests for host mount directory identifiers."""

from __future__ import annotations

import re

import pytest

from wasm_task_orchestrator.domain import ids
from wasm_task_orchestrator.domain.paths import ComponentKind, iter_components

_MOUNT_ID_RE = re.compile(r"mnt-[0-9A-HJKMNP-TV-Z]{26}")


def _ff_bytes(size: int) -> bytes:
    return b"\xff" * size


def test_generate_mount_id_no_collision_10000() -> None:
    generated = {ids.generate_mount_id() for _ in range(10_000)}
    assert len(generated) == 10_000


def test_mount_id_is_prefixed_ulid() -> None:
    mount_id = ids.generate_mount_id(timestamp_ms=123_456, randbytes=_ff_bytes)

    assert mount_id.startswith(f"{ids.MOUNT_ID_PREFIX}-")
    # 123456 ms is "3RJ0" in Crockford Base32; all-ones entropy is 16 "Z"s.
    assert mount_id == "mnt-0000003RJ0" + "Z" * 16
    assert _MOUNT_ID_RE.fullmatch(ids.generate_mount_id())


def test_mount_ids_sort_by_creation_time() -> None:
    earlier = ids.generate_mount_id(timestamp_ms=1_000, randbytes=_ff_bytes)
    later = ids.generate_mount_id(timestamp_ms=1_001, randbytes=lambda size: b"\x00" * size)
    assert earlier < later


def test_mount_id_is_a_single_plain_directory_name() -> None:
    components = list(iter_components(ids.generate_mount_id()))
    assert [item.kind for item in components] == [ComponentKind.NORMAL]


def test_generate_mount_id_rejects_bad_inputs() -> None:
    with pytest.raises(ValueError, match="timestamp_ms out of range"):
        ids.generate_mount_id(timestamp_ms=ids.MAX_TIMESTAMP_MS + 1)
    with pytest.raises(ValueError, match="exactly 10 bytes"):
        ids.generate_mount_id(randbytes=lambda size: b"\x00" * (size - 1))

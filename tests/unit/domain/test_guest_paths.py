"""
wasm-task-orchestrator — unit tests for guest path normalization

File: tests/unit/domain/test_guest_paths.py
Last updated: 2026-10-16

Purpose
- Validate fail-closed normalization and component-wise prefix handling.

What this test file should cover
- Root markers are discarded; plain names (including ``c:``-style ones) are kept.
- Traversal and unclassifiable components reject the whole path.
- Prefix tests never match on raw string prefixes.
"""

from __future__ import annotations

from pathlib import PurePosixPath

import pytest
from hypothesis import given
from hypothesis import strategies as st

from wasm_task_orchestrator.domain.paths import (
    ComponentKind,
    PathComponent,
    PathEscapeError,
    is_prefix,
    iter_components,
    normalize_path,
    strip_prefix,
)

_NAMES = st.text(
    alphabet=st.characters(exclude_characters="/\\\x00", exclude_categories=("Cs",)),
    min_size=1,
    max_size=12,
).filter(lambda name: name not in {".", ".."})


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("/a/b", PurePosixPath("a/b")),
        ("a/b", PurePosixPath("a/b")),
        ("//a///b//", PurePosixPath("a/b")),
        ("/a/./b", PurePosixPath("a/b")),
        ("a/./b/.", PurePosixPath("a/b")),
        ("a:b.wasm", PurePosixPath("a:b.wasm")),
        ("C:/work/out", PurePosixPath("C:/work/out")),
        ("/out/.hidden/...", PurePosixPath("out/.hidden/...")),
    ],
)
def test_normalize_path_keeps_plain_names(raw: str, expected: PurePosixPath) -> None:
    assert normalize_path(raw) == expected
    assert not normalize_path(raw).is_absolute()


@pytest.mark.parametrize("raw", ["/", "///", ""])
def test_root_only_paths_normalize_to_empty_relative_path(raw: str) -> None:
    normalized = normalize_path(raw)
    assert normalized.parts == ()
    assert not normalized.is_absolute()


@pytest.mark.parametrize(
    "raw",
    [
        "..",
        "/..",
        "/a/../b",
        "a/b/..",
        "./a",
        ".",
        "a\\b",
        "/out/na\x00me",
    ],
)
def test_normalize_path_rejects_escaping_components(raw: str) -> None:
    with pytest.raises(PathEscapeError, match="permission denied") as excinfo:
        normalize_path(raw)
    assert isinstance(excinfo.value, PermissionError)
    assert excinfo.value.component.kind is ComponentKind.OTHER


def test_iter_components_classifies_each_component() -> None:
    kinds = [(item.kind, item.text) for item in iter_components("/C:/data/../x")]
    assert kinds == [
        (ComponentKind.ROOT, "/"),
        (ComponentKind.NORMAL, "C:"),
        (ComponentKind.NORMAL, "data"),
        (ComponentKind.OTHER, ".."),
        (ComponentKind.NORMAL, "x"),
    ]


def test_normalize_path_accepts_path_like_objects() -> None:
    assert normalize_path(PurePosixPath("/a/b")) == PurePosixPath("a/b")


def test_prefix_is_component_wise() -> None:
    data = normalize_path("/data")
    assert is_prefix(data, normalize_path("/data/cache/x"))
    assert is_prefix(data, normalize_path("/data"))
    assert not is_prefix(data, normalize_path("/database"))
    assert is_prefix(normalize_path("/"), normalize_path("/anything"))


def test_strip_prefix_returns_remainder() -> None:
    data = normalize_path("/data")
    assert strip_prefix(data, normalize_path("/data/cache/x")) == PurePosixPath("cache/x")
    assert strip_prefix(data, normalize_path("/data")).parts == ()
    with pytest.raises(ValueError, match="does not start with"):
        strip_prefix(data, normalize_path("/database"))


@given(st.lists(_NAMES, max_size=8))
def test_absolute_paths_of_plain_names_become_relative(names: list[str]) -> None:
    normalized = normalize_path("/" + "/".join(names))
    assert normalized.parts == tuple(names)
    assert not normalized.is_absolute()


@given(st.lists(_NAMES, max_size=6), st.lists(_NAMES, max_size=6))
def test_parent_reference_anywhere_is_rejected(head: list[str], tail: list[str]) -> None:
    with pytest.raises(PathEscapeError):
        normalize_path("/" + "/".join([*head, "..", *tail]))


@given(st.lists(_NAMES, max_size=5), st.lists(_NAMES, max_size=5))
def test_strip_prefix_inverts_join(prefix: list[str], rest: list[str]) -> None:
    mount = normalize_path("/" + "/".join(prefix))
    target = normalize_path("/" + "/".join([*prefix, *rest]))
    assert is_prefix(mount, target)
    assert strip_prefix(mount, target).parts == tuple(rest)


@pytest.mark.parametrize("raw", ["a:b.wasm", "x:/out/secret", "C:", "z:"])
def test_colon_names_are_never_drive_prefixes(raw: str) -> None:
    components = list(iter_components(raw))
    assert ComponentKind.PREFIX not in {item.kind for item in components}
    assert components[0] == PathComponent(ComponentKind.NORMAL, raw.split("/")[0])
    assert normalize_path(raw) == PurePosixPath(raw)

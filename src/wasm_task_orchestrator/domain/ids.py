"""Host directory names for provisioned mounts, in the form ``mnt-<ULID>``.

The ULID part is a 48-bit millisecond timestamp followed by 80 random bits,
rendered as 26 uppercase Crockford Base32 characters. Names therefore sort by
creation time and never need a separator or a dot, so each one is a single
plain path component.
"""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable
from typing import Final

MOUNT_ID_PREFIX: Final[str] = "mnt"
MAX_TIMESTAMP_MS: Final[int] = (1 << 48) - 1

_ALPHABET: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_ULID_CHARS: Final[int] = 26
_RANDOM_BYTES: Final[int] = 10
_RANDOM_BITS: Final[int] = _RANDOM_BYTES * 8
_LEAD: Final[str] = f"{MOUNT_ID_PREFIX}-"

RandBytes = Callable[[int], bytes]


def generate_mount_id(
    *, timestamp_ms: int | None = None, randbytes: RandBytes | None = None
) -> str:
    """Return a fresh host directory name for one mount point."""

    ts_ms = time.time_ns() // 1_000_000 if timestamp_ms is None else timestamp_ms
    if not 0 <= ts_ms <= MAX_TIMESTAMP_MS:
        raise ValueError(f"timestamp_ms out of range: expected 0..{MAX_TIMESTAMP_MS}, got {ts_ms}")

    entropy = bytes((randbytes or secrets.token_bytes)(_RANDOM_BYTES))
    if len(entropy) != _RANDOM_BYTES:
        raise ValueError(f"randbytes must return exactly {_RANDOM_BYTES} bytes")

    value = (ts_ms << _RANDOM_BITS) | int.from_bytes(entropy, "big")
    chars: list[str] = []
    for _ in range(_ULID_CHARS):
        chars.append(_ALPHABET[value & 0x1F])
        value >>= 5
    return _LEAD + "".join(reversed(chars))


__all__ = [
    "MAX_TIMESTAMP_MS",
    "MOUNT_ID_PREFIX",
    "RandBytes",
    "generate_mount_id",
]

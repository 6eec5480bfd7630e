"""
wasm-task-orchestrator — task image archive access

File: src/wasm_task_orchestrator/image/archive.py
Last updated: 2026-10-16

Purpose
- Expose a task image (zip container) as a byte oracle keyed by in-archive name.

Functional requirements
- Lookups are exact: no case folding, no path normalization.
- A missing entry raises ``ArchiveEntryNotFoundError``; an unreadable or non-zip
  image raises ``ImageArchiveError``.
"""

from __future__ import annotations

import zipfile
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import os


class ImageArchiveError(RuntimeError):
    """Base error for task image access failures."""


class ArchiveEntryNotFoundError(ImageArchiveError, LookupError):
    """Raised when the image does not contain the requested entry."""

    def __init__(self, image_path: Path, entry_name: str) -> None:
        self.image_path = image_path
        self.entry_name = entry_name
        super().__init__(f"entry not found in image {image_path!s}: {entry_name!r}")


class ImageArchive:
    """Read-only view over an image archive.

    Usable as a context manager; the underlying zip handle is opened on first
    access and closed on exit.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._zip: zipfile.ZipFile | None = None

    @property
    def path(self) -> Path:
        return self._path

    def __enter__(self) -> ImageArchive:
        self._open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._zip is not None:
            self._zip.close()
            self._zip = None

    def read_bytes(self, entry_name: str) -> bytes:
        """Return the raw bytes of ``entry_name``."""

        archive = self._open()
        try:
            info = archive.getinfo(entry_name)
        except KeyError as exc:
            raise ArchiveEntryNotFoundError(self._path, entry_name) from exc
        if info.is_dir():
            raise ArchiveEntryNotFoundError(self._path, entry_name)
        try:
            return archive.read(info)
        except (zipfile.BadZipFile, OSError) as exc:
            raise ImageArchiveError(
                f"unable to read {entry_name!r} from image {self._path!s}: {exc}"
            ) from exc

    def _open(self) -> zipfile.ZipFile:
        if self._zip is None:
            try:
                self._zip = zipfile.ZipFile(self._path, mode="r")
            except FileNotFoundError as exc:
                raise ImageArchiveError(f"image not found: {self._path!s}") from exc
            except (zipfile.BadZipFile, OSError) as exc:
                raise ImageArchiveError(f"unable to open image {self._path!s}: {exc}") from exc
        return self._zip


__all__ = ["ArchiveEntryNotFoundError", "ImageArchive", "ImageArchiveError"]

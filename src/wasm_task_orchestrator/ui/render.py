"""Output rendering abstraction for the wasm-task CLI.

File: src/wasm_task_orchestrator/ui/render.py
Last updated: 2026-10-16

Purpose
- Provide a thin rendering layer for human-facing CLI output on stdout.

Functional requirements
- Plain-text rendering must always work without external dependencies.
- Machine-readable output (``--json``, ``resolve-path``) bypasses the renderer.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence


class CLIRenderer:
    """Thin CLI output renderer producing deterministic plain text."""

    def __init__(self, *, verbose: bool = False, stream: TextIO | None = None) -> None:
        self.verbose = verbose
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    def text(self, line: str) -> None:
        """Print a plain text line."""

        print(line, file=self.stream)

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        print(f"\n{title}", file=self.stream)

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a formatted ASCII table."""

        if not rows:
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        for row in rows:
            for i in range(min(len(row), col_count)):
                widths[i] = max(widths[i], len(str(row[i])))

        def _pad(cells: Sequence[str]) -> str:
            parts: list[str] = []
            for i in range(col_count):
                cell = str(cells[i]) if i < len(cells) else ""
                parts.append(cell.ljust(widths[i]))
            return "  ".join(parts).rstrip()

        if title:
            self.section(title)
        print(f"  {_pad(list(headers))}", file=self.stream)
        print(f"  {'  '.join('-' * w for w in widths)}", file=self.stream)
        for row in rows:
            print(f"  {_pad(list(row))}", file=self.stream)


def create_renderer(*, verbose: bool = False) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]

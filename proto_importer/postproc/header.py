"""Header comments for generated modules."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from ..models import ResolvedArtifact
from .atomic import write_text_atomic

HEADER_LINES = ("# pyright: basic", "# ruff: noqa")


class HeaderWriter:
    """Prepends checker directives to generated ``.py`` modules."""

    def __init__(self, lines: Sequence[str] = HEADER_LINES) -> None:
        self.header = "".join(f"{line}\n" for line in lines)

    def apply(self, output_root: Path, artifacts: Sequence[ResolvedArtifact]) -> int:
        """Return the number of files that received the header."""
        added = 0
        for artifact in artifacts:
            if artifact.is_stub:
                continue
            path = artifact.path_in(output_root)
            with path.open("r", encoding="utf-8", newline="") as handle:
                text = handle.read()
            if text.startswith(self.header):
                continue
            write_text_atomic(path, self.header + text)
            added += 1
        return added


__all__ = ["HEADER_LINES", "HeaderWriter"]

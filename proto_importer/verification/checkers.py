"""Optional external type checkers run against a verified output tree."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable, List, Sequence

from ..logging import get_logger
from .structure import VerificationError, VerificationIssue


def _default_runner(args: Sequence[str], cwd: Path) -> subprocess.CompletedProcess[str]:
    return subprocess.run(list(args), cwd=cwd, capture_output=True, text=True, check=False)


class CommandChecker:
    """Runs configured checker commands (mypy, pyright) with the output root appended."""

    def __init__(
        self,
        commands: Sequence[Sequence[str]],
        runner: Callable[[Sequence[str], Path], subprocess.CompletedProcess[str]] | None = None,
    ) -> None:
        self.commands = [list(command) for command in commands if command]
        self._runner = runner or _default_runner
        self.logger = get_logger("verification.checkers")

    def check(self, output_root: Path, *, cwd: Path) -> None:
        issues: List[VerificationIssue] = []
        for command in self.commands:
            args = [*command, str(output_root)]
            self.logger.info("Running %s", " ".join(args))
            try:
                completed = self._runner(args, cwd)
            except FileNotFoundError:
                issues.append(VerificationIssue(command[0], 0, f"'{command[0]}' not found"))
                continue
            if completed.returncode != 0:
                output = (completed.stdout or "").strip() or (completed.stderr or "").strip()
                issues.append(
                    VerificationIssue(
                        command[0],
                        0,
                        f"exited with status {completed.returncode}: {output}",
                    )
                )
        if issues:
            details = "\n".join(f"  {issue}" for issue in issues)
            raise VerificationError(f"type checkers reported errors:\n{details}", issues)


__all__ = ["CommandChecker"]

"""Structural verification of a generated output tree."""

from __future__ import annotations

import ast
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

from ..logging import get_logger
from ..models import ResolvedArtifact
from ..postproc.imports import ModulePath, resolve_relative


@dataclass(frozen=True)
class VerificationIssue:
    """A generated module whose relative imports do not land on a sibling file."""

    artifact: str
    line: int
    detail: str

    def __str__(self) -> str:
        return f"{self.artifact}:{self.line}: {self.detail}"


class VerificationError(RuntimeError):
    """Raised when the finished tree contains dangling relative imports."""

    stage = "verify"

    def __init__(self, message: str, issues: Sequence[VerificationIssue]) -> None:
        super().__init__(message)
        self.issues = list(issues)


class Verifier:
    """Confirms every relative import in the tree resolves without executing it."""

    def __init__(self) -> None:
        self.logger = get_logger("verification")

    def verify(self, output_root: Path, artifacts: Sequence[ResolvedArtifact]) -> None:
        issues = self.collect_issues(output_root, artifacts)
        if issues:
            offenders = sorted({issue.artifact for issue in issues})
            details = "\n".join(f"  {issue}" for issue in issues)
            raise VerificationError(
                f"{len(offenders)} artifact(s) have unresolved relative imports:\n{details}",
                issues,
            )
        self.logger.info("Verified %d artifacts under %s", len(artifacts), output_root)

    def collect_issues(
        self, output_root: Path, artifacts: Sequence[ResolvedArtifact]
    ) -> List[VerificationIssue]:
        issues: List[VerificationIssue] = []
        for artifact in artifacts:
            issues.extend(self._check_artifact(output_root, artifact))
        return issues

    def _check_artifact(self, output_root: Path, artifact: ResolvedArtifact) -> List[VerificationIssue]:
        label = artifact.relative_path
        path = artifact.path_in(output_root)
        if not path.is_file():
            return [VerificationIssue(label, 0, "generated file is missing")]
        try:
            tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
        except SyntaxError as exc:
            return [VerificationIssue(label, exc.lineno or 0, f"syntax error: {exc.msg}")]

        issues: List[VerificationIssue] = []
        for node in ast.walk(tree):
            if not isinstance(node, ast.ImportFrom) or node.level == 0:
                continue
            base = resolve_relative(artifact.module_path, node.level, node.module)
            reference = "." * node.level + (node.module or "")
            if base is None:
                issues.append(
                    VerificationIssue(label, node.lineno, f"'{reference}' climbs above the output root")
                )
                continue
            if node.module and not _exists(output_root, base):
                issues.append(VerificationIssue(label, node.lineno, f"'{reference}' does not exist"))
                continue
            if _is_module_file(output_root, base):
                # Names imported from a module are attributes, not files.
                continue
            for alias in node.names:
                if alias.name == "*":
                    continue
                if not _exists(output_root, base + (alias.name,)):
                    issues.append(
                        VerificationIssue(
                            label,
                            node.lineno,
                            f"'{reference}' has no module '{alias.name}'",
                        )
                    )
        return issues


def _is_module_file(output_root: Path, module: ModulePath) -> bool:
    if not module:
        return False
    stem = output_root.joinpath(*module)
    return stem.with_name(stem.name + ".py").is_file() or stem.with_name(stem.name + ".pyi").is_file()


def _exists(output_root: Path, module: ModulePath) -> bool:
    if not module:
        return output_root.is_dir()
    return _is_module_file(output_root, module) or output_root.joinpath(*module).is_dir()


__all__ = ["VerificationError", "VerificationIssue", "Verifier"]

"""Rewrite absolute imports between generated modules into package-relative form.

protoc and its plugins address sibling modules by their dotted path from the
output root (``from payment import types_pb2 as payment_dot_types__pb2``,
``import payment.types_pb2``). Those only import when the output root itself is
on ``sys.path``. Rewriting them relative to each module's own package lets the
tree live at any depth inside a host package.

The statement builders at the top of this module are pure functions of module
paths; :class:`ImportRewriter` applies them to files.
"""

from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from ..logging import get_logger
from ..models import ImportReference, ResolvedArtifact
from .atomic import write_text_atomic

ModulePath = Tuple[str, ...]

_GENERATED_SUFFIXES = ("_pb2", "_pb2_grpc")

_IMPORT_RE = re.compile(
    r"^(?P<indent>[ \t]*)import[ \t]+(?P<module>[A-Za-z_][\w.]*)"
    r"(?:[ \t]+as[ \t]+(?P<alias>[A-Za-z_]\w*))?(?P<trail>[ \t]*(?:#.*)?)$"
)
_FROM_RE = re.compile(
    r"^(?P<indent>[ \t]*)from[ \t]+(?P<module>[A-Za-z_][\w.]*)[ \t]+import[ \t]+"
    r"(?P<names>[A-Za-z_][\w \t,]*?)(?P<trail>[ \t]*(?:#.*)?)$"
)
_NAME_RE = re.compile(r"^(?P<name>[A-Za-z_]\w*)(?:[ \t]+as[ \t]+(?P<alias>[A-Za-z_]\w*))?$")
_STATEMENT_RE = re.compile(
    r"^[ \t]*(?:import[ \t]+(?P<imported>[A-Za-z_][\w.]*)|from[ \t]+(?P<module>[A-Za-z_][\w.]*)[ \t]+import\b)"
)
_GENERATED_REF_RE = re.compile(r"\b[A-Za-z_][\w.]*_pb2(?:_grpc)?\b")


class RewriteError(RuntimeError):
    """Raised when absolute imports reference modules missing from the build."""

    stage = "rewrite"

    def __init__(self, message: str, issues: Sequence["RewriteIssue"]) -> None:
        super().__init__(message)
        self.issues = list(issues)


@dataclass(frozen=True)
class RewriteIssue:
    """An absolute import that could not be rewritten onto a resolved artifact."""

    artifact: str
    line: int
    target: str
    statement: str
    reason: str = "cannot resolve"

    def __str__(self) -> str:
        return f"{self.artifact}:{self.line}: {self.reason} '{self.target}' ({self.statement.strip()})"


# ----------------------------------------------------------------------
# Pure path arithmetic


def relative_prefix(importer: Sequence[str], target_package: Sequence[str]) -> str:
    """Return the relative module reference naming ``target_package`` from ``importer``.

    ``importer`` is the full module path of the importing module; its package is
    everything but the last segment. One dot stays in the importer's package and
    each further dot climbs one level, so only the levels needed to reach the
    shared ancestor are climbed before descending again.
    """
    package = tuple(importer[:-1])
    target = tuple(target_package)
    common = 0
    while common < len(package) and common < len(target) and package[common] == target[common]:
        common += 1
    dots = "." * (len(package) - common + 1)
    return dots + ".".join(target[common:])


def relative_from_import(importer: Sequence[str], module: Sequence[str], names: str) -> str:
    """``from <module> import <names>`` expressed relative to ``importer``."""
    return f"from {relative_prefix(importer, module)} import {names}"


def relative_import(importer: Sequence[str], target: str, *, alias: Optional[str] = None) -> str:
    """Import the module ``target`` under ``alias`` (or its own name) relative to ``importer``."""
    parts = target.split(".")
    names = parts[-1] if alias is None or alias == parts[-1] else f"{parts[-1]} as {alias}"
    return relative_from_import(importer, parts[:-1], names)


def bound_package_import(importer: Sequence[str], target: str) -> List[str]:
    """Relative replacement for a bare ``import a.b.c_pb2``.

    The bare form binds the top-level package ``a`` and loads ``a.b.c_pb2`` as an
    attribute chain beneath it. The first statement binds the same package; the
    second loads the submodule so the attribute chain still resolves.
    """
    parts = target.split(".")
    if len(parts) == 1:
        return [relative_import(importer, target)]
    top = parts[0]
    statements = [relative_from_import(importer, (), top)]
    statements.append(relative_import(importer, target, alias="_" + "_dot_".join(parts)))
    return statements


def resolve_relative(importer: Sequence[str], level: int, module: Optional[str]) -> Optional[ModulePath]:
    """Return the absolute module path a relative import names, or None if it climbs past the root."""
    package = tuple(importer[:-1])
    climb = level - 1
    if climb > len(package):
        return None
    base = package[: len(package) - climb]
    if module:
        base = base + tuple(module.split("."))
    return base


# ----------------------------------------------------------------------
# Tree-level index


@dataclass(frozen=True)
class ModuleIndex:
    """Dotted module and package names present in one unit's output tree."""

    modules: FrozenSet[str]
    packages: FrozenSet[str]

    @classmethod
    def from_artifacts(cls, artifacts: Iterable[ResolvedArtifact]) -> "ModuleIndex":
        modules: Set[str] = set()
        packages: Set[str] = set()
        for artifact in artifacts:
            modules.add(artifact.dotted_name)
            package = artifact.package
            for depth in range(1, len(package) + 1):
                packages.add(".".join(package[:depth]))
        return cls(modules=frozenset(modules), packages=frozenset(packages))


@dataclass
class RewriteResult:
    """Text produced by rewriting one module."""

    text: str
    references: List[ImportReference] = field(default_factory=list)
    issues: List[RewriteIssue] = field(default_factory=list)

    @property
    def count(self) -> int:
        """Number of statements rewritten."""
        return len({reference.line for reference in self.references})


class ImportRewriter:
    """Rewrites absolute generated-module imports to relative ones, file by file."""

    def __init__(self, external_packages: Sequence[str] = ("google",)) -> None:
        self.external_packages = tuple(external_packages)
        self.logger = get_logger("postproc.imports")

    def rewrite_text(self, text: str, importer: ModulePath, index: ModuleIndex, *, label: str = "") -> RewriteResult:
        """Rewrite every generated-module import in ``text``; all other bytes are kept."""
        result = RewriteResult(text=text)
        output: List[str] = []
        for number, raw_line in enumerate(text.splitlines(keepends=True), start=1):
            body = raw_line.rstrip("\r\n")
            ending = raw_line[len(body):]
            replacement = self._rewrite_line(body, importer, index, number, label or ".".join(importer), result)
            if replacement is None:
                output.append(raw_line)
                continue
            output.append(replacement.replace("\n", ending or "\n") + ending)
        result.text = "".join(output)
        return result

    def rewrite(
        self,
        output_root: Path,
        artifact: ResolvedArtifact,
        all_resolved_artifacts: Sequence[ResolvedArtifact],
        *,
        index: Optional[ModuleIndex] = None,
    ) -> int:
        """Rewrite one artifact on disk and return the number of statements changed.

        Nothing is written when any import cannot be resolved; the issues are
        raised together as a RewriteError.
        """
        index = index or ModuleIndex.from_artifacts(all_resolved_artifacts)
        path = artifact.path_in(output_root)
        with path.open("r", encoding="utf-8", newline="") as handle:
            original = handle.read()

        result = self.rewrite_text(original, artifact.module_path, index, label=artifact.relative_path)
        if result.issues:
            raise RewriteError(
                f"{artifact.relative_path}: {len(result.issues)} unresolved import(s)",
                result.issues,
            )
        if result.count and result.text != original:
            write_text_atomic(path, result.text)
            self.logger.debug("Rewrote %d imports in %s", result.count, artifact.relative_path)
        return result.count

    def rewrite_all(
        self,
        output_root: Path,
        artifacts: Sequence[ResolvedArtifact],
        *,
        max_workers: Optional[int] = None,
    ) -> int:
        """Rewrite every artifact of a unit, reporting all failures at once."""
        index = ModuleIndex.from_artifacts(artifacts)

        def _task(artifact: ResolvedArtifact) -> Tuple[int, List[RewriteIssue]]:
            try:
                return self.rewrite(output_root, artifact, artifacts, index=index), []
            except RewriteError as exc:
                return 0, exc.issues

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            outcomes = list(executor.map(_task, artifacts))

        total = sum(count for count, _ in outcomes)
        issues = [issue for _, found in outcomes for issue in found]
        if issues:
            offenders = sorted({issue.artifact for issue in issues})
            details = "\n".join(f"  {issue}" for issue in issues)
            raise RewriteError(
                f"{len(issues)} import(s) in {len(offenders)} artifact(s) could not be "
                f"rewritten:\n{details}",
                issues,
            )
        return total

    # ------------------------------------------------------------------
    # Internal helpers

    def _rewrite_line(
        self,
        line: str,
        importer: ModulePath,
        index: ModuleIndex,
        number: int,
        label: str,
        result: RewriteResult,
    ) -> Optional[str]:
        match = _IMPORT_RE.match(line)
        if match:
            return self._rewrite_import(match, importer, index, number, label, result)
        match = _FROM_RE.match(line)
        if match:
            return self._rewrite_from(match, importer, index, number, label, result)
        self._report_unsupported(line, index, number, label, result)
        return None

    def _rewrite_import(
        self,
        match: "re.Match[str]",
        importer: ModulePath,
        index: ModuleIndex,
        number: int,
        label: str,
        result: RewriteResult,
    ) -> Optional[str]:
        module = match.group("module")
        if not _is_generated_name(module) or self._is_external(module):
            return None
        line = match.group(0)
        if module not in index.modules:
            result.issues.append(RewriteIssue(label, number, module, line))
            return None

        alias = match.group("alias")
        if alias is None and "." in module:
            statements = bound_package_import(importer, module)
        else:
            statements = [relative_import(importer, module, alias=alias)]
        result.references.append(ImportReference(importer, module, line, number))
        return _join(match.group("indent"), statements, match.group("trail"))

    def _rewrite_from(
        self,
        match: "re.Match[str]",
        importer: ModulePath,
        index: ModuleIndex,
        number: int,
        label: str,
        result: RewriteResult,
    ) -> Optional[str]:
        module = match.group("module")
        if self._is_external(module):
            return None
        line = match.group(0)
        names_text = match.group("names").strip()
        parsed = [_NAME_RE.match(part.strip()) for part in names_text.split(",")]
        if not all(parsed):
            self._report_unsupported(line, index, number, label, result)
            return None
        names = [item.group("name") for item in parsed if item]

        if module in index.modules:
            # ``from a.b_pb2 import Message``: the module itself is the target.
            result.references.append(ImportReference(importer, module, line, number))
            statement = relative_from_import(importer, module.split("."), names_text)
            return _join(match.group("indent"), [statement], match.group("trail"))

        targets = [f"{module}.{name}" for name in names]
        is_candidate = (
            module in index.packages
            or _is_generated_name(module)
            or any(_is_generated_name(name) for name in names)
        )
        if not is_candidate:
            return None

        missing = [target for target in targets if target not in index.modules]
        if missing:
            for target in missing:
                result.issues.append(RewriteIssue(label, number, target, line))
            return None

        for target in targets:
            result.references.append(ImportReference(importer, target, line, number))
        statement = relative_from_import(importer, module.split("."), names_text)
        return _join(match.group("indent"), [statement], match.group("trail"))

    def _report_unsupported(
        self,
        line: str,
        index: ModuleIndex,
        number: int,
        label: str,
        result: RewriteResult,
    ) -> None:
        """Flag an absolute import of a shape the rewriter cannot rebuild.

        ``import a_pb2, b_pb2``, parenthesised or continued ``from`` lists and
        star imports would otherwise stay absolute and only fail once the tree
        is imported from its final location.
        """
        match = _STATEMENT_RE.match(line)
        if match is None:
            return
        module = match.group("module") or match.group("imported")
        code = line.split("#", 1)[0]
        generated = [name for name in _GENERATED_REF_RE.findall(code) if not self._is_external(name)]
        local = not self._is_external(module) and (module in index.packages or module in index.modules)
        if not generated and not local:
            return
        target = generated[0] if generated else module
        result.issues.append(RewriteIssue(label, number, target, line, reason="unsupported import form for"))

    def _is_external(self, module: str) -> bool:
        top = module.split(".", 1)[0]
        return top in self.external_packages


def _is_generated_name(module: str) -> bool:
    return module.rsplit(".", 1)[-1].endswith(_GENERATED_SUFFIXES)


def _join(indent: str, statements: Sequence[str], trail: str) -> str:
    lines = [f"{indent}{statement}" for statement in statements]
    lines[-1] = lines[-1] + trail
    return "\n".join(lines)


__all__ = [
    "ImportRewriter",
    "ModuleIndex",
    "RewriteError",
    "RewriteIssue",
    "RewriteResult",
    "bound_package_import",
    "relative_from_import",
    "relative_import",
    "relative_prefix",
    "resolve_relative",
]

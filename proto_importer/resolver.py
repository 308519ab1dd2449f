"""Build-plan resolution: proto sources to anticipated generated artifacts."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Dict, Iterator, List, Sequence, Tuple

from .config import ConfigError
from .logging import get_logger
from .models import BuildUnit, ResolvedArtifact
from .patterns import matches_any

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "venv",
    "node_modules",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".tox",
}

_PROTO_SUFFIX = ".proto"
_MODULE_SEPARATORS = re.compile(r"[/.]")

logger = get_logger("resolver")


def resolve(unit: BuildUnit) -> List[ResolvedArtifact]:
    """Return the ordered artifacts a unit will generate.

    Source roots are scanned in declared order. When two roots yield the same
    output module, the file from the earlier root is kept and the later one is
    dropped.
    """
    validate_unit(unit)

    chosen: Dict[Tuple[str, ...], Tuple[Path, Path]] = {}
    for source_root in unit.source_roots:
        claimed_here: Dict[Tuple[str, ...], Path] = {}
        for rel_path in _iter_proto_files(source_root, skip=unit.output_root):
            if unit.include and not matches_any(rel_path, unit.include):
                continue
            if unit.exclude and matches_any(rel_path, unit.exclude):
                continue

            module_base = module_base_for(rel_path)
            source_file = source_root / rel_path
            previous = claimed_here.get(module_base)
            if previous is not None:
                raise ConfigError(
                    f"unit '{unit.name}': {previous} and {source_file} both generate "
                    f"module {'.'.join(module_base)}"
                )
            claimed_here[module_base] = source_file

            if module_base in chosen:
                logger.debug(
                    "Dropping %s: %s already provided by %s",
                    source_file,
                    ".".join(module_base),
                    chosen[module_base][0],
                )
                continue
            chosen[module_base] = (source_file, source_root)

    if not chosen:
        roots = ", ".join(str(root) for root in unit.source_roots)
        raise ConfigError(f"unit '{unit.name}': no .proto files matched under {roots}")

    artifacts: List[ResolvedArtifact] = []
    kinds = unit.kinds()
    for module_base, (source_file, source_root) in chosen.items():
        package, stem = module_base[:-1], module_base[-1]
        for kind in kinds:
            artifacts.append(
                ResolvedArtifact(
                    source_file=source_file,
                    source_root=source_root,
                    module_path=package + (stem + kind.module_suffix,),
                    kind=kind,
                )
            )

    artifacts.sort(key=lambda artifact: (artifact.module_path, artifact.kind.extension))
    logger.debug(
        "Resolved %d artifacts from %d sources for unit %s",
        len(artifacts),
        len(chosen),
        unit.name,
    )
    return artifacts


def validate_unit(unit: BuildUnit) -> None:
    """Raise ConfigError when a unit's roots are missing or overlap its output."""
    if not unit.source_roots:
        raise ConfigError(f"unit '{unit.name}': at least one source root is required")
    output_root = unit.output_root.resolve()
    for source_root in unit.source_roots:
        if not source_root.exists():
            raise ConfigError(f"unit '{unit.name}': source root not found: {source_root}")
        if not source_root.is_dir():
            raise ConfigError(f"unit '{unit.name}': source root is not a directory: {source_root}")
        resolved = source_root.resolve()
        if resolved == output_root or output_root in resolved.parents:
            raise ConfigError(
                f"unit '{unit.name}': output root {output_root} would overwrite source root {resolved}"
            )


def check_disjoint_outputs(units: Sequence[BuildUnit]) -> None:
    """Raise ConfigError when two units share or nest their output roots."""
    roots = [(unit.name, unit.output_root.resolve()) for unit in units]
    for index, (name, root) in enumerate(roots):
        for other_name, other in roots[index + 1 :]:
            if root == other or root in other.parents or other in root.parents:
                raise ConfigError(
                    f"units '{name}' and '{other_name}' have overlapping output roots: "
                    f"{root} and {other}"
                )


def module_base_for(rel_path: str) -> Tuple[str, ...]:
    """Map a source path to the module base protoc writes for it.

    ``-`` becomes ``_`` anywhere in the path and dots inside names act as
    package separators, so ``my-api/status.v1.proto`` yields
    ``('my_api', 'status', 'v1')``.
    """
    stem = rel_path[: -len(_PROTO_SUFFIX)] if rel_path.endswith(_PROTO_SUFFIX) else rel_path
    return tuple(part for part in _MODULE_SEPARATORS.split(stem.replace("-", "_")) if part)


def _iter_proto_files(root: Path, *, skip: Path) -> Iterator[str]:
    skip_resolved = skip.resolve()
    for dirpath, dirnames, filenames in os.walk(root):
        current_dir = Path(dirpath)
        dirnames[:] = sorted(
            name
            for name in dirnames
            if name not in _EXCLUDED_DIRS and (current_dir / name).resolve() != skip_resolved
        )
        for filename in sorted(filenames):
            if not filename.endswith(_PROTO_SUFFIX):
                continue
            yield (current_dir / filename).relative_to(root).as_posix()


__all__ = ["check_disjoint_outputs", "module_base_for", "resolve", "validate_unit"]

"""Package marker assembly for generated output trees."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Set, Tuple

from ..logging import get_logger
from ..models import MARKER_FILENAME, PackageMode, PackageNode, ResolvedArtifact


class AssemblyError(RuntimeError):
    """Raised when a directory or marker file cannot be written."""

    stage = "assemble"


def package_nodes(output_root: Path, artifacts: Iterable[ResolvedArtifact]) -> List[PackageNode]:
    """Return every directory on a path from the output root to an artifact, root first."""
    directories: Set[Tuple[str, ...]] = {()}
    for artifact in artifacts:
        package = artifact.package
        for depth in range(1, len(package) + 1):
            directories.add(package[:depth])
    return [
        PackageNode(directory=directory, path=output_root.joinpath(*directory))
        for directory in sorted(directories, key=lambda item: (len(item), item))
    ]


class PackageAssembler:
    """Creates or omits ``__init__.py`` markers according to the package mode."""

    def __init__(self) -> None:
        self.logger = get_logger("postproc.packages")

    def assemble(
        self,
        output_root: Path,
        artifacts: Iterable[ResolvedArtifact],
        package_mode: PackageMode,
    ) -> Set[PackageNode]:
        """Return the package nodes whose markers were created by this call."""
        nodes = package_nodes(output_root, artifacts)
        if package_mode is PackageMode.NAMESPACE:
            removed = self._remove_markers(nodes)
            if removed:
                self.logger.info("Removed %d stale %s markers", removed, MARKER_FILENAME)
            return set()

        created: Set[PackageNode] = set()
        for node in nodes:
            try:
                node.path.mkdir(parents=True, exist_ok=True)
                if node.marker.exists():
                    continue
                node.marker.write_bytes(b"")
            except OSError as exc:
                raise AssemblyError(f"failed to write {node.marker}: {exc}") from exc
            created.add(node)
        self.logger.info("Created %d %s markers under %s", len(created), MARKER_FILENAME, output_root)
        return created

    def _remove_markers(self, nodes: Iterable[PackageNode]) -> int:
        removed = 0
        for node in nodes:
            marker = node.marker
            try:
                # Only empty markers are ours; hand-written package code is kept.
                if marker.is_file() and marker.stat().st_size == 0:
                    marker.unlink()
                    removed += 1
            except OSError as exc:
                raise AssemblyError(f"failed to remove {marker}: {exc}") from exc
        return removed


__all__ = ["AssemblyError", "PackageAssembler", "package_nodes"]

"""Core data models shared across proto-importer stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Tuple

from .patterns import PathPattern

MARKER_FILENAME = "__init__.py"


class PackageMode(str, Enum):
    """Whether generated directories become regular or namespace packages."""

    PACKAGE = "package"
    NAMESPACE = "namespace"


class ArtifactKind(str, Enum):
    """Generated file flavours produced by protoc and its plugins."""

    MESSAGE_MODULE = "message_module"
    GRPC_MODULE = "grpc_module"
    MESSAGE_STUB = "message_stub"
    GRPC_STUB = "grpc_stub"

    @property
    def module_suffix(self) -> str:
        if self in (ArtifactKind.MESSAGE_MODULE, ArtifactKind.MESSAGE_STUB):
            return "_pb2"
        return "_pb2_grpc"

    @property
    def extension(self) -> str:
        if self in (ArtifactKind.MESSAGE_STUB, ArtifactKind.GRPC_STUB):
            return ".pyi"
        return ".py"


@dataclass(frozen=True)
class BuildUnit:
    """One configured generation job: a source set mapped onto one output tree."""

    name: str
    source_roots: Tuple[Path, ...]
    output_root: Path
    include: Tuple[PathPattern, ...] = ()
    exclude: Tuple[PathPattern, ...] = ()
    package_mode: PackageMode = PackageMode.PACKAGE
    emit_grpc: bool = True
    emit_type_stubs: bool = False
    emit_grpc_type_stubs: bool = False
    emit_header_comment: bool = False
    python_exe: str = "python3"
    external_packages: Tuple[str, ...] = ("google",)

    def kinds(self) -> Tuple[ArtifactKind, ...]:
        """Return the artifact kinds each source file produces for this unit."""
        kinds = [ArtifactKind.MESSAGE_MODULE]
        if self.emit_grpc:
            kinds.append(ArtifactKind.GRPC_MODULE)
        if self.emit_type_stubs:
            kinds.append(ArtifactKind.MESSAGE_STUB)
        if self.emit_grpc and self.emit_grpc_type_stubs:
            kinds.append(ArtifactKind.GRPC_STUB)
        return tuple(kinds)


@dataclass(frozen=True)
class ResolvedArtifact:
    """A generated file anticipated from one source file before protoc runs."""

    source_file: Path
    source_root: Path
    module_path: Tuple[str, ...]
    kind: ArtifactKind

    @property
    def package(self) -> Tuple[str, ...]:
        """Directory segments of the artifact relative to the output root."""
        return self.module_path[:-1]

    @property
    def module_name(self) -> str:
        return self.module_path[-1]

    @property
    def dotted_name(self) -> str:
        return ".".join(self.module_path)

    @property
    def relative_path(self) -> str:
        return "/".join(self.module_path) + self.kind.extension

    @property
    def is_stub(self) -> bool:
        return self.kind.extension == ".pyi"

    def path_in(self, output_root: Path) -> Path:
        return output_root.joinpath(*self.package, self.module_name + self.kind.extension)


@dataclass(frozen=True)
class ImportReference:
    """An absolute import statement found inside a generated artifact."""

    importer: Tuple[str, ...]
    target: str
    statement: str
    line: int


@dataclass(frozen=True)
class PackageNode:
    """A directory in the output tree that lies on a path to an artifact."""

    directory: Tuple[str, ...]
    path: Path = field(compare=False)

    @property
    def marker(self) -> Path:
        return self.path / MARKER_FILENAME

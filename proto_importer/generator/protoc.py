"""Adapter around ``python -m grpc_tools.protoc``."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from ..logging import get_logger
from ..models import ArtifactKind, BuildUnit, ResolvedArtifact


class InvocationError(RuntimeError):
    """Raised when the generator fails or does not produce an expected artifact."""

    stage = "generate"

    def __init__(self, message: str, *, stdout: str = "", stderr: str = "") -> None:
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr


@dataclass
class InvocationRequest:
    """A single generator process launch."""

    args: List[str]
    env: Dict[str, str]
    output_root: Path


@dataclass
class InvocationResult:
    """Outcome of one generator run with captured diagnostics."""

    success: bool
    stdout: str = ""
    stderr: str = ""
    command: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)


class GeneratorInvoker:
    """Runs protoc once per source-root/output-root group."""

    MODULE = "grpc_tools.protoc"

    def __init__(self, runner: Callable[[InvocationRequest], InvocationResult] | None = None) -> None:
        self._runner = runner or self._subprocess_runner
        self.logger = get_logger("generator")

    def build_command(
        self,
        unit: BuildUnit,
        source_root: Path,
        files: Sequence[Path],
    ) -> List[str]:
        """Return the argument vector for a group, proto paths first."""
        out = str(unit.output_root)
        args = [unit.python_exe, "-m", self.MODULE, f"--proto_path={source_root}"]
        for other in unit.source_roots:
            if other != source_root:
                args.append(f"--proto_path={other}")
        args.append(f"--python_out={out}")
        if unit.emit_grpc:
            args.append(f"--grpc_python_out={out}")
        if unit.emit_type_stubs:
            args.append(f"--mypy_out={out}")
        if unit.emit_grpc and unit.emit_grpc_type_stubs:
            args.append(f"--mypy_grpc_out={out}")
        args.extend(str(path) for path in files)
        return args

    def invoke(
        self,
        unit: BuildUnit,
        source_root: Path,
        artifacts: Sequence[ResolvedArtifact],
    ) -> InvocationResult:
        """Generate the artifacts of one group and report missing outputs."""
        files = _unique_sources(artifacts)
        if not files:
            return InvocationResult(success=True)

        try:
            unit.output_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            return InvocationResult(
                success=False,
                stderr=f"failed to create output directory {unit.output_root}: {exc}",
            )

        args = self.build_command(unit, source_root, files)
        request = InvocationRequest(
            args=args,
            env=_plugin_env(unit.python_exe),
            output_root=unit.output_root,
        )
        self.logger.info("Running %s for %d files from %s", self.MODULE, len(files), source_root)
        self.logger.debug("Command: %s", " ".join(args))
        result = self._runner(request)
        result.command = args
        if not result.success:
            return result

        result.missing = [
            artifact.relative_path
            for artifact in artifacts
            if not artifact.path_in(unit.output_root).is_file()
        ]
        if result.missing:
            result.success = False
        return result

    def run(
        self,
        unit: BuildUnit,
        source_root: Path,
        artifacts: Sequence[ResolvedArtifact],
    ) -> InvocationResult:
        """Invoke the generator and raise InvocationError on any failure."""
        result = self.invoke(unit, source_root, artifacts)
        if result.success:
            return result
        if result.missing:
            preview = ", ".join(result.missing[:5])
            more = f" (+{len(result.missing) - 5} more)" if len(result.missing) > 5 else ""
            message = f"{self.MODULE} did not produce expected artifacts: {preview}{more}"
        else:
            detail = result.stderr.strip() or result.stdout.strip() or "no output"
            message = f"{self.MODULE} failed for {source_root}: {detail}"
        raise InvocationError(message, stdout=result.stdout, stderr=result.stderr)

    @staticmethod
    def _subprocess_runner(request: InvocationRequest) -> InvocationResult:
        try:
            completed = subprocess.run(
                request.args,
                env=request.env,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            return InvocationResult(
                success=False,
                stderr=f"Unable to locate '{request.args[0]}': {exc}",
            )
        return InvocationResult(
            success=completed.returncode == 0,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )


def group_by_source_root(
    artifacts: Sequence[ResolvedArtifact],
) -> Dict[Path, List[ResolvedArtifact]]:
    """Split a unit's artifacts into one generator group per source root."""
    groups: Dict[Path, List[ResolvedArtifact]] = {}
    for artifact in artifacts:
        groups.setdefault(artifact.source_root, []).append(artifact)
    return groups


def _unique_sources(artifacts: Sequence[ResolvedArtifact]) -> List[Path]:
    seen: Dict[Path, None] = {}
    for artifact in artifacts:
        if artifact.kind is ArtifactKind.MESSAGE_MODULE:
            seen.setdefault(artifact.source_file, None)
    return list(seen)


def _plugin_env(python_exe: str) -> Dict[str, str]:
    env = os.environ.copy()
    parent: Optional[Path] = Path(python_exe).parent if os.sep in python_exe else None
    if parent is not None and str(parent) not in ("", "."):
        existing = env.get("PATH", "")
        env["PATH"] = f"{parent}{os.pathsep}{existing}" if existing else str(parent)
    return env


__all__ = [
    "GeneratorInvoker",
    "InvocationError",
    "InvocationRequest",
    "InvocationResult",
    "group_by_source_root",
]

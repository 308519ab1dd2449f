"""Environment diagnostics for the protoc toolchain."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

TOOLS = ("python3", "uv", "protoc", "buf", "protoc-gen-mypy", "mypy", "pyright")

_GRPC_TOOLS_CHECK = "import importlib.util, sys; sys.exit(0 if importlib.util.find_spec('grpc_tools') else 1)"


@dataclass
class ToolStatus:
    name: str
    location: Optional[str]

    @property
    def found(self) -> bool:
        return self.location is not None


@dataclass
class DoctorReport:
    """Which generator tools are reachable from this environment."""

    tools: List[ToolStatus]
    grpc_tools: Optional[bool]

    @property
    def ok(self) -> bool:
        generators = {status.name: status.found for status in self.tools}
        return bool(generators.get("protoc") or generators.get("buf") or self.grpc_tools)

    def render(self) -> str:
        lines = ["== Tool presence =="]
        for status in self.tools:
            lines.append(f"{status.name:<16}: {status.location or 'not found'}")
        if self.grpc_tools is None:
            lines.append(f"{'grpc_tools':<16}: skip (python not found)")
        else:
            lines.append(f"{'grpc_tools':<16}: {'found' if self.grpc_tools else 'not found'}")
        return "\n".join(lines)


def run_doctor(
    python_exe: str = "python3",
    *,
    which: Callable[[str], Optional[str]] = shutil.which,
    runner: Callable[[Sequence[str]], int] | None = None,
) -> DoctorReport:
    """Collect tool locations and whether ``grpc_tools`` imports under ``python_exe``."""
    runner = runner or _run_check
    tools = [ToolStatus(name, which(name)) for name in TOOLS]
    interpreter = which(python_exe)
    grpc_tools: Optional[bool] = None
    if interpreter is not None:
        grpc_tools = runner([interpreter, "-c", _GRPC_TOOLS_CHECK]) == 0
    return DoctorReport(tools=tools, grpc_tools=grpc_tools)


def _run_check(args: Sequence[str]) -> int:
    try:
        completed = subprocess.run(list(args), capture_output=True, text=True, check=False)
    except OSError:
        return 1
    return completed.returncode


__all__ = ["DoctorReport", "ToolStatus", "run_doctor"]

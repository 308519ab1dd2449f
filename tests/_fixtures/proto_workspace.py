"""Helpers for building throwaway proto workspaces and faking protoc in tests."""

from __future__ import annotations

import re
import textwrap
from pathlib import Path
from typing import List, Mapping, Optional

from proto_importer.generator.protoc import InvocationRequest, InvocationResult
from proto_importer.resolver import module_base_for

_IMPORT_RE = re.compile(r'^\s*import\s+(?:public\s+|weak\s+)?"([^"]+)"\s*;', re.MULTILINE)

SERVICES_PROTOS: Mapping[str, str] = {
    "payment/types.proto": """
        syntax = "proto3";
        package payment;
        message Money { int64 units = 1; string currency = 2; }
    """,
    "payment/payment.proto": """
        syntax = "proto3";
        package payment;
        import "payment/types.proto";
        import "google/protobuf/timestamp.proto";
        message Charge { Money amount = 1; google.protobuf.Timestamp at = 2; }
        service PaymentService { rpc Pay (Charge) returns (Charge); }
    """,
    "user/user.proto": """
        syntax = "proto3";
        package user;
        import "payment/types.proto";
        message User { string id = 1; payment.Money balance = 2; }
        service UserService { rpc Get (User) returns (User); }
    """,
    "inventory/inventory.proto": """
        syntax = "proto3";
        package inventory;
        import "payment/types.proto";
        message Item { string sku = 1; payment.Money price = 2; }
        service InventoryService { rpc Lookup (Item) returns (Item); }
    """,
}


class ProtoWorkspace:
    """Writes proto sources and configuration files under a temporary root."""

    def __init__(self, tmp_path: Path) -> None:
        self.root = tmp_path / "workspace"
        self.root.mkdir()

    def write_protos(self, files: Mapping[str, str], *, source_root: str = "proto") -> Path:
        """Write ``path -> contents`` entries below ``source_root`` and return that root."""
        base = self.root / source_root
        for relative, content in files.items():
            path = base / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(content).lstrip("\n"), encoding="utf-8")
        base.mkdir(parents=True, exist_ok=True)
        return base

    def write_services(self, *, source_root: str = "proto") -> Path:
        return self.write_protos(SERVICES_PROTOS, source_root=source_root)

    def write_config(self, content: str, *, name: str = ".proto-importer.yml") -> Path:
        path = self.root / name
        path.write_text(textwrap.dedent(content).lstrip("\n"), encoding="utf-8")
        return path

    def path(self, *parts: str) -> Path:
        return self.root.joinpath(*parts)


class FakeProtoc:
    """Stands in for ``grpc_tools.protoc``, writing protoc-shaped modules.

    Only the files named on the command line are generated, as with the real
    compiler; imported dependencies are referenced but not produced.
    """

    def __init__(self, *, fail: bool = False, skip: Optional[List[str]] = None) -> None:
        self.fail = fail
        self.skip = set(skip or [])
        self.requests: List[InvocationRequest] = []

    def __call__(self, request: InvocationRequest) -> InvocationResult:
        self.requests.append(request)
        if self.fail:
            return InvocationResult(success=False, stderr="payment.proto:3:1: Expected top-level statement.")

        proto_paths = [Path(arg.split("=", 1)[1]) for arg in request.args if arg.startswith("--proto_path=")]
        outputs = {
            flag: Path(arg.split("=", 1)[1])
            for arg in request.args
            if arg.startswith("--") and "_out=" in arg
            for flag in [arg.split("=", 1)[0]]
        }
        sources = [Path(arg) for arg in request.args if arg.endswith(".proto")]
        for source in sources:
            rel = _relative_to_any(source, proto_paths)
            imports = _IMPORT_RE.findall(source.read_text(encoding="utf-8"))
            self._emit(rel, imports, outputs)
        return InvocationResult(success=True, stdout="", stderr="")

    def _emit(self, rel: str, imports: List[str], outputs: Mapping[str, Path]) -> None:
        parts = list(module_base_for(rel))
        package, stem = parts[:-1], parts[-1]

        def write(flag: str, suffix: str, text: str) -> None:
            out = outputs.get(flag)
            if out is None:
                return
            relative = "/".join(package + [stem + suffix])
            if relative in self.skip:
                return
            path = out.joinpath(*package, stem + suffix)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")

        write("--python_out", "_pb2.py", pb2_module(rel, imports))
        write("--grpc_python_out", "_pb2_grpc.py", grpc_module(rel))
        write("--mypy_out", "_pb2.pyi", pb2_stub(rel, imports))
        write("--mypy_grpc_out", "_pb2_grpc.pyi", grpc_stub(rel))


def _relative_to_any(source: Path, roots: List[Path]) -> str:
    for root in roots:
        try:
            return source.relative_to(root).as_posix()
        except ValueError:
            continue
    raise AssertionError(f"{source} is not under any --proto_path")


def _module_ref(proto: str) -> tuple[str, str, str]:
    """Return (package, module, protoc alias) for an imported proto path."""
    parts = list(module_base_for(proto))
    package = ".".join(parts[:-1])
    module = parts[-1] + "_pb2"
    alias = "_dot_".join(parts[:-1] + [parts[-1].replace("_", "__") + "__pb2"])
    return package, module, alias


def pb2_module(rel: str, imports: List[str]) -> str:
    lines = [
        "# -*- coding: utf-8 -*-",
        "# Generated by the protocol buffer compiler.  DO NOT EDIT!",
        f"# source: {rel}",
        '"""Generated protocol buffer code."""',
        "from google.protobuf import descriptor as _descriptor",
        "from google.protobuf import descriptor_pool as _descriptor_pool",
        "from google.protobuf import symbol_database as _symbol_database",
        "from google.protobuf.internal import builder as _builder",
        "# @@protoc_insertion_point(imports)",
        "",
        "_sym_db = _symbol_database.Default()",
        "",
        "",
    ]
    for proto in imports:
        package, module, alias = _module_ref(proto)
        if package:
            lines.append(f"from {package} import {module} as {alias}")
        else:
            lines.append(f"import {module} as {alias}")
    lines.extend(["", "", "DESCRIPTOR = _descriptor_pool.Default().AddSerializedFile(b'')", ""])
    return "\n".join(lines)


def grpc_module(rel: str) -> str:
    package, module, alias = _module_ref(rel)
    statement = f"from {package} import {module} as {alias}" if package else f"import {module} as {alias}"
    return "\n".join(
        [
            "# Generated by the gRPC Python protocol compiler plugin. DO NOT EDIT!",
            '"""Client and server classes corresponding to protobuf-defined services."""',
            "import grpc",
            "",
            statement,
            "",
        ]
    )


def pb2_stub(rel: str, imports: List[str]) -> str:
    lines = [
        '"""',
        "@generated by mypy-protobuf.  Do not edit manually!",
        "isort:skip_file",
        '"""',
        "",
        "import builtins",
        "import google.protobuf.descriptor",
        "import google.protobuf.message",
    ]
    for proto in imports:
        package, module, _ = _module_ref(proto)
        lines.append(f"import {package + '.' if package else ''}{module}")
    lines.extend(["import typing", "", "DESCRIPTOR: google.protobuf.descriptor.FileDescriptor", ""])
    return "\n".join(lines)


def grpc_stub(rel: str) -> str:
    package, module, _ = _module_ref(rel)
    return "\n".join(
        [
            '"""',
            "@generated by mypy-protobuf.  Do not edit manually!",
            '"""',
            "",
            "import abc",
            "import grpc",
            f"import {package + '.' if package else ''}{module}",
            "",
        ]
    )


__all__ = ["FakeProtoc", "ProtoWorkspace", "SERVICES_PROTOS"]

from __future__ import annotations

from pathlib import Path

import pytest

from tests._fixtures.proto_workspace import FakeProtoc, ProtoWorkspace


@pytest.fixture
def workspace(tmp_path: Path) -> ProtoWorkspace:
    """Provide a proto workspace rooted at the pytest tmp_path."""
    return ProtoWorkspace(tmp_path)


@pytest.fixture
def fake_protoc() -> FakeProtoc:
    """Provide a generator runner that writes protoc-shaped output without grpc_tools."""
    return FakeProtoc()

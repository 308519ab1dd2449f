"""Tests for proto_importer.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from proto_importer.config import BuildConfig, ConfigError, VerifyConfig, load_config
from proto_importer.models import PackageMode
from proto_importer.patterns import MatchStrategy


def test_load_config_single_unit_defaults(tmp_path: Path) -> None:
    config_file = tmp_path / ".proto-importer.yml"
    config_file.write_text("proto_paths: [proto]\n", encoding="utf-8")

    config = load_config(tmp_path)

    assert isinstance(config, BuildConfig)
    assert config.root == tmp_path.resolve()
    assert config.backend == "protoc"
    assert config.verify is None
    assert len(config.units) == 1

    unit = config.units[0]
    assert unit.name == "unit0"
    assert unit.source_roots == ((tmp_path / "proto").resolve(),)
    assert unit.output_root == (tmp_path / "generated" / "python").resolve()
    assert unit.package_mode is PackageMode.PACKAGE
    assert unit.emit_grpc is True
    assert unit.emit_type_stubs is False
    assert unit.emit_grpc_type_stubs is False
    assert unit.emit_header_comment is False
    assert unit.python_exe == "python3"
    assert unit.external_packages == ("google",)
    assert unit.include == ()
    assert unit.exclude == ()


def test_load_config_parses_units(tmp_path: Path) -> None:
    config_file = tmp_path / ".proto-importer.yml"
    config_file.write_text(
        """
python_exe: /opt/venv/bin/python
max_workers: 2
units:
  - name: api
    proto_paths: [proto, vendor/proto]
    include:
      - payment
      - {glob: "user/**/*.proto"}
    exclude: ["payment/internal.proto"]
    out: deeply/nested/out
    package_mode: namespace
    mypy: true
    mypy_grpc: yes
    header_comment: true
  - name: alt
    proto_paths: [proto_alt]
    out: generated_alt
    grpc: false
    python_exe: python3.12
verify:
  mypy_cmd: [mypy, --strict]
""",
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.max_workers == 2
    assert isinstance(config.verify, VerifyConfig)
    assert config.verify.commands() == [["mypy", "--strict"]]

    api, alt = config.units
    assert api.name == "api"
    assert api.source_roots == (
        (tmp_path / "proto").resolve(),
        (tmp_path / "vendor" / "proto").resolve(),
    )
    assert [p.strategy for p in api.include] == [MatchStrategy.PREFIX, MatchStrategy.GLOB]
    assert [p.strategy for p in api.exclude] == [MatchStrategy.EXACT]
    assert api.output_root == (tmp_path / "deeply" / "nested" / "out").resolve()
    assert api.package_mode is PackageMode.NAMESPACE
    assert api.emit_type_stubs is True
    assert api.emit_grpc_type_stubs is True
    assert api.emit_header_comment is True
    assert api.python_exe == "/opt/venv/bin/python"

    assert alt.emit_grpc is False
    assert alt.python_exe == "python3.12"
    assert alt.package_mode is PackageMode.PACKAGE


def test_load_config_reads_pyproject_table(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        """
[project]
name = "demo"

[tool.proto_importer]
include_paths = ["proto"]
out = "generated"
mypy = true
postprocess_only = false
create_package = false

[tool.proto_importer.verify]
pyright_cmd = ["pyright"]
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path)

    unit = config.units[0]
    assert unit.source_roots == ((tmp_path / "proto").resolve(),)
    assert unit.output_root == (tmp_path / "generated").resolve()
    assert unit.emit_type_stubs is True
    assert unit.package_mode is PackageMode.NAMESPACE
    assert config.verify is not None
    assert config.verify.commands() == [["pyright"]]


def test_load_config_requires_tool_table(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text("[project]\nname = 'x'\n", encoding="utf-8")

    with pytest.raises(ConfigError, match=r"\[tool.proto_importer\] not found"):
        load_config(tmp_path / "pyproject.toml")


def test_load_config_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "missing.yml")


@pytest.mark.parametrize(
    "content, message",
    [
        ("backend: buf\n", "unsupported backend"),
        ("package_mode: flat\n", "package_mode must be"),
        ("units: []\n", "non-empty list"),
        ("include: [{regex: 'x'}]\n", "unknown match strategy"),
        ("units:\n  - name: a\n  - name: a\n", "duplicate unit name"),
        ("- just\n- a list\n", "mapping at the root"),
        ("max_workers: 0\n", "max_workers"),
    ],
)
def test_load_config_rejects_invalid_documents(tmp_path: Path, content: str, message: str) -> None:
    config_file = tmp_path / ".proto-importer.yml"
    config_file.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError, match=message):
        load_config(config_file)


def test_load_config_reports_yaml_syntax_errors(tmp_path: Path) -> None:
    config_file = tmp_path / ".proto-importer.yml"
    config_file.write_text("units: [\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Failed to parse"):
        load_config(config_file)


def test_load_config_accepts_postprocess_table(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        """
[tool.proto_importer]
proto_paths = ["proto"]

[tool.proto_importer.postprocess]
create_package = false
pyright_header = true
""",
        encoding="utf-8",
    )

    unit = load_config(tmp_path).units[0]

    assert unit.package_mode is PackageMode.NAMESPACE
    assert unit.emit_header_comment is True


def test_load_config_reads_python_proto_importer_table(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        """
[tool.python_proto_importer]
backend = "protoc"
python_exe = "python3.12"
include = ["proto"]
inputs = ["proto/**/*.proto", "./proto/payment/types.proto"]
out = "generated/python"
mypy = true

[tool.python_proto_importer.postprocess]
create_package = false
exclude_google = false
pyright_header = true

[tool.python_proto_importer.verify]
mypy_cmd = ["mypy", "--strict"]
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path)

    unit = config.units[0]
    assert unit.source_roots == ((tmp_path / "proto").resolve(),)
    assert [str(pattern) for pattern in unit.include] == ["glob:**/*.proto", "glob:payment/types.proto"]
    assert unit.include[0].matches("payment/types.proto")
    assert unit.output_root == (tmp_path / "generated" / "python").resolve()
    assert unit.python_exe == "python3.12"
    assert unit.emit_type_stubs is True
    assert unit.package_mode is PackageMode.NAMESPACE
    assert unit.emit_header_comment is True
    assert unit.external_packages == ()
    assert config.verify is not None
    assert config.verify.commands() == [["mypy", "--strict"]]


def test_python_proto_importer_table_defaults(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        "[tool.python_proto_importer]\ninputs = [\"api/*.proto\"]\n",
        encoding="utf-8",
    )

    unit = load_config(tmp_path).units[0]

    assert unit.source_roots == (tmp_path.resolve(),)
    assert [str(pattern) for pattern in unit.include] == ["glob:api/*.proto"]
    assert unit.external_packages == ("google",)
    assert unit.package_mode is PackageMode.PACKAGE


def test_load_config_reports_unreadable_file(tmp_path: Path) -> None:
    (tmp_path / ".proto-importer.yml").mkdir()

    with pytest.raises(ConfigError, match="Failed to read"):
        load_config(tmp_path)

"""Configuration loading for proto-importer (.proto-importer.yml or pyproject.toml)."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .models import BuildUnit, PackageMode
from .patterns import PathPattern, parse_pattern

CONFIG_FILENAME = ".proto-importer.yml"
PYPROJECT_FILENAME = "pyproject.toml"
PYPROJECT_TABLE = "proto_importer"
LEGACY_PYPROJECT_TABLE = "python_proto_importer"

DEFAULT_PYTHON_EXE = "python3"
DEFAULT_OUT = "generated/python"
DEFAULT_EXTERNAL_PACKAGES = ("google",)
SUPPORTED_BACKENDS = ("protoc",)


class ConfigError(RuntimeError):
    """Raised when the configuration is missing, malformed or inconsistent."""

    stage = "config"


@dataclass
class VerifyConfig:
    """External type checker commands run after the structural check."""

    mypy_cmd: List[str] = field(default_factory=list)
    pyright_cmd: List[str] = field(default_factory=list)

    def commands(self) -> List[List[str]]:
        return [cmd for cmd in (self.mypy_cmd, self.pyright_cmd) if cmd]


@dataclass
class BuildConfig:
    """Represents every build unit declared in one configuration document."""

    root: Path
    source: Path
    units: List[BuildUnit]
    backend: str = "protoc"
    max_workers: Optional[int] = None
    verify: Optional[VerifyConfig] = None


def load_config(config_path: Path) -> BuildConfig:
    """Load configuration from disk."""
    config_file = _resolve_config_path(Path(config_path))
    if not config_file.exists():
        raise ConfigError(f"Configuration file not found: {config_file}")
    root = config_file.parent.resolve()

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file.name} must contain a mapping at the root")

    backend = (_as_str(data.get("backend")) or "protoc").lower()
    if backend not in SUPPORTED_BACKENDS:
        raise ConfigError(f"unsupported backend: {backend}")

    python_exe = _as_str(data.get("python_exe")) or DEFAULT_PYTHON_EXE
    raw_external = data.get("external_packages")
    external = DEFAULT_EXTERNAL_PACKAGES if raw_external is None else tuple(_as_str_list(raw_external))
    max_workers = _as_int(data.get("max_workers"))
    if max_workers is not None and max_workers < 1:
        raise ConfigError("max_workers must be a positive integer")

    raw_units = data.get("units")
    if raw_units is None:
        unit_entries: List[Dict[str, Any]] = [data]
    elif isinstance(raw_units, list) and raw_units:
        unit_entries = [_as_dict(entry) for entry in raw_units]
    else:
        raise ConfigError("'units' must be a non-empty list of mappings")

    units: List[BuildUnit] = []
    seen_names: set[str] = set()
    for index, entry in enumerate(unit_entries):
        unit = _build_unit(
            entry,
            root=root,
            index=index,
            python_exe=python_exe,
            external_packages=external,
        )
        if unit.name in seen_names:
            raise ConfigError(f"duplicate unit name '{unit.name}'")
        seen_names.add(unit.name)
        units.append(unit)

    verify_data = _as_dict(data.get("verify"))
    verify = None
    if verify_data:
        verify = VerifyConfig(
            mypy_cmd=_as_str_list(verify_data.get("mypy_cmd")),
            pyright_cmd=_as_str_list(verify_data.get("pyright_cmd")),
        )
        if not verify.commands():
            verify = None

    return BuildConfig(
        root=root,
        source=config_file,
        units=units,
        backend=backend,
        max_workers=max_workers,
        verify=verify,
    )


def _build_unit(
    data: Dict[str, Any],
    *,
    root: Path,
    index: int,
    python_exe: str,
    external_packages: Sequence[str],
) -> BuildUnit:
    name = _as_str(data.get("name")) or f"unit{index}"

    roots = _as_str_list(data.get("proto_paths")) or _as_str_list(data.get("include_paths"))
    if not roots:
        roots = ["."]
    source_roots = tuple(_resolve_path(root, value) for value in roots)

    out = _as_str(data.get("out")) or DEFAULT_OUT
    output_root = _resolve_path(root, out)

    try:
        include = tuple(_as_patterns(data.get("include")))
        exclude = tuple(_as_patterns(data.get("exclude")))
    except ValueError as exc:
        raise ConfigError(f"unit '{name}': {exc}") from exc

    postprocess = _as_dict(data.get("postprocess"))
    mode_value = _as_str(data.get("package_mode"))
    if mode_value is None:
        create_package = _as_bool(data.get("create_package", postprocess.get("create_package")))
        package_mode = PackageMode.NAMESPACE if create_package is False else PackageMode.PACKAGE
    else:
        try:
            package_mode = PackageMode(mode_value.lower())
        except ValueError as exc:
            raise ConfigError(
                f"unit '{name}': package_mode must be 'package' or 'namespace', got '{mode_value}'"
            ) from exc

    emit_grpc = _as_bool(data.get("grpc"))
    unit_external = _as_str_list(data.get("external_packages"))

    return BuildUnit(
        name=name,
        source_roots=source_roots,
        output_root=output_root,
        include=include,
        exclude=exclude,
        package_mode=package_mode,
        emit_grpc=True if emit_grpc is None else emit_grpc,
        emit_type_stubs=_as_bool(data.get("mypy")) or False,
        emit_grpc_type_stubs=_as_bool(data.get("mypy_grpc")) or False,
        emit_header_comment=_as_bool(data.get("header_comment", postprocess.get("pyright_header"))) or False,
        python_exe=_as_str(data.get("python_exe")) or python_exe,
        external_packages=tuple(unit_external) if unit_external else tuple(external_packages),
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        candidate = config_path / CONFIG_FILENAME
        if candidate.exists():
            return candidate.resolve()
        return (config_path / PYPROJECT_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc
    if path.suffix == ".toml":
        try:
            document = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
        if path.name == PYPROJECT_FILENAME:
            tool = _as_dict(document.get("tool"))
            if PYPROJECT_TABLE in tool:
                return tool[PYPROJECT_TABLE]
            if LEGACY_PYPROJECT_TABLE in tool:
                return _from_legacy_table(_as_dict(tool[LEGACY_PYPROJECT_TABLE]))
            raise ConfigError(f"[tool.{PYPROJECT_TABLE}] not found in {path}")
        return document

    if not text.strip():
        raise ConfigError(f"{path.name} is empty")
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _from_legacy_table(table: Dict[str, Any]) -> Dict[str, Any]:
    """Translate a ``[tool.python_proto_importer]`` table into single-unit keys.

    In that layout ``include`` lists the ``--proto_path`` roots and ``inputs``
    holds file globs written relative to the project root.
    """
    data = {key: value for key, value in table.items() if key not in ("include", "inputs")}
    roots = _as_str_list(table.get("include")) or ["."]
    data["proto_paths"] = roots
    inputs = _as_str_list(table.get("inputs"))
    if inputs:
        data["include"] = [{"glob": _strip_root_prefix(glob, roots)} for glob in inputs]
    postprocess = _as_dict(table.get("postprocess"))
    if _as_bool(postprocess.get("exclude_google")) is False:
        data["external_packages"] = []
    return data


def _strip_root_prefix(glob: str, roots: Sequence[str]) -> str:
    value = glob.replace("\\", "/")
    while value.startswith("./"):
        value = value[2:]
    for root in roots:
        prefix = root.replace("\\", "/").strip("/")
        while prefix.startswith("./"):
            prefix = prefix[2:]
        if prefix in ("", "."):
            continue
        if value.startswith(prefix + "/"):
            return value[len(prefix) + 1 :]
    return value


def _resolve_path(root: Path, value: str) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = root / path
    return path.resolve()


def _as_patterns(value: Any) -> List[PathPattern]:
    if value is None:
        return []
    if isinstance(value, (str, dict)):
        value = [value]
    if not isinstance(value, list):
        raise ValueError(f"patterns must be a list, got {type(value).__name__}")
    return [parse_pattern(item) for item in value]


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []

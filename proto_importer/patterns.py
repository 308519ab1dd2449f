"""Include/exclude path patterns for proto source selection."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from fnmatch import fnmatchcase
from typing import Any, Iterable

_GLOB_CHARS = frozenset("*?[")
_PROTO_SUFFIX = ".proto"


class MatchStrategy(str, Enum):
    """How a pattern is compared against a source-root-relative path."""

    EXACT = "exact"
    PREFIX = "prefix"
    GLOB = "glob"


@dataclass(frozen=True)
class PathPattern:
    """A single include or exclude rule evaluated against POSIX relative paths."""

    strategy: MatchStrategy
    value: str

    def matches(self, rel_path: str) -> bool:
        path = rel_path.replace("\\", "/").lstrip("/")
        if self.strategy is MatchStrategy.EXACT:
            return path == self.value or _strip_proto(path) == _strip_proto(self.value)
        if self.strategy is MatchStrategy.PREFIX:
            return _prefix_matches(path, self.value)
        return _glob_matches(path, self.value)

    def __str__(self) -> str:
        return f"{self.strategy.value}:{self.value}"


def parse_pattern(raw: Any) -> PathPattern:
    """Build a pattern from a config entry.

    Strings infer their strategy: glob metacharacters select ``glob``, a
    trailing ``.proto`` selects ``exact`` and anything else is a directory
    ``prefix``. Mappings name the strategy explicitly, e.g. ``{glob: "a/*.proto"}``.
    """
    if isinstance(raw, PathPattern):
        return raw
    if isinstance(raw, dict):
        if len(raw) != 1:
            raise ValueError(f"pattern mapping must have exactly one key: {raw!r}")
        ((key, value),) = raw.items()
        try:
            strategy = MatchStrategy(str(key).lower())
        except ValueError as exc:
            raise ValueError(f"unknown match strategy '{key}'") from exc
        return PathPattern(strategy, _normalise(str(value)))
    if not isinstance(raw, str):
        raise ValueError(f"pattern must be a string or mapping: {raw!r}")

    value = _normalise(raw)
    if not value:
        raise ValueError("empty path pattern")
    if any(char in _GLOB_CHARS for char in value):
        return PathPattern(MatchStrategy.GLOB, value)
    if value.endswith(_PROTO_SUFFIX):
        return PathPattern(MatchStrategy.EXACT, value)
    return PathPattern(MatchStrategy.PREFIX, value)


def matches_any(rel_path: str, patterns: Iterable[PathPattern]) -> bool:
    return any(pattern.matches(rel_path) for pattern in patterns)


def _normalise(value: str) -> str:
    normalised = value.strip().replace("\\", "/")
    while normalised.startswith("./"):
        normalised = normalised[2:]
    return normalised.lstrip("/")


def _strip_proto(path: str) -> str:
    return path[: -len(_PROTO_SUFFIX)] if path.endswith(_PROTO_SUFFIX) else path


def _prefix_matches(path: str, prefix: str) -> bool:
    prefix = prefix.rstrip("/")
    if not prefix:
        return True
    if path == prefix or _strip_proto(path) == prefix:
        return True
    return path.startswith(f"{prefix}/")


def _glob_matches(path: str, pattern: str) -> bool:
    if pattern.endswith("/**"):
        return _prefix_matches(path, pattern[:-3])
    if pattern.startswith("**/"):
        suffix = pattern[3:]
        if fnmatchcase(path, suffix) or fnmatchcase(path, pattern):
            return True
        return fnmatchcase(path, f"*/{suffix}")
    if "/**/" in pattern:
        # ``**`` may stand for zero directories as well as several.
        return fnmatchcase(path, pattern) or fnmatchcase(path, pattern.replace("/**/", "/"))
    return fnmatchcase(path, pattern)


__all__ = ["MatchStrategy", "PathPattern", "matches_any", "parse_pattern"]

"""
pretested-integration — ``pretested.toml`` schema, defaults, and validation.

File: src/pretested_integration/config/schema.py

Each section is a table of :class:`Field` specs. Validation walks the tables,
normalizes every value it accepts, and reports every problem under its dotted
path so one run shows the whole list.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal

from pretested_integration.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_GIT_EXECUTABLE,
    DEFAULT_INTEGRATION_BRANCH,
    DEFAULT_PROTECTED_BRANCHES,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

BRIDGE_KINDS: Final[tuple[str, ...]] = ("git",)
STRATEGY_KINDS: Final[tuple[str, ...]] = ("accumulated", "squash")
# ABORTED is never a meaningful threshold.
REQUIRED_RESULTS: Final[tuple[str, ...]] = ("SUCCESS", "UNSTABLE", "FAILURE")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

# Characters git refuses in ref names, plus whitespace.
_REF_NAME = re.compile(r"[^\s~^:?*\[\\]+")
_URL_USERINFO = re.compile(r"://[^/\s@]+@")
_SECRET_WORDS: Final[frozenset[str]] = frozenset(
    {"auth", "credential", "credentials", "passwd", "password", "secret", "token"}
)

EnvKind = Literal["text", "flag", "list", "int"]


class _Rejected(ValueError):
    """A single field value failed validation."""


@dataclass(frozen=True, slots=True)
class Field:
    """One config key: its default, how to normalize it, and how env vars spell it."""

    default: Any
    parse: Callable[[object], Any]
    env_kind: EnvKind = "text"
    is_path: bool = False


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Normalized config when valid; otherwise ``config`` is None and ``issues`` explain why."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered or '- <unknown>'}")


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade pretested.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade pretested-integration"
        )
    return "schema version is current"


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------


def _text(value: object) -> str:
    if not isinstance(value, str):
        raise _Rejected(f"expected string, got {type(value).__name__}")
    if not value.strip():
        raise _Rejected("must not be empty")
    if "\x00" in value:
        raise _Rejected("must not contain NUL bytes")
    return value.strip()


def _branch(value: object) -> str:
    name = _text(value)
    if name.startswith("-") or not _REF_NAME.fullmatch(name):
        raise _Rejected(f"invalid branch name {name!r}")
    return name


def _branches(value: object) -> list[str]:
    if not isinstance(value, (list, tuple)):
        raise _Rejected(f"expected list of branch names, got {type(value).__name__}")
    return sorted({_branch(item) for item in value})


def _remote(value: object) -> str:
    # Blank means "the default remote".
    if isinstance(value, str) and not value.strip():
        return ""
    name = _text(value)
    if not _REF_NAME.fullmatch(name):
        raise _Rejected("must be a valid remote name")
    return name


def _flag(value: object) -> bool:
    if not isinstance(value, bool):
        raise _Rejected(f"expected boolean, got {type(value).__name__}")
    return value


def _schema_version(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise _Rejected(f"expected integer, got {type(value).__name__}")
    if value != ConfigSchemaVersion:
        raise _Rejected(migration_guidance(value))
    return value


def _one_of(allowed: tuple[str, ...], fold: Callable[[str], str]) -> Callable[[object], str]:
    def parse(value: object) -> str:
        choice = fold(_text(value))
        if choice not in allowed:
            raise _Rejected(
                f"invalid value {choice!r}; expected one of: {', '.join(sorted(allowed))}"
            )
        return choice

    return parse


SECTIONS: Final[Mapping[str, Mapping[str, Field]]] = {
    "meta": {
        "schema_version": Field(ConfigSchemaVersion, _schema_version, env_kind="int"),
    },
    "bridge": {
        "kind": Field("git", _one_of(BRIDGE_KINDS, str.lower)),
        "branch": Field(DEFAULT_INTEGRATION_BRANCH, _branch),
        "repo_name": Field("", _remote),
        "required_result": Field("SUCCESS", _one_of(REQUIRED_RESULTS, str.upper)),
        "protected_branches": Field(
            list(DEFAULT_PROTECTED_BRANCHES), _branches, env_kind="list"
        ),
    },
    "strategy": {
        "kind": Field("squash", _one_of(STRATEGY_KINDS, str.lower)),
    },
    "git": {
        "executable": Field(DEFAULT_GIT_EXECUTABLE, _text),
    },
    "observability": {
        "log_level": Field("INFO", _one_of(LOG_LEVELS, str.upper)),
        "log_dir": Field(".pretested/logs", _text, is_path=True),
        "log_to_stdout": Field(False, _flag, env_kind="flag"),
        "redact_secrets": Field(True, _flag, env_kind="flag"),
    },
}

PATH_FIELDS: Final[tuple[tuple[str, str], ...]] = tuple(
    (section, key)
    for section, fields in SECTIONS.items()
    for key, entry in fields.items()
    if entry.is_path
)


def default_config() -> dict[str, Any]:
    """Fresh, mutable copy of the built-in defaults."""
    return {
        section: {key: copy.deepcopy(entry.default) for key, entry in fields.items()}
        for section, fields in SECTIONS.items()
    }


DEFAULT_CONFIG: Final[Mapping[str, Any]] = default_config()


def merge_config(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; tables merge, everything else replaces."""
    merged = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def validate_config(config: object) -> ConfigValidationResult:
    if not isinstance(config, Mapping):
        issue = ConfigValidationIssue("<root>", f"expected a table, got {type(config).__name__}")
        return ConfigValidationResult(config=None, issues=(issue,))

    issues: list[ConfigValidationIssue] = []
    _check_keys(config, SECTIONS, "", issues)

    normalized: dict[str, Any] = {}
    for section in sorted(SECTIONS):
        if section not in config:
            continue
        raw = config[section]
        if not isinstance(raw, Mapping):
            issues.append(
                ConfigValidationIssue(section, f"expected a table, got {type(raw).__name__}")
            )
            continue
        fields = SECTIONS[section]
        _check_keys(raw, fields, section, issues)
        values: dict[str, Any] = {}
        for key in sorted(fields):
            if key not in raw:
                continue
            try:
                values[key] = fields[key].parse(raw[key])
            except _Rejected as exc:
                issues.append(ConfigValidationIssue(f"{section}.{key}", str(exc)))
        normalized[section] = values

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: object) -> dict[str, Any]:
    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: object) -> dict[str, Any]:
    """Copy of ``config`` with secret-looking keys and URL credentials masked."""
    if not isinstance(config, Mapping):
        return {}
    return _redact(config)


def _check_keys(
    payload: Mapping[Any, Any],
    expected: Mapping[str, Any],
    path: str,
    issues: list[ConfigValidationIssue],
) -> None:
    for key in sorted(payload, key=str):
        if key in expected:
            continue
        message = (
            "embedded secret values are forbidden; configure credentials in git instead"
            if _is_secret_key(str(key))
            else "unknown field"
        )
        issues.append(ConfigValidationIssue(_dotted(path, str(key)), message))
    for key in sorted(expected):
        if key not in payload:
            issues.append(ConfigValidationIssue(_dotted(path, key), "missing required field"))


def _is_secret_key(key: str) -> bool:
    words = re.findall(r"[a-z0-9]+", re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", key).lower())
    return any(word in _SECRET_WORDS for word in words)


def _redact(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            key: "<redacted>" if _is_secret_key(str(key)) else _redact(item)
            for key, item in sorted(value.items(), key=lambda pair: str(pair[0]))
        }
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    if isinstance(value, str):
        return _URL_USERINFO.sub("://<redacted>@", value)
    return value


def _dotted(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


__all__ = [
    "BRIDGE_KINDS",
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "REQUIRED_RESULTS",
    "SECTIONS",
    "STRATEGY_KINDS",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "Field",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]

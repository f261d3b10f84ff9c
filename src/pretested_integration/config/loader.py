"""
pretested-integration — effective configuration for one CLI invocation.

File: src/pretested_integration/config/loader.py

Layers, lowest first: built-in defaults, ``pretested.toml``, ``PRETESTED_<SECTION>_<KEY>``
environment variables, CLI flags. The result is validated once, then path fields are
anchored to the directory holding the config file.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

from pretested_integration.config.schema import (
    PATH_FIELDS,
    SECTIONS,
    EnvKind,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)
from pretested_integration.constants import DEFAULT_CONFIG_FILE, ENV_PREFIX

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Config file unreadable, or an override that cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Build the validated effective config.

    Without ``config_path`` a ``pretested.toml`` in the working directory is used
    when present; an explicit path that does not exist is an error.
    """
    explicit = config_path is not None
    path = Path(config_path).expanduser() if explicit else Path.cwd() / DEFAULT_CONFIG_FILE
    path = path.resolve()

    layered = merge_config(default_config(), _read_toml(path, required=explicit))
    layered = merge_config(layered, _env_layer(os.environ if environ is None else environ))
    layered = merge_config(layered, _cli_layer(cli_overrides or {}))
    config = assert_valid_config(layered)

    for section, key in PATH_FIELDS:
        config[section][key] = _anchor(config[section][key], path.parent)
    return config


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    """The config as it is safe to print or log."""
    return redact_config(config)


def dump_effective_config(config: Mapping[str, object], *, indent: int | None = None) -> str:
    return json.dumps(
        effective_config(config),
        sort_keys=True,
        indent=indent,
        separators=(",", ":") if indent is None else (",", ": "),
        ensure_ascii=False,
    )


def env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.is_file():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _env_layer(environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for section, fields in SECTIONS.items():
        for key, entry in fields.items():
            name = env_name_for_path((section, key))
            if name in environ:
                layer.setdefault(section, {})[key] = _coerce(environ[name], entry.env_kind, name)
    return layer


def _coerce(raw: str, kind: EnvKind, name: str) -> object:
    value = raw.strip()
    if kind == "list":
        return [item.strip() for item in value.split(",") if item.strip()]
    if kind == "int":
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{name} must be an integer, got {raw!r}") from exc
    if kind == "flag":
        if value.lower() in _TRUTHY:
            return True
        if value.lower() in _FALSY:
            return False
        raise ConfigLoadError(f"{name} must be a boolean (true/false/1/0/yes/no/on/off)")
    return value


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    """``{"bridge.branch": "main"}`` becomes ``{"bridge": {"branch": "main"}}``; None is unset."""
    layer: dict[str, Any] = {}
    for dotted, value in overrides.items():
        if value is None:
            continue
        section, _, key = dotted.partition(".")
        if not section or not key:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        layer.setdefault(section, {})[key] = value
    return layer


def _anchor(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "dump_effective_config",
    "effective_config",
    "env_name_for_path",
    "load_config",
]

"""Stable constants shared across the integration workflow."""

from __future__ import annotations

from typing import Final

# Git defaults.
DEFAULT_INTEGRATION_BRANCH: Final[str] = "master"
DEFAULT_REMOTE_NAME: Final[str] = "origin"
DEFAULT_PROTECTED_BRANCHES: Final[tuple[str, ...]] = ("master",)
DEFAULT_GIT_EXECUTABLE: Final[str] = "git"

# Build log prefix for every line the workflow writes.
LOG_PREFIX: Final[str] = "[PREINT] "

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1

DEFAULT_CONFIG_FILE: Final[str] = "pretested.toml"
ENV_PREFIX: Final[str] = "PRETESTED_"

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_GIT_EXECUTABLE",
    "DEFAULT_INTEGRATION_BRANCH",
    "DEFAULT_PROTECTED_BRANCHES",
    "DEFAULT_REMOTE_NAME",
    "ENV_PREFIX",
    "LOG_PREFIX",
]

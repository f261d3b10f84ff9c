"""
pretested-integration config package public API.

File: src/pretested_integration/config/__init__.py

Purpose
- Export config loading/validation entrypoints and public error types.
"""

from pretested_integration.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    effective_config,
    env_name_for_path,
    load_config,
)
from pretested_integration.config.schema import (
    BRIDGE_KINDS,
    DEFAULT_CONFIG,
    STRATEGY_KINDS,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
    validate_config,
)

__all__ = [
    "BRIDGE_KINDS",
    "DEFAULT_CONFIG",
    "STRATEGY_KINDS",
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "effective_config",
    "env_name_for_path",
    "load_config",
    "merge_config",
    "redact_config",
    "validate_config",
]

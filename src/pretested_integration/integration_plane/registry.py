"""Lookup of bridge and strategy implementations by key or display name."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Generic, TypeVar

from pretested_integration.constants import DEFAULT_INTEGRATION_BRANCH, DEFAULT_PROTECTED_BRANCHES
from pretested_integration.domain.models import BuildResult
from pretested_integration.integration_plane.bridge import SCMBridge
from pretested_integration.integration_plane.git_bridge import GitBridge
from pretested_integration.integration_plane.strategies import (
    AccumulatedCommitStrategy,
    IntegrationStrategy,
    SquashCommitStrategy,
)

T = TypeVar("T")

DEFAULT_STRATEGY_KEY = SquashCommitStrategy.key
DEFAULT_BRIDGE_KEY = GitBridge.kind


class _Registry(Generic[T]):
    def __init__(self, label: str) -> None:
        self._label = label
        self._entries: dict[str, type[T]] = {}
        self._display: dict[str, str] = {}

    def register(self, key: str, implementation: type[T], display_name: str) -> type[T]:
        normalized = key.strip().lower()
        if not normalized:
            raise ValueError(f"{self._label} key cannot be empty")
        if normalized in self._entries:
            raise ValueError(f"duplicate {self._label} key: {normalized}")
        self._entries[normalized] = implementation
        self._display[normalized] = display_name
        return implementation

    def get(self, name: str) -> type[T]:
        """Resolve ``name`` as a key first, then as a display name (case-insensitive)."""
        normalized = name.strip().lower()
        if normalized in self._entries:
            return self._entries[normalized]
        for key, display in self._display.items():
            if display.lower() == normalized:
                return self._entries[key]
        known = ", ".join(sorted(self._entries))
        raise KeyError(f"unknown {self._label} {name!r}; expected one of: {known}")

    def keys(self) -> tuple[str, ...]:
        return tuple(sorted(self._entries))

    def display_names(self) -> tuple[str, ...]:
        return tuple(self._display[key] for key in self.keys())

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        try:
            self.get(name)
        except KeyError:
            return False
        return True


class StrategyRegistry(_Registry[IntegrationStrategy]):
    def __init__(self) -> None:
        _Registry.__init__(self, "strategy")

    def add(self, strategy: type[IntegrationStrategy]) -> type[IntegrationStrategy]:
        return self.register(strategy.key, strategy, strategy.display_name)

    def create(self, name: str = DEFAULT_STRATEGY_KEY) -> IntegrationStrategy:
        return self.get(name)()

    def strategies_for(self, bridge_kind: str) -> tuple[type[IntegrationStrategy], ...]:
        return tuple(
            self._entries[key] for key in self.keys() if self._entries[key].supports(bridge_kind)
        )


class BridgeRegistry(_Registry[SCMBridge]):
    def __init__(self) -> None:
        _Registry.__init__(self, "bridge")

    def add(self, bridge: type[SCMBridge]) -> type[SCMBridge]:
        return self.register(bridge.kind, bridge, bridge.display_name)


def default_strategy_registry() -> StrategyRegistry:
    registry = StrategyRegistry()
    registry.add(SquashCommitStrategy)
    registry.add(AccumulatedCommitStrategy)
    return registry


def default_bridge_registry() -> BridgeRegistry:
    registry = BridgeRegistry()
    registry.add(GitBridge)
    return registry


def build_bridge(
    config: Mapping[str, Any],
    *,
    bridges: BridgeRegistry | None = None,
    strategies: StrategyRegistry | None = None,
) -> SCMBridge:
    """Materialize the configured bridge and its strategy.

    ``config`` is the effective configuration mapping; only the ``bridge`` and
    ``strategy`` sections are read. Missing keys fall back to the defaults.
    """
    bridges = bridges or default_bridge_registry()
    strategies = strategies or default_strategy_registry()

    bridge_section: Mapping[str, Any] = config.get("bridge") or {}
    strategy_section: Mapping[str, Any] = config.get("strategy") or {}

    bridge_cls = bridges.get(str(bridge_section.get("kind") or DEFAULT_BRIDGE_KEY))
    strategy = strategies.create(str(strategy_section.get("kind") or DEFAULT_STRATEGY_KEY))

    protected = bridge_section.get("protected_branches")
    return bridge_cls(
        integration_strategy=strategy,
        branch=str(bridge_section.get("branch") or DEFAULT_INTEGRATION_BRANCH),
        repo_name=bridge_section.get("repo_name") or None,
        required_result=BuildResult.parse(bridge_section.get("required_result") or "SUCCESS"),
        protected_branches=(
            tuple(protected) if protected is not None else DEFAULT_PROTECTED_BRANCHES
        ),
    )


__all__ = [
    "DEFAULT_BRIDGE_KEY",
    "DEFAULT_STRATEGY_KEY",
    "BridgeRegistry",
    "StrategyRegistry",
    "build_bridge",
    "default_bridge_registry",
    "default_strategy_registry",
]

"""Backend-agnostic SCM bridge contract.

A bridge owns one integration strategy and knows how to, for one
version-control backend:

- decide whether a build is applicable for pretested integration;
- force the workspace onto the integration branch at the remote tip;
- merge the candidate through its strategy;
- push the result and delete the integrated source branch.

Bridges are immutable configuration values shared by every build of a job.
Per-build state lives in :class:`~pretested_integration.domain.models.BuildContext`.
"""

from __future__ import annotations

import dataclasses
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

import structlog

from pretested_integration.constants import (
    DEFAULT_INTEGRATION_BRANCH,
    DEFAULT_PROTECTED_BRANCHES,
    DEFAULT_REMOTE_NAME,
)
from pretested_integration.domain.models import BranchRef, BuildResult, Commit
from pretested_integration.integration_plane.errors import (
    EstablishingWorkspaceFailed,
    NextCommitFailure,
    PretestedIntegrationError,
)
from pretested_integration.integration_plane.outcomes import FailureKind, PhaseOutcome
from pretested_integration.integration_plane.strategies import (
    IntegrationRequest,
    IntegrationStrategy,
)

if TYPE_CHECKING:
    from pretested_integration.domain.models import (
        BuildContext,
        BuildRecord,
        ProjectConfiguration,
        Revision,
    )

_LOGGER = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SCMBridge(ABC):
    integration_strategy: IntegrationStrategy
    branch: str = DEFAULT_INTEGRATION_BRANCH
    repo_name: str | None = None
    required_result: BuildResult = BuildResult.SUCCESS
    protected_branches: tuple[str, ...] = DEFAULT_PROTECTED_BRANCHES

    kind: ClassVar[str]
    display_name: ClassVar[str]

    def __post_init__(self) -> None:
        if not isinstance(self.integration_strategy, IntegrationStrategy):
            raise TypeError("integration_strategy must be an IntegrationStrategy")
        if not self.integration_strategy.supports(self.kind):
            raise ValueError(
                f"strategy {self.integration_strategy.display_name!r} "
                f"does not support {self.display_name} bridges"
            )
        branch = (self.branch or "").strip() or DEFAULT_INTEGRATION_BRANCH
        repo_name = (self.repo_name or "").strip() or None
        protected = tuple(
            sorted({name.strip() for name in self.protected_branches if name and name.strip()})
        )
        object.__setattr__(self, "branch", branch)
        object.__setattr__(self, "repo_name", repo_name)
        object.__setattr__(self, "required_result", BuildResult.parse(self.required_result))
        object.__setattr__(self, "protected_branches", protected)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def remote(self) -> str:
        return self.repo_name or DEFAULT_REMOTE_NAME

    def get_required_result(self) -> BuildResult:
        return self.required_result

    def reconfigure(self, **changes: Any) -> SCMBridge:
        """Return a new bridge with ``changes`` applied; this one is left untouched."""
        return dataclasses.replace(self, **changes)

    @abstractmethod
    def validate_configuration(self, project: ProjectConfiguration) -> None:
        """Raise UnsupportedConfiguration when one repository cannot be resolved."""

    # ------------------------------------------------------------------
    # Pre-build
    # ------------------------------------------------------------------

    @abstractmethod
    def is_applicable(self, build: BuildRecord) -> bool:
        """Fail closed: False when the build carries no usable revision metadata."""

    @abstractmethod
    def ensure_branch(self, ctx: BuildContext, branch: str) -> None:
        """Force the workspace onto ``branch`` at the remote tip."""

    @abstractmethod
    def next_commit(self, ctx: BuildContext) -> Commit:
        """Resolve the commit that triggered the build."""

    @abstractmethod
    def determine_integration_head(self, ctx: BuildContext) -> Commit:
        """Current tip of the integration branch, or the unset commit."""

    def merge_changes(self, ctx: BuildContext) -> PhaseOutcome:
        """Delegate to the owned strategy and normalize its outcome."""
        try:
            candidate = self.next_commit(ctx)
        except NextCommitFailure as exc:
            return PhaseOutcome.from_error(exc)

        source = self.source_branch(ctx.build)
        request = IntegrationRequest(
            scm=ctx.scm,
            workspace=ctx.workspace,
            candidate=candidate,
            source_branch=source.name if source is not None else candidate.id,
            integration_branch=self.branch,
            log=ctx.log,
        )
        try:
            outcome = self.integration_strategy.integrate(request)
        except PretestedIntegrationError as exc:
            outcome = PhaseOutcome.from_error(exc)

        if outcome.is_failed and outcome.reason is not FailureKind.INTEGRATION_FAILED:
            outcome = PhaseOutcome.failed(
                FailureKind.INTEGRATION_FAILED,
                outcome.message,
                output=outcome.output,
                cause=outcome.cause,
            )
        _LOGGER.info(
            "merge_changes",
            strategy=self.integration_strategy.key,
            candidate=candidate.id,
            outcome=outcome.kind.value,
            reason=outcome.reason.value if outcome.reason else None,
        )
        return outcome

    def prepare_workspace(self, ctx: BuildContext) -> PhaseOutcome:
        """ensure_branch followed by merge_changes."""
        try:
            self.ensure_branch(ctx, self.branch)
        except EstablishingWorkspaceFailed as exc:
            return PhaseOutcome.from_error(exc)
        return self.merge_changes(ctx)

    # ------------------------------------------------------------------
    # Post-build
    # ------------------------------------------------------------------

    @abstractmethod
    def commit(self, ctx: BuildContext) -> None:
        """Push the merged integration branch."""

    @abstractmethod
    def delete_integrated_branch(self, ctx: BuildContext) -> bool:
        """Delete the remote source branch; False when there was nothing to delete."""

    def update_build_description(self, ctx: BuildContext) -> None:
        """Best effort: annotate the build with the source branch name."""
        source = self.source_branch(ctx.build)
        if source is None:
            return
        text = self.create_build_description(ctx.build.description, source.name)
        try:
            ctx.build.set_description(text)
        except Exception as exc:  # noqa: BLE001 - cosmetic annotation must never fail a build.
            _LOGGER.debug("build_description_failed", error=str(exc))

    @staticmethod
    def create_build_description(existing: str, branch: str) -> str:
        if existing.strip():
            return f"{existing}<br/>Branch: {branch}"
        return f"Branch: {branch}"

    # ------------------------------------------------------------------
    # Protected branch guard
    # ------------------------------------------------------------------

    def protected_names(self) -> frozenset[str]:
        return frozenset((*self.protected_branches, self.branch))

    def protected_branch_violation(self, build: BuildRecord) -> str | None:
        source = self.source_branch(build)
        if source is None:
            return None
        stripped = self._strip_remote(source.name)
        if stripped in self.protected_names():
            return source.name
        return None

    def enforce_protected_branch(self, ctx: BuildContext) -> bool:
        """Force FAILURE when the build was triggered by a protected branch."""
        violating = self.protected_branch_violation(ctx.build)
        if violating is None:
            return False
        ctx.log.println(
            f"Using the {violating} branch for polling and development is not allowed since "
            "it will attempt to merge it to other branches and delete it after."
        )
        ctx.build.set_result(BuildResult.FAILURE)
        _LOGGER.warning("protected_branch_build", branch=violating)
        return True

    # ------------------------------------------------------------------
    # Branch resolution
    # ------------------------------------------------------------------

    def select_source_branch(self, revision: Revision) -> BranchRef | None:
        """Pick the authoritative branch when several point at one revision.

        Branches qualified by the configured remote win, then branches that are
        not protected, then the lexicographically smallest name.
        """
        branches = tuple(revision.branches)
        if not branches:
            return None
        qualified = [ref for ref in branches if ref.is_qualified_by(self.remote)] or list(branches)
        protected = self.protected_names()
        unprotected = [ref for ref in qualified if self._strip_remote(ref.name) not in protected]
        pool = unprotected or qualified
        chosen = min(pool, key=lambda ref: ref.name)
        if len(branches) > 1:
            _LOGGER.warning(
                "ambiguous_revision_branches",
                branches=sorted(ref.name for ref in branches),
                chosen=chosen.name,
            )
        return chosen

    def source_branch(self, build: BuildRecord) -> BranchRef | None:
        if build.build_data is None:
            return None
        return self.select_source_branch(build.build_data.revision)

    def lock_key(self, ctx: BuildContext) -> tuple[str, str]:
        return (self.remote, self.branch)

    def _strip_remote(self, name: str) -> str:
        prefix = f"{self.remote}/"
        if name.startswith(prefix):
            return name[len(prefix) :]
        return name


__all__ = ["SCMBridge"]

"""Pluggable merge algorithms applied to the checked-out integration branch.

Every strategy honours the same contract:

- afterwards the integration branch holds the candidate's full change;
- a candidate already contained in the branch yields a SKIP outcome tagged
  ``INTEGRATION_ALLOWED_NO_COMMIT`` instead of a failure;
- a conflict yields a FAILED outcome and leaves no merge state behind, so the
  next forced checkout of the workspace succeeds.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

import structlog

from pretested_integration.domain.models import Commit
from pretested_integration.integration_plane.outcomes import FailureKind, PhaseOutcome

if TYPE_CHECKING:
    from pretested_integration.integration_plane.scm_client import CommandResult, SCMClient
    from pretested_integration.observability.build_log import BuildLog

_LOGGER = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class IntegrationRequest:
    """Everything a strategy needs to integrate one candidate commit."""

    scm: SCMClient
    workspace: Path
    candidate: Commit
    source_branch: str
    integration_branch: str
    log: BuildLog

    def git(self, *args: str) -> CommandResult:
        return self.scm.run(args, cwd=self.workspace)


class IntegrationStrategy(ABC):
    """Merge algorithm owned by exactly one bridge; read-only after construction."""

    __slots__ = ()

    key: ClassVar[str]
    display_name: ClassVar[str]
    supported_bridges: ClassVar[frozenset[str]] = frozenset({"git"})

    @classmethod
    def supports(cls, bridge_kind: str) -> bool:
        return bridge_kind in cls.supported_bridges

    @abstractmethod
    def integrate(self, request: IntegrationRequest) -> PhaseOutcome:
        """Merge ``request.candidate`` into the checked-out integration branch."""

    def _precheck(self, request: IntegrationRequest) -> PhaseOutcome | None:
        if not request.candidate:
            return PhaseOutcome.failed(
                FailureKind.INTEGRATION_FAILED, "No candidate commit to integrate"
            )

        current = request.git("rev-parse", "--abbrev-ref", "HEAD")
        current_branch = current.stdout.strip()
        if not current.ok or current_branch != request.integration_branch:
            return PhaseOutcome.failed(
                FailureKind.INTEGRATION_FAILED,
                (
                    f"Workspace is on {current_branch or 'an unknown branch'!r}, "
                    f"expected integration branch {request.integration_branch!r}"
                ),
                output=current.output,
            )

        contained = request.git("merge-base", "--is-ancestor", request.candidate.id, "HEAD")
        if contained.returncode == 0:
            request.log.println(
                f"Commit {request.candidate} is already part of {request.integration_branch}"
            )
            return PhaseOutcome.skip(
                FailureKind.INTEGRATION_ALLOWED_NO_COMMIT,
                f"{request.source_branch} is already integrated",
            )
        if contained.returncode != 1:
            return PhaseOutcome.failed(
                FailureKind.INTEGRATION_FAILED,
                f"Could not resolve candidate commit {request.candidate}",
                output=contained.output,
            )
        return None

    def _head(self, request: IntegrationRequest) -> Commit:
        head = request.git("rev-parse", "HEAD")
        return Commit(head.stdout.strip()) if head.ok else Commit.unset()

    def _discard_merge_state(self, request: IntegrationRequest) -> None:
        request.git("merge", "--abort")
        request.git("reset", "--hard", "HEAD")


@dataclass(frozen=True, slots=True)
class SquashCommitStrategy(IntegrationStrategy):
    """Squash the candidate's commits into one, reusing its author and message."""

    key: ClassVar[str] = "squash"
    display_name: ClassVar[str] = "Squash commit"

    def integrate(self, request: IntegrationRequest) -> PhaseOutcome:
        early = self._precheck(request)
        if early is not None:
            return early

        request.log.println(
            f"Squashing {request.source_branch} ({request.candidate}) "
            f"into {request.integration_branch}"
        )
        merged = request.git("merge", "--squash", request.candidate.id)
        if not merged.ok:
            self._discard_merge_state(request)
            _LOGGER.info("squash_conflict", candidate=request.candidate.id)
            return PhaseOutcome.failed(
                FailureKind.INTEGRATION_FAILED,
                f"Squash of {request.source_branch} into {request.integration_branch} failed",
                output=merged.output,
            )

        staged = request.git("diff", "--cached", "--quiet")
        if staged.returncode == 0:
            self._discard_merge_state(request)
            return PhaseOutcome.skip(
                FailureKind.INTEGRATION_ALLOWED_NO_COMMIT,
                f"{request.source_branch} introduces no changes to {request.integration_branch}",
            )

        committed = request.git("commit", "--no-edit", "-C", request.candidate.id)
        if not committed.ok:
            self._discard_merge_state(request)
            return PhaseOutcome.failed(
                FailureKind.INTEGRATION_FAILED,
                "Failed to commit squashed changes",
                output=committed.output,
            )

        return PhaseOutcome.applied(
            f"Squashed {request.source_branch}", output=committed.output, head=self._head(request)
        )


@dataclass(frozen=True, slots=True)
class AccumulatedCommitStrategy(IntegrationStrategy):
    """Merge with ``--no-ff``, keeping every commit of the source branch."""

    key: ClassVar[str] = "accumulated"
    display_name: ClassVar[str] = "Accumulated commit"

    def integrate(self, request: IntegrationRequest) -> PhaseOutcome:
        early = self._precheck(request)
        if early is not None:
            return early

        history = request.git("log", "--pretty=format:%h %s", f"HEAD..{request.candidate.id}")
        message = f"Accumulated commit of the following from branch '{request.source_branch}':"
        if history.ok and history.stdout.strip():
            message = f"{message}\n\n{history.stdout.strip()}"

        request.log.println(
            f"Merging {request.source_branch} ({request.candidate}) "
            f"into {request.integration_branch}"
        )
        merged = request.git("merge", "--no-ff", "-m", message, request.candidate.id)
        if not merged.ok:
            self._discard_merge_state(request)
            _LOGGER.info("accumulated_conflict", candidate=request.candidate.id)
            return PhaseOutcome.failed(
                FailureKind.INTEGRATION_FAILED,
                f"Merge of {request.source_branch} into {request.integration_branch} failed",
                output=merged.output,
            )

        return PhaseOutcome.applied(
            f"Merged {request.source_branch}", output=merged.output, head=self._head(request)
        )


__all__ = [
    "AccumulatedCommitStrategy",
    "IntegrationRequest",
    "IntegrationStrategy",
    "SquashCommitStrategy",
]

"""Explicit result type for workflow phases and integration strategies."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Final

from pretested_integration.domain.models import Commit

if TYPE_CHECKING:
    from pretested_integration.integration_plane.errors import PretestedIntegrationError


class OutcomeKind(StrEnum):
    SKIP = "skip"
    APPLIED = "applied"
    FAILED = "failed"


class FailureKind(StrEnum):
    """Reason tags shared by exceptions and outcomes."""

    NOTHING_TO_DO = "nothing_to_do"
    INTEGRATION_ALLOWED_NO_COMMIT = "integration_allowed_no_commit"
    UNSUPPORTED_CONFIGURATION = "unsupported_configuration"
    ESTABLISHING_WORKSPACE_FAILED = "establishing_workspace_failed"
    INTEGRATION_FAILED = "integration_failed"
    NEXT_COMMIT_FAILURE = "next_commit_failure"
    COMMIT_CHANGES_FAILURE = "commit_changes_failure"
    BRANCH_DELETION_FAILED = "branch_deletion_failed"
    PROTECTED_BRANCH = "protected_branch"
    BUILD_BELOW_THRESHOLD = "build_below_threshold"
    BUILD_CANCELLED = "build_cancelled"


SOFT_KINDS: Final[frozenset[FailureKind]] = frozenset(
    {FailureKind.NOTHING_TO_DO, FailureKind.INTEGRATION_ALLOWED_NO_COMMIT}
)

# Failures that must stop the build before the payload runs.
FATAL_KINDS: Final[frozenset[FailureKind]] = frozenset(
    {
        FailureKind.UNSUPPORTED_CONFIGURATION,
        FailureKind.ESTABLISHING_WORKSPACE_FAILED,
        FailureKind.INTEGRATION_FAILED,
        FailureKind.NEXT_COMMIT_FAILURE,
    }
)


@dataclass(frozen=True, slots=True)
class PhaseOutcome:
    kind: OutcomeKind
    reason: FailureKind | None = None
    message: str = ""
    output: str = ""
    cause: BaseException | None = None
    head: Commit = Commit.unset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", OutcomeKind(self.kind))
        if self.reason is not None:
            object.__setattr__(self, "reason", FailureKind(self.reason))
        if self.kind is OutcomeKind.FAILED and self.reason is None:
            raise ValueError("failed outcomes require a reason")
        if self.kind is not OutcomeKind.FAILED and self.reason in FATAL_KINDS:
            raise ValueError(f"{self.reason} cannot tag a {self.kind} outcome")

    @classmethod
    def skip(
        cls,
        reason: FailureKind = FailureKind.NOTHING_TO_DO,
        message: str = "",
        *,
        output: str = "",
        head: Commit = Commit.unset(),
    ) -> PhaseOutcome:
        return cls(OutcomeKind.SKIP, reason=reason, message=message, output=output, head=head)

    @classmethod
    def applied(
        cls, message: str = "", *, output: str = "", head: Commit = Commit.unset()
    ) -> PhaseOutcome:
        return cls(OutcomeKind.APPLIED, message=message, output=output, head=head)

    @classmethod
    def failed(
        cls,
        reason: FailureKind,
        message: str,
        *,
        output: str = "",
        cause: BaseException | None = None,
    ) -> PhaseOutcome:
        return cls(OutcomeKind.FAILED, reason=reason, message=message, output=output, cause=cause)

    @classmethod
    def from_error(cls, error: PretestedIntegrationError) -> PhaseOutcome:
        message = error.summary
        if error.kind in SOFT_KINDS:
            return cls.skip(error.kind, message, output=error.output)
        return cls.failed(error.kind, message, output=error.output, cause=error)

    @property
    def is_skip(self) -> bool:
        return self.kind is OutcomeKind.SKIP

    @property
    def is_applied(self) -> bool:
        return self.kind is OutcomeKind.APPLIED

    @property
    def is_failed(self) -> bool:
        return self.kind is OutcomeKind.FAILED

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"kind": self.kind.value}
        if self.reason is not None:
            payload["reason"] = self.reason.value
        if self.message:
            payload["message"] = self.message
        if self.output:
            payload["output"] = self.output
        if self.head:
            payload["head"] = self.head.id
        return payload


__all__ = ["FATAL_KINDS", "SOFT_KINDS", "FailureKind", "OutcomeKind", "PhaseOutcome"]

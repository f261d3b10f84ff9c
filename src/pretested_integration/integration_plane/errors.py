"""Error taxonomy raised by bridges and converted to outcomes by the workflow."""

from __future__ import annotations

from typing import ClassVar

from pretested_integration.integration_plane.outcomes import FailureKind


class PretestedIntegrationError(RuntimeError):
    """Base error carrying a failure tag and captured process output."""

    kind: ClassVar[FailureKind]

    def __init__(
        self,
        message: str,
        *,
        output: str = "",
        cause: BaseException | None = None,
    ) -> None:
        self.output = output
        self.cause = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    @property
    def summary(self) -> str:
        """The message without the captured output."""
        return str(self.args[0]) if self.args else type(self).__name__

    def __str__(self) -> str:
        message = self.summary
        if self.output.strip():
            return f"{message}\n{self.output.strip()}"
        return message


class NothingToDo(PretestedIntegrationError):
    kind = FailureKind.NOTHING_TO_DO


class IntegrationAllowedNoCommit(PretestedIntegrationError):
    """The candidate is already contained in the integration branch."""

    kind = FailureKind.INTEGRATION_ALLOWED_NO_COMMIT


class UnsupportedConfiguration(PretestedIntegrationError):
    kind = FailureKind.UNSUPPORTED_CONFIGURATION

    ILLEGAL_CONFIG_NO_REPO_NAME_DEFINED = (
        "You have included multiple git repositories in your configuration, but have not "
        "defined a repository name for pretested integration"
    )


class EstablishingWorkspaceFailed(PretestedIntegrationError):
    kind = FailureKind.ESTABLISHING_WORKSPACE_FAILED


class IntegrationFailed(PretestedIntegrationError):
    kind = FailureKind.INTEGRATION_FAILED


class NextCommitFailure(PretestedIntegrationError):
    kind = FailureKind.NEXT_COMMIT_FAILURE


class CommitChangesFailure(PretestedIntegrationError):
    kind = FailureKind.COMMIT_CHANGES_FAILURE


class BranchDeletionFailed(PretestedIntegrationError):
    kind = FailureKind.BRANCH_DELETION_FAILED


__all__ = [
    "BranchDeletionFailed",
    "CommitChangesFailure",
    "EstablishingWorkspaceFailed",
    "IntegrationAllowedNoCommit",
    "IntegrationFailed",
    "NextCommitFailure",
    "NothingToDo",
    "PretestedIntegrationError",
    "UnsupportedConfiguration",
]

"""Git implementation of the SCM bridge."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

import structlog

from pretested_integration.domain.models import Commit
from pretested_integration.integration_plane.bridge import SCMBridge
from pretested_integration.integration_plane.errors import (
    BranchDeletionFailed,
    CommitChangesFailure,
    EstablishingWorkspaceFailed,
    NextCommitFailure,
    UnsupportedConfiguration,
)

if TYPE_CHECKING:
    from pretested_integration.domain.models import (
        BuildContext,
        BuildRecord,
        ProjectConfiguration,
        ScmConfiguration,
    )

_LOGGER = structlog.get_logger(__name__)

_LS_REMOTE_NO_MATCH = 2
# git reports a ref that vanished between ls-remote and the push this way; hooks may
# print other refusals, which must surface as failures.
_MISSING_REMOTE_REF_MESSAGE = "remote ref does not exist"


@dataclass(frozen=True, slots=True)
class GitBridge(SCMBridge):
    kind: ClassVar[str] = "git"
    display_name: ClassVar[str] = "Git"

    def validate_configuration(self, project: ProjectConfiguration) -> None:
        if not project.scms:
            raise UnsupportedConfiguration("No SCM is configured for this job")

        git_scms = project.scms_of_kind(self.kind)
        if not project.is_multi_scm:
            if not git_scms:
                raise UnsupportedConfiguration(
                    "We only support git and multiple SCM configurations"
                )
            self._validate_git_scm(git_scms[0])
        else:
            if not git_scms:
                raise UnsupportedConfiguration("No git repository configured in multi SCM")
            for scm in git_scms:
                self._validate_git_scm(scm)
            if len(git_scms) > 1 and self.repo_name is None:
                raise UnsupportedConfiguration(
                    UnsupportedConfiguration.ILLEGAL_CONFIG_NO_REPO_NAME_DEFINED
                )

        if self.repo_name is not None:
            names = sorted(
                {repo.name for scm in git_scms for repo in scm.repositories if repo.name}
            )
            if names and self.repo_name not in names:
                raise UnsupportedConfiguration(
                    f"Repository {self.repo_name!r} is not configured; "
                    f"available repositories: {', '.join(names)}"
                )

    def _validate_git_scm(self, scm: ScmConfiguration) -> None:
        if not scm.repositories:
            raise UnsupportedConfiguration("Git SCM has no repositories configured")
        if len(scm.repositories) > 1 and self.repo_name is None:
            raise UnsupportedConfiguration(
                UnsupportedConfiguration.ILLEGAL_CONFIG_NO_REPO_NAME_DEFINED
            )

    def is_applicable(self, build: BuildRecord) -> bool:
        source = self.source_branch(build)
        if source is None:
            return False
        return source.is_qualified_by(self.remote)

    def ensure_branch(self, ctx: BuildContext, branch: str) -> None:
        ctx.log.println(
            f"Checking out integration target branch {branch} and pulling latest changes"
        )
        steps = (
            ("fetch", self.remote, branch),
            ("checkout", "-f", "-B", branch, f"{self.remote}/{branch}"),
            ("pull", "--ff-only", self.remote, branch),
        )
        for args in steps:
            result = ctx.scm.run(args, cwd=ctx.workspace)
            if not result.ok:
                _LOGGER.error("ensure_branch_failed", step=args[0], returncode=result.returncode)
                raise EstablishingWorkspaceFailed(
                    f"Failed to establish workspace on {self.remote}/{branch} "
                    f"(git {args[0]} exited {result.returncode})",
                    output=result.output,
                )

    def next_commit(self, ctx: BuildContext) -> Commit:
        build_data = ctx.build.build_data
        if build_data is None:
            raise NextCommitFailure("No revision metadata attached to the build")
        source = self.select_source_branch(build_data.revision)
        if source is None:
            raise NextCommitFailure("The build revision carries no branch")
        sha = source.sha or build_data.revision.sha
        if not sha:
            raise NextCommitFailure(f"No commit recorded for branch {source.name}")
        _LOGGER.debug("next_commit", branch=source.name, sha=sha)
        return Commit(sha)

    def determine_integration_head(self, ctx: BuildContext) -> Commit:
        listing = ctx.scm.run(
            ("for-each-ref", "--format=%(objectname) %(refname)", "refs/heads", "refs/remotes"),
            cwd=ctx.workspace,
        )
        if not listing.ok:
            _LOGGER.error("integration_head_lookup_failed", output=listing.output)
            return Commit.unset()

        local_ref = f"refs/heads/{self.branch}"
        remote_ref = f"refs/remotes/{self.remote}/{self.branch}"
        found: dict[str, str] = {}
        for line in listing.stdout.splitlines():
            sha, _, ref = line.strip().partition(" ")
            if ref in (local_ref, remote_ref):
                found[ref] = sha
        return Commit(found.get(local_ref) or found.get(remote_ref) or "")

    def commit(self, ctx: BuildContext) -> None:
        result = ctx.scm.run(("push", self.remote, self.branch), cwd=ctx.workspace)
        if not result.ok:
            raise CommitChangesFailure(
                f"Failed to commit integrated changes to {self.remote}/{self.branch}",
                output=result.output,
            )

    def delete_integrated_branch(self, ctx: BuildContext) -> bool:
        result = ctx.build.result
        if result is None or not result.is_better_or_equal_to(self.required_result):
            return False

        source = self.source_branch(ctx.build)
        if source is None:
            return False
        name = self._strip_remote(source.name)
        ref = f"refs/heads/{name}"

        listed = ctx.scm.run(
            ("ls-remote", "--exit-code", "--heads", self.remote, ref), cwd=ctx.workspace
        )
        if listed.returncode == _LS_REMOTE_NO_MATCH or (
            listed.ok and not any(line.endswith(f"\t{ref}") for line in listed.stdout.splitlines())
        ):
            ctx.log.println(f"Branch {source.name} is already deleted")
            return False
        if not listed.ok:
            raise BranchDeletionFailed(
                f"Failed to look up the remote branch {source.name}", output=listed.output
            )

        deleted = ctx.scm.run(("push", self.remote, f":{ref}"), cwd=ctx.workspace)
        if deleted.ok:
            return True
        if _MISSING_REMOTE_REF_MESSAGE in deleted.output.lower():
            ctx.log.println(f"Branch {source.name} was deleted concurrently")
            return False
        raise BranchDeletionFailed(
            f"Failed to delete the remote branch {source.name}", output=deleted.output
        )

    def lock_key(self, ctx: BuildContext) -> tuple[str, str]:
        url = ctx.scm.run(("remote", "get-url", self.remote), cwd=ctx.workspace)
        repository = url.stdout.strip() if url.ok and url.stdout.strip() else self.remote
        return (repository, self.branch)


__all__ = ["GitBridge"]

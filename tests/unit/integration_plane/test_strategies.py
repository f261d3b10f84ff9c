"""
pretested-integration — tests for merge strategies.

File: tests/unit/integration_plane/test_strategies.py

Purpose
- Exercise squash and accumulated integration against real temporary git
  repositories, including conflicts and already-integrated candidates.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from conftest import run_git

from pretested_integration.domain.models import Commit
from pretested_integration.integration_plane.outcomes import FailureKind
from pretested_integration.integration_plane.scm_client import GitCLIClient
from pretested_integration.integration_plane.strategies import (
    AccumulatedCommitStrategy,
    IntegrationRequest,
    IntegrationStrategy,
    SquashCommitStrategy,
)
from pretested_integration.observability.build_log import BuildLog

if TYPE_CHECKING:
    from conftest import RemoteRig


def _request(rig: RemoteRig, candidate: str, source: str = "origin/feature") -> IntegrationRequest:
    return IntegrationRequest(
        scm=GitCLIClient(),
        workspace=rig.workspace,
        candidate=Commit(candidate),
        source_branch=source,
        integration_branch="main",
        log=BuildLog(),
    )


def _is_clean(rig: RemoteRig) -> bool:
    status = run_git(rig.workspace, "status", "--porcelain")
    merge_head = rig.workspace / ".git" / "MERGE_HEAD"
    return status.stdout.strip() == "" and not merge_head.exists()


def test_squash_creates_single_commit_with_candidate_author_and_message(rig: RemoteRig) -> None:
    candidate = rig.push_feature("feature", {"a.txt": "a\n", "b.txt": "b\n"})
    rig.workspace_fetch()
    before = run_git(rig.workspace, "rev-parse", "HEAD").stdout.strip()

    outcome = SquashCommitStrategy().integrate(_request(rig, candidate))

    assert outcome.is_applied, outcome
    head = run_git(rig.workspace, "rev-parse", "HEAD").stdout.strip()
    assert outcome.head == Commit(head)
    assert run_git(rig.workspace, "rev-parse", "HEAD^").stdout.strip() == before
    assert (rig.workspace / "a.txt").read_text(encoding="utf-8") == "a\n"
    assert (rig.workspace / "b.txt").read_text(encoding="utf-8") == "b\n"
    author = run_git(rig.workspace, "log", "-1", "--format=%an <%ae>").stdout.strip()
    assert author == "Dev Eloper <dev@example.com>"
    subject = run_git(rig.workspace, "log", "-1", "--format=%s").stdout.strip()
    assert subject == "Update b.txt"
    # Not a merge commit: exactly one parent.
    parents = run_git(rig.workspace, "log", "-1", "--format=%P").stdout.split()
    assert len(parents) == 1


def test_accumulated_merges_with_no_ff_and_lists_commits(rig: RemoteRig) -> None:
    candidate = rig.push_feature("feature", {"a.txt": "a\n", "b.txt": "b\n"})
    rig.workspace_fetch()

    outcome = AccumulatedCommitStrategy().integrate(_request(rig, candidate))

    assert outcome.is_applied, outcome
    parents = run_git(rig.workspace, "log", "-1", "--format=%P").stdout.split()
    assert len(parents) == 2
    assert candidate in parents
    body = run_git(rig.workspace, "log", "-1", "--format=%B").stdout
    assert "Accumulated commit of the following from branch 'origin/feature':" in body
    assert "Update a.txt" in body
    assert "Update b.txt" in body
    committer = run_git(rig.workspace, "log", "-1", "--format=%cn").stdout.strip()
    assert committer == "Build Agent"


@pytest.mark.parametrize("strategy", [SquashCommitStrategy(), AccumulatedCommitStrategy()])
def test_conflict_fails_and_leaves_clean_workspace(
    rig: RemoteRig, strategy: IntegrationStrategy
) -> None:
    candidate = rig.push_feature("feature", {"README.md": "feature side\n"})
    rig.advance_integration("README.md", "upstream side\n")
    rig.workspace_fetch()
    run_git(rig.workspace, "checkout", "-f", "-B", "main", "origin/main")
    before = run_git(rig.workspace, "rev-parse", "HEAD").stdout.strip()

    outcome = strategy.integrate(_request(rig, candidate))

    assert outcome.is_failed
    assert outcome.reason is FailureKind.INTEGRATION_FAILED
    assert _is_clean(rig)
    assert run_git(rig.workspace, "rev-parse", "HEAD").stdout.strip() == before
    # The next forced checkout still works.
    run_git(rig.workspace, "checkout", "-f", "-B", "main", "origin/main")


@pytest.mark.parametrize("strategy", [SquashCommitStrategy(), AccumulatedCommitStrategy()])
def test_already_integrated_candidate_is_a_skip(
    rig: RemoteRig, strategy: IntegrationStrategy
) -> None:
    head = run_git(rig.workspace, "rev-parse", "HEAD").stdout.strip()

    outcome = strategy.integrate(_request(rig, head))

    assert outcome.is_skip
    assert outcome.reason is FailureKind.INTEGRATION_ALLOWED_NO_COMMIT
    assert run_git(rig.workspace, "rev-parse", "HEAD").stdout.strip() == head


def test_squash_of_change_already_applied_is_a_skip(rig: RemoteRig) -> None:
    candidate = rig.push_feature("feature", {"same.txt": "same\n"})
    rig.advance_integration("same.txt", "same\n")
    rig.workspace_fetch()
    run_git(rig.workspace, "checkout", "-f", "-B", "main", "origin/main")

    outcome = SquashCommitStrategy().integrate(_request(rig, candidate))

    assert outcome.is_skip
    assert outcome.reason is FailureKind.INTEGRATION_ALLOWED_NO_COMMIT
    assert _is_clean(rig)


@pytest.mark.parametrize("strategy", [SquashCommitStrategy(), AccumulatedCommitStrategy()])
def test_wrong_branch_is_an_integration_failure(
    rig: RemoteRig, strategy: IntegrationStrategy
) -> None:
    candidate = rig.push_feature("feature", {"a.txt": "a\n"})
    rig.workspace_fetch()
    run_git(rig.workspace, "checkout", "-B", "elsewhere")

    outcome = strategy.integrate(_request(rig, candidate))

    assert outcome.is_failed
    assert outcome.reason is FailureKind.INTEGRATION_FAILED
    assert "elsewhere" in outcome.message


def test_unknown_candidate_is_an_integration_failure(rig: RemoteRig) -> None:
    outcome = SquashCommitStrategy().integrate(_request(rig, "0" * 40))

    assert outcome.is_failed
    assert outcome.reason is FailureKind.INTEGRATION_FAILED


def test_unset_candidate_is_rejected(rig: RemoteRig) -> None:
    outcome = AccumulatedCommitStrategy().integrate(_request(rig, ""))

    assert outcome.is_failed
    assert "No candidate" in outcome.message


def test_strategies_support_git_only() -> None:
    assert SquashCommitStrategy.supports("git")
    assert AccumulatedCommitStrategy.supports("git")
    assert not SquashCommitStrategy.supports("hg")

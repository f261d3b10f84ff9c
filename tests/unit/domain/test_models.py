"""
pretested-integration — tests for domain value objects.

File: tests/unit/domain/test_models.py

Purpose
- Validate result ordering, commit identity, branch resolution helpers, and
  per-build state transitions.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from pretested_integration.domain.models import (
    BranchRef,
    BuildContext,
    BuildData,
    BuildRecord,
    BuildResult,
    Commit,
    ProjectConfiguration,
    RemoteRepository,
    ScmConfiguration,
)

try:
    from hypothesis import given
    from hypothesis import strategies as st
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    HYPOTHESIS_AVAILABLE = False
else:
    HYPOTHESIS_AVAILABLE = True


def test_build_result_order_is_best_to_worst() -> None:
    ordered = [BuildResult.SUCCESS, BuildResult.UNSTABLE, BuildResult.FAILURE, BuildResult.ABORTED]
    assert [item.ordinal for item in ordered] == [0, 1, 2, 3]
    assert BuildResult.SUCCESS.is_better_or_equal_to(BuildResult.UNSTABLE)
    assert BuildResult.UNSTABLE.is_better_or_equal_to(BuildResult.UNSTABLE)
    assert not BuildResult.FAILURE.is_better_or_equal_to(BuildResult.UNSTABLE)
    assert BuildResult.ABORTED.is_worse_than(BuildResult.FAILURE)


def test_build_result_combine_keeps_worse() -> None:
    assert BuildResult.SUCCESS.combine(BuildResult.UNSTABLE) is BuildResult.UNSTABLE
    assert BuildResult.FAILURE.combine(BuildResult.SUCCESS) is BuildResult.FAILURE


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("success", BuildResult.SUCCESS),
        (" Unstable ", BuildResult.UNSTABLE),
        (BuildResult.FAILURE, BuildResult.FAILURE),
    ],
)
def test_build_result_parse(raw: str | BuildResult, expected: BuildResult) -> None:
    assert BuildResult.parse(raw) is expected


def test_build_result_parse_rejects_unknown() -> None:
    with pytest.raises(ValueError, match="unknown build result"):
        BuildResult.parse("GREEN")


def test_commit_unset_is_falsy_and_strips_whitespace() -> None:
    assert not Commit.unset()
    assert Commit.unset().is_set is False
    commit = Commit("  abc123\n")
    assert commit.id == "abc123"
    assert commit
    assert str(commit) == "abc123"
    assert Commit("abc123") == commit


def test_commit_rejects_inner_whitespace_and_non_strings() -> None:
    with pytest.raises(ValueError, match="whitespace"):
        Commit("abc 123")
    with pytest.raises(TypeError):
        Commit(123)  # type: ignore[arg-type]


def test_branch_ref_strips_remote_and_checks_qualifier() -> None:
    ref = BranchRef(name="origin/feature/login", sha="abc")
    assert ref.without_remote() == "feature/login"
    assert ref.is_qualified_by("origin")
    assert not ref.is_qualified_by("upstream")
    assert BranchRef(name="feature", sha="abc").without_remote() == "feature"


def test_branch_ref_rejects_empty_name() -> None:
    with pytest.raises(ValueError):
        BranchRef(name="  ", sha="abc")


def test_build_data_for_branch_records_one_branch() -> None:
    data = BuildData.for_branch("origin/feature", "deadbeef")
    assert data.revision.sha == "deadbeef"
    assert data.revision.branches == (BranchRef(name="origin/feature", sha="deadbeef"),)


def test_build_record_result_only_gets_worse() -> None:
    build = BuildRecord(build_id="b-1")
    assert build.result is None
    assert build.set_result(BuildResult.UNSTABLE) is BuildResult.UNSTABLE
    assert build.set_result(BuildResult.SUCCESS) is BuildResult.UNSTABLE
    assert build.set_result("failure") is BuildResult.FAILURE  # type: ignore[arg-type]
    assert build.result is BuildResult.FAILURE


def test_build_record_cancel_marks_aborted() -> None:
    build = BuildRecord(build_id="b-1")
    build.set_result(BuildResult.SUCCESS)
    build.cancel()
    assert build.cancelled
    assert build.result is BuildResult.ABORTED


def test_build_record_description_hook_sees_new_text() -> None:
    seen: list[str] = []
    build = BuildRecord(build_id="b-1", description_hook=seen.append)
    build.set_description("Branch: origin/feature")
    assert seen == ["Branch: origin/feature"]
    assert build.description == "Branch: origin/feature"


def test_build_record_description_hook_failure_keeps_old_description() -> None:
    def broken(_: str) -> None:
        raise RuntimeError("read-only build")

    build = BuildRecord(build_id="b-1", description="old", description_hook=broken)
    with pytest.raises(RuntimeError):
        build.set_description("new")
    assert build.description == "old"


def test_project_configuration_from_git_remotes_dedupes_and_sorts() -> None:
    project = ProjectConfiguration.from_git_remotes(
        [
            ("upstream", "https://example.com/up.git"),
            ("origin", "https://example.com/o.git"),
            ("origin", "https://example.com/o.git"),
        ]
    )
    assert not project.is_multi_scm
    (scm,) = project.scms
    assert scm.kind == "git"
    assert [repo.name for repo in scm.repositories] == ["origin", "upstream"]


def test_project_configuration_multi_scm_filters_by_kind() -> None:
    project = ProjectConfiguration(
        scms=(
            ScmConfiguration(kind="Git", repositories=(RemoteRepository("origin"),)),
            ScmConfiguration(kind="hg", repositories=(RemoteRepository("default"),)),
        )
    )
    assert project.is_multi_scm
    assert len(project.scms_of_kind("git")) == 1
    assert project.scms_of_kind("svn") == ()


def test_build_context_coerces_workspace_path(tmp_path: Path) -> None:
    from pretested_integration.integration_plane.scm_client import GitCLIClient
    from pretested_integration.observability.build_log import BuildLog

    ctx = BuildContext(
        workspace=str(tmp_path),  # type: ignore[arg-type]
        scm=GitCLIClient(),
        build=BuildRecord(build_id="b-1"),
        log=BuildLog(),
    )
    assert ctx.workspace == tmp_path
    assert dict(ctx.environment) == {}


def test_build_record_result_is_monotone_property() -> None:
    if not HYPOTHESIS_AVAILABLE:
        pytest.skip("hypothesis is not installed")

    @given(st.lists(st.sampled_from(list(BuildResult)), min_size=1, max_size=8))
    def _check(results: list[BuildResult]) -> None:
        build = BuildRecord(build_id="b-1")
        previous: BuildResult | None = None
        for item in results:
            current = build.set_result(item)
            if previous is not None:
                assert not current.is_better_or_equal_to(previous) or current == previous
            previous = current
        assert build.result == max(results, key=lambda result: result.ordinal)

    _check()

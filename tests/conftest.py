"""
pretested-integration — shared test fixtures.

File: tests/conftest.py

Purpose
- Isolate git from the developer's global config.
- Provide a bare remote with a developer clone and a CI workspace clone.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

import pytest

from pretested_integration.domain.models import BuildContext, BuildData, BuildRecord
from pretested_integration.integration_plane.scm_client import GitCLIClient
from pretested_integration.observability.build_log import BuildLog


def run_git(cwd: Path, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_CONFIG_NOSYSTEM", "1")
    completed = subprocess.run(
        ["git", *args],
        cwd=cwd,
        env=env,
        text=True,
        capture_output=True,
        check=False,
    )
    if check and completed.returncode != 0:
        msg = (
            f"git command failed: git {' '.join(args)}\n"
            f"stdout:\n{completed.stdout}\nstderr:\n{completed.stderr}"
        )
        raise AssertionError(msg)
    return completed


def commit_file(worktree: Path, rel_path: str, content: str, message: str) -> str:
    path = worktree / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    run_git(worktree, "add", "--all")
    run_git(worktree, "commit", "-m", message)
    return run_git(worktree, "rev-parse", "HEAD").stdout.strip()


@pytest.fixture(autouse=True)
def isolated_git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path / "home"
    xdg = tmp_path / "xdg"
    home.mkdir()
    xdg.mkdir()

    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Dev Eloper")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "dev@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Build Agent")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "ci@example.com")
    for name in list(os.environ):
        if name.startswith("PRETESTED_"):
            monkeypatch.delenv(name, raising=False)


@dataclass(slots=True)
class RemoteRig:
    """Bare ``origin`` plus a developer clone and a CI workspace clone."""

    remote: Path
    dev: Path
    workspace: Path
    integration_branch: str = "main"

    def push_feature(self, name: str, files: dict[str, str], *, base: str | None = None) -> str:
        """Create ``name`` from the remote integration tip, one commit per file, and push it."""
        run_git(self.dev, "fetch", "origin")
        run_git(self.dev, "checkout", "-B", name, f"origin/{base or self.integration_branch}")
        sha = ""
        for rel_path, content in files.items():
            sha = commit_file(self.dev, rel_path, content, f"Update {rel_path}")
        run_git(self.dev, "push", "-f", "origin", name)
        return sha

    def advance_integration(self, rel_path: str, content: str) -> str:
        """Push a commit straight to the integration branch, as another team would."""
        run_git(self.dev, "fetch", "origin")
        run_git(self.dev, "checkout", "-B", self.integration_branch, f"origin/{self.integration_branch}")
        sha = commit_file(self.dev, rel_path, content, f"Upstream change to {rel_path}")
        run_git(self.dev, "push", "origin", self.integration_branch)
        return sha

    def remote_sha(self, branch: str) -> str | None:
        completed = run_git(
            self.remote, "rev-parse", "--verify", "--quiet", f"refs/heads/{branch}", check=False
        )
        return completed.stdout.strip() or None

    def workspace_fetch(self) -> None:
        run_git(self.workspace, "fetch", "--prune", "origin")

    def context(self, source_branch: str, sha: str, *, build_id: str = "b-1") -> BuildContext:
        build = BuildRecord(build_id=build_id, build_data=BuildData.for_branch(source_branch, sha))
        return BuildContext(
            workspace=self.workspace, scm=GitCLIClient(), build=build, log=BuildLog()
        )


@pytest.fixture
def rig(tmp_path: Path) -> RemoteRig:
    remote = tmp_path / "origin.git"
    dev = tmp_path / "dev"
    workspace = tmp_path / "workspace"

    run_git(tmp_path, "init", "--bare", "--initial-branch=main", str(remote))
    run_git(tmp_path, "clone", str(remote), str(dev))
    run_git(dev, "checkout", "-B", "main")
    commit_file(dev, "README.md", "hello\n", "Initial commit")
    run_git(dev, "push", "-u", "origin", "main")
    run_git(tmp_path, "clone", str(remote), str(workspace))

    return RemoteRig(remote=remote, dev=dev, workspace=workspace)

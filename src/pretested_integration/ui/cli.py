"""Command-line interface router for pretested-integration."""

from __future__ import annotations

import argparse
import json
import os
import shlex
import subprocess
import sys
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from pretested_integration import __version__
from pretested_integration.config import (
    ConfigLoadError,
    ConfigValidationError,
    effective_config,
    load_config,
)
from pretested_integration.domain.models import (
    BranchRef,
    BuildContext,
    BuildData,
    BuildRecord,
    BuildResult,
    ProjectConfiguration,
)
from pretested_integration.integration_plane import (
    BranchLocks,
    GitCLIClient,
    IntegrationWorkflow,
    UnsupportedConfiguration,
    WorkflowReport,
    build_bridge,
    default_bridge_registry,
    default_strategy_registry,
)
from pretested_integration.main import ExitCode
from pretested_integration.observability import (
    BuildLog,
    configure_structlog,
    correlation_scope,
    setup_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from pretested_integration.integration_plane import SCMBridge, SCMClient

_LOGGER = structlog.get_logger(__name__)


class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    def __init__(self, message: str, exit_code: int = ExitCode.BUILD_REJECTED) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = int(exit_code)


@dataclass(frozen=True, slots=True)
class CommandBuildExecutor:
    """Runs the build command in the workspace and maps its exit status to a result."""

    command: tuple[str, ...]
    unstable_exit_code: int | None = None

    def __call__(self, ctx: BuildContext) -> BuildResult:
        ctx.log.println(f"Running build: {shlex.join(self.command)}")
        try:
            completed = subprocess.run(
                list(self.command),
                cwd=ctx.workspace,
                env={**os.environ, **ctx.environment},
                check=False,
            )
        except OSError as exc:
            ctx.log.println(f"Build command could not be started: {exc}")
            return BuildResult.FAILURE

        if completed.returncode == 0:
            return BuildResult.SUCCESS
        if self.unstable_exit_code is not None and completed.returncode == self.unstable_exit_code:
            return BuildResult.UNSTABLE
        ctx.log.println(f"Build command exited {completed.returncode}")
        return BuildResult.FAILURE


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="pretested",
        description=(
            "pretested-integration — merge a branch into the integration branch and push\n"
            "it only after the build passed.\n\n"
            "Common workflows:\n"
            "  pretested validate                                   Check the repository setup\n"
            "  pretested integrate --source-branch origin/feat -- make test\n"
            "  pretested strategies                                 List merge strategies\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--repo-root",
        default=".",
        help="Workspace (git working copy) to operate on (default: current directory).",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ./pretested.toml if present).",
    )
    common.add_argument("--branch", default=None, help="Override bridge.branch.")
    common.add_argument("--repo-name", default=None, help="Override bridge.repo_name.")
    common.add_argument("--strategy", default=None, help="Override strategy.kind.")
    common.add_argument(
        "--required-result", default=None, help="Override bridge.required_result."
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser(
        "validate",
        parents=[common],
        help="Validate configuration against the workspace's git remotes",
    )
    validate_parser.set_defaults(handler=_cmd_validate)

    integrate_parser = subparsers.add_parser(
        "integrate",
        parents=[common],
        help="Merge, build, and push a source branch",
        description=(
            "Run pre-build, the build command, and post-build for one source branch.\n\n"
            "Examples:\n"
            "  pretested integrate --source-branch origin/feature-x -- pytest -q\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    integrate_parser.add_argument(
        "--source-branch",
        required=True,
        help="Remote-qualified branch that triggered the build (example: origin/feature-x).",
    )
    integrate_parser.add_argument(
        "--commit", default=None, help="Candidate commit (default: tip of the source branch)."
    )
    integrate_parser.add_argument("--build-id", default=None, help="Build identifier.")
    integrate_parser.add_argument(
        "--unstable-exit-code",
        type=int,
        default=None,
        help="Build command exit code that means UNSTABLE instead of FAILURE.",
    )
    integrate_parser.add_argument(
        "--lock-timeout",
        type=float,
        default=None,
        help="Seconds to wait for the integration branch lock (default: wait forever).",
    )
    integrate_parser.add_argument("--json", action="store_true", help="Emit a JSON report")
    integrate_parser.add_argument(
        "build_command", nargs=argparse.REMAINDER, help="Build command, after '--'."
    )
    integrate_parser.set_defaults(handler=_cmd_integrate)

    strategies_parser = subparsers.add_parser(
        "strategies", help="List registered bridges and strategies"
    )
    strategies_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    strategies_parser.set_defaults(handler=_cmd_strategies)

    config_parser = subparsers.add_parser(
        "config", parents=[common], help="Show effective configuration (redacted)"
    )
    config_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    # Keep stdout clean until the per-build log sink exists.
    configure_structlog()
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return int(ExitCode.CONFIG_ERROR)

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return int(exc.exit_code)
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_validate(args: argparse.Namespace) -> int:
    repo_root = _repo_root(args)
    config = _load_effective_config(args)
    bridge = _build_bridge(config)
    scm = GitCLIClient(config["git"]["executable"])
    project = _project_configuration(scm, repo_root)

    _validate_bridge(bridge, project)
    print(
        f"Configuration OK: {bridge.display_name} bridge, "
        f"{bridge.integration_strategy.display_name} strategy, "
        f"integration branch {bridge.remote}/{bridge.branch}"
    )
    return int(ExitCode.SUCCESS)


def _cmd_integrate(args: argparse.Namespace) -> int:
    repo_root = _repo_root(args)
    command = _build_command(args.build_command)
    config = _load_effective_config(args)
    bridge = _build_bridge(config)
    build_id = (args.build_id or "").strip() or f"build-{uuid.uuid4().hex[:12]}"

    emit_json = bool(args.json)
    log = BuildLog(sys.stderr if emit_json else sys.stdout)
    scm = GitCLIClient(config["git"]["executable"], echo=log.command)
    _validate_bridge(bridge, _project_configuration(scm, repo_root))

    setup_logging(config["observability"], build_id=build_id)
    try:
        with correlation_scope(build_id=build_id, branch=args.source_branch):
            build = BuildRecord(
                build_id=build_id,
                build_data=_build_data(scm, repo_root, bridge, args.source_branch, args.commit),
            )
            ctx = BuildContext(workspace=repo_root, scm=scm, build=build, log=log)
            workflow = IntegrationWorkflow(
                bridge, locks=BranchLocks(), lock_timeout=args.lock_timeout
            )
            report = workflow.run(
                ctx, CommandBuildExecutor(command, unstable_exit_code=args.unstable_exit_code)
            )
            _LOGGER.info(
                "integration_completed",
                terminal_state=report.terminal_state.value if report.terminal_state else None,
                result=report.result.value if report.result else None,
            )
    finally:
        shutdown_logging()

    if emit_json:
        _emit_json({"command": "integrate", **report.to_dict()})
    else:
        _render_report(report)
    return int(_exit_code_for(report, bridge))


def _cmd_strategies(args: argparse.Namespace) -> int:
    bridges = default_bridge_registry()
    strategies = default_strategy_registry()
    payload: dict[str, object] = {
        "command": "strategies",
        "bridges": [
            {"key": key, "display_name": bridges.get(key).display_name} for key in bridges.keys()
        ],
        "strategies": [
            {
                "key": key,
                "display_name": strategies.get(key).display_name,
                "bridges": sorted(strategies.get(key).supported_bridges),
            }
            for key in strategies.keys()
        ],
    }
    if bool(args.json):
        _emit_json(payload)
        return int(ExitCode.SUCCESS)

    print("Bridges:")
    for name in bridges.display_names():
        print(f"  {name}")
    print("Strategies:")
    for name in strategies.display_names():
        print(f"  {name}")
    return int(ExitCode.SUCCESS)


def _cmd_config(args: argparse.Namespace) -> int:
    redacted = effective_config(_load_effective_config(args))
    if bool(args.json):
        _emit_json({"command": "config", "config": redacted})
        return int(ExitCode.SUCCESS)
    print(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return int(ExitCode.SUCCESS)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _render_report(report: WorkflowReport) -> None:
    print(f"Build {report.build_id}: {report.result.value if report.result else 'NONE'}")
    print(f"  pre-build:  {report.pre_build.kind.value} {report.pre_build.message}".rstrip())
    if report.post_build is not None:
        print(f"  post-build: {report.post_build.kind.value} {report.post_build.message}".rstrip())
    if report.terminal_state is not None:
        print(f"  state:      {report.terminal_state.value}")
    if report.head_after:
        print(f"  head:       {report.head_after}")


def _exit_code_for(report: WorkflowReport, bridge: SCMBridge) -> ExitCode:
    if report.pre_build.is_failed:
        return ExitCode.INTEGRATION_ERROR
    if report.post_build is not None and report.post_build.is_failed:
        # Protected-branch builds are rejected; push or delete failures need an operator.
        if report.finalized:
            return ExitCode.INTEGRATION_ERROR
        return ExitCode.BUILD_REJECTED
    if report.result is None or not report.result.is_better_or_equal_to(
        bridge.get_required_result()
    ):
        return ExitCode.BUILD_REJECTED
    return ExitCode.SUCCESS


def _repo_root(args: argparse.Namespace) -> Path:
    candidate = Path(str(args.repo_root)).expanduser().resolve()
    if not candidate.is_dir():
        raise CLIError(f"repo root is not a directory: {candidate}", exit_code=ExitCode.CONFIG_ERROR)
    return candidate


def _build_command(raw: Sequence[str]) -> tuple[str, ...]:
    command = list(raw)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        raise CLIError("no build command given (pass it after '--')", ExitCode.CONFIG_ERROR)
    return tuple(command)


def _cli_overrides(args: argparse.Namespace) -> dict[str, object]:
    return {
        "bridge.branch": getattr(args, "branch", None),
        "bridge.repo_name": getattr(args, "repo_name", None),
        "bridge.required_result": getattr(args, "required_result", None),
        "strategy.kind": getattr(args, "strategy", None),
    }


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    try:
        return load_config(args.config_path, cli_overrides=_cli_overrides(args))
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=ExitCode.CONFIG_ERROR) from exc


def _build_bridge(config: Mapping[str, Any]) -> SCMBridge:
    try:
        return build_bridge(config)
    except (KeyError, ValueError) as exc:
        raise CLIError(str(exc), exit_code=ExitCode.CONFIG_ERROR) from exc


def _validate_bridge(bridge: SCMBridge, project: ProjectConfiguration) -> None:
    try:
        bridge.validate_configuration(project)
    except UnsupportedConfiguration as exc:
        raise CLIError(str(exc), exit_code=ExitCode.CONFIG_ERROR) from exc


def _project_configuration(scm: SCMClient, repo_root: Path) -> ProjectConfiguration:
    listing = scm.run(("remote", "-v"), cwd=repo_root)
    if not listing.ok:
        raise CLIError(
            f"not a git working copy: {repo_root}\n{listing.output}".rstrip(),
            exit_code=ExitCode.CONFIG_ERROR,
        )
    remotes: list[tuple[str, str]] = []
    for line in listing.stdout.splitlines():
        parts = line.split()
        if len(parts) >= 2:
            remotes.append((parts[0], parts[1]))
    return ProjectConfiguration.from_git_remotes(remotes)


def _build_data(
    scm: SCMClient, repo_root: Path, bridge: SCMBridge, source_branch: str, commit: str | None
) -> BuildData:
    source = BranchRef(name=source_branch, sha=(commit or "").strip())
    if not source.is_qualified_by(bridge.remote):
        # Not ours to integrate: leave the workspace and its refs alone and let pre_build skip.
        return BuildData.for_branch(source.name, source.sha)
    return BuildData.for_branch(
        source.name, _resolve_candidate(scm, repo_root, bridge, source.name, commit)
    )


def _resolve_candidate(
    scm: SCMClient, repo_root: Path, bridge: SCMBridge, source_branch: str, commit: str | None
) -> str:
    fetched = scm.run(("fetch", bridge.remote), cwd=repo_root)
    if not fetched.ok:
        raise CLIError(
            f"failed to fetch {bridge.remote}\n{fetched.output}".rstrip(),
            exit_code=ExitCode.INTEGRATION_ERROR,
        )
    if commit:
        return commit.strip()
    resolved = scm.run(("rev-parse", "--verify", f"{source_branch}^{{commit}}"), cwd=repo_root)
    if not resolved.ok:
        raise CLIError(
            f"cannot resolve source branch {source_branch}\n{resolved.output}".rstrip(),
            exit_code=ExitCode.INTEGRATION_ERROR,
        )
    return resolved.stdout.strip()


__all__ = ["CLIError", "CommandBuildExecutor", "build_parser", "run_cli"]

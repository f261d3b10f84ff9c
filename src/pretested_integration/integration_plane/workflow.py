"""
pretested-integration — pre-build / post-build state machine.

File: src/pretested_integration/integration_plane/workflow.py

Purpose
- Sequence applicability, workspace establishment, merge, the external build,
  and the finalize-or-roll-back decision for exactly one build run.

Behavior
- A build that is not applicable is a pure skip: no workspace or remote
  mutation, and post-build does nothing.
- A fatal pre-build failure forces FAILURE and the payload never runs.
- Post-build order: build description, protected-branch guard, result gate,
  then push and source-branch deletion.
- Push and deletion failures are reported in the build log and the build
  description; they never change the build result.
- A cancelled build never reaches finalize.
"""

from __future__ import annotations

import contextlib
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Final, Protocol

import structlog

from pretested_integration.domain.models import BuildResult, Commit
from pretested_integration.integration_plane.errors import (
    BranchDeletionFailed,
    CommitChangesFailure,
    PretestedIntegrationError,
)
from pretested_integration.integration_plane.outcomes import FailureKind, PhaseOutcome

if TYPE_CHECKING:
    from collections.abc import Iterator

    from pretested_integration.domain.models import BuildContext
    from pretested_integration.integration_plane.bridge import SCMBridge
    from pretested_integration.integration_plane.locking import BranchLocks


class WorkflowState(StrEnum):
    IDLE = "idle"
    APPLICABLE = "applicable"
    WORKSPACE_READY = "workspace_ready"
    MERGED = "merged"
    BUILDING = "building"
    POST_BUILD_EVALUATED = "post_build_evaluated"
    FINALIZED = "finalized"
    ROLLED_BACK = "rolled_back"


TERMINAL_STATES: Final[frozenset[WorkflowState]] = frozenset(
    {WorkflowState.FINALIZED, WorkflowState.ROLLED_BACK}
)

_TRANSITIONS: Final[dict[WorkflowState, frozenset[WorkflowState]]] = {
    WorkflowState.IDLE: frozenset({WorkflowState.APPLICABLE}),
    WorkflowState.APPLICABLE: frozenset(
        {WorkflowState.WORKSPACE_READY, WorkflowState.ROLLED_BACK}
    ),
    WorkflowState.WORKSPACE_READY: frozenset({WorkflowState.MERGED, WorkflowState.ROLLED_BACK}),
    WorkflowState.MERGED: frozenset(
        {
            WorkflowState.BUILDING,
            WorkflowState.POST_BUILD_EVALUATED,
            WorkflowState.ROLLED_BACK,
        }
    ),
    WorkflowState.BUILDING: frozenset(
        {WorkflowState.POST_BUILD_EVALUATED, WorkflowState.ROLLED_BACK}
    ),
    WorkflowState.POST_BUILD_EVALUATED: frozenset(
        {WorkflowState.FINALIZED, WorkflowState.ROLLED_BACK}
    ),
    WorkflowState.FINALIZED: frozenset({WorkflowState.IDLE}),
    WorkflowState.ROLLED_BACK: frozenset({WorkflowState.IDLE}),
}


class WorkflowStateError(ValueError):
    """Raised on an illegal workflow transition."""


class BuildExecutor(Protocol):
    """Runs the build payload in the prepared workspace and reports its result."""

    def __call__(self, ctx: BuildContext) -> BuildResult: ...


@dataclass(frozen=True, slots=True)
class WorkflowReport:
    build_id: str
    pre_build: PhaseOutcome
    post_build: PhaseOutcome | None
    terminal_state: WorkflowState | None
    result: BuildResult | None
    head_before: Commit = Commit.unset()
    head_after: Commit = Commit.unset()
    states: tuple[WorkflowState, ...] = field(default_factory=tuple)

    @property
    def finalized(self) -> bool:
        return self.terminal_state is WorkflowState.FINALIZED

    def to_dict(self) -> dict[str, Any]:
        return {
            "build_id": self.build_id,
            "pre_build": self.pre_build.to_dict(),
            "post_build": self.post_build.to_dict() if self.post_build is not None else None,
            "terminal_state": self.terminal_state.value if self.terminal_state else None,
            "result": self.result.value if self.result else None,
            "head_before": self.head_before.id or None,
            "head_after": self.head_after.id or None,
            "states": [state.value for state in self.states],
        }


class IntegrationWorkflow:
    """Drives one bridge through one build run.

    Instances are not shared between concurrent builds; the bridge is.
    """

    def __init__(
        self,
        bridge: SCMBridge,
        *,
        locks: BranchLocks | None = None,
        logger: Any | None = None,
        lock_timeout: float | None = None,
    ) -> None:
        self._bridge = bridge
        self._locks = locks
        self._lock_timeout = lock_timeout
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._state = WorkflowState.IDLE
        self._history: list[WorkflowState] = [WorkflowState.IDLE]
        self._terminal_state: WorkflowState | None = None
        self._pre_outcome: PhaseOutcome | None = None
        self._post_outcome: PhaseOutcome | None = None
        self._head_before = Commit.unset()
        self._head_after = Commit.unset()

    @property
    def bridge(self) -> SCMBridge:
        return self._bridge

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def history(self) -> tuple[WorkflowState, ...]:
        return tuple(self._history)

    @property
    def terminal_state(self) -> WorkflowState | None:
        return self._terminal_state

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def pre_build(self, ctx: BuildContext) -> PhaseOutcome:
        if self._state is not WorkflowState.IDLE:
            raise WorkflowStateError(f"pre_build requires state idle, got {self._state}")
        self._reset()
        log = self._logger.bind(build_id=ctx.build.build_id)

        if not self._bridge.is_applicable(ctx.build):
            outcome = PhaseOutcome.skip(
                FailureKind.NOTHING_TO_DO,
                "Build is not applicable for pretested integration",
            )
            log.info("pre_build_skipped", reason=outcome.message)
            self._pre_outcome = outcome
            return outcome

        self._transition(WorkflowState.APPLICABLE)
        try:
            self._bridge.ensure_branch(ctx, self._bridge.branch)
        except PretestedIntegrationError as exc:
            return self._abort_pre_build(ctx, PhaseOutcome.from_error(exc))
        self._transition(WorkflowState.WORKSPACE_READY)
        self._head_before = self._bridge.determine_integration_head(ctx)

        outcome = self._bridge.merge_changes(ctx)
        if outcome.is_failed:
            return self._abort_pre_build(ctx, outcome)

        if outcome.is_skip:
            ctx.log.println(outcome.message or "Nothing to integrate")
        self._transition(WorkflowState.MERGED)
        log.info("pre_build_merged", outcome=outcome.kind.value)
        self._pre_outcome = outcome
        return outcome

    def post_build(self, ctx: BuildContext) -> PhaseOutcome:
        if self._state is WorkflowState.IDLE and self._pre_outcome is not None:
            # Not applicable, or the run already completed.
            if self._terminal_state is None:
                return PhaseOutcome.skip(
                    FailureKind.NOTHING_TO_DO, "Build is not applicable for pretested integration"
                )
            if self._pre_outcome.is_failed and self._post_outcome is None:
                return self._pre_outcome
            raise WorkflowStateError("post_build already ran for this build")
        if self._state not in (WorkflowState.MERGED, WorkflowState.BUILDING):
            raise WorkflowStateError(f"post_build requires a merged workspace, got {self._state}")
        log = self._logger.bind(build_id=ctx.build.build_id)

        if ctx.build.cancelled or ctx.build.result is BuildResult.ABORTED:
            ctx.log.println("Build was cancelled; leaving the integration branch untouched")
            outcome = PhaseOutcome.skip(FailureKind.BUILD_CANCELLED, "Build was cancelled")
            return self._complete(WorkflowState.ROLLED_BACK, outcome)

        self._transition(WorkflowState.POST_BUILD_EVALUATED)
        self._bridge.update_build_description(ctx)

        if self._bridge.enforce_protected_branch(ctx):
            outcome = PhaseOutcome.failed(
                FailureKind.PROTECTED_BRANCH,
                "Build was triggered by a protected branch; result forced to FAILURE",
            )
            return self._complete(WorkflowState.ROLLED_BACK, outcome)

        result = ctx.build.result
        required = self._bridge.get_required_result()
        if result is None or not result.is_better_or_equal_to(required):
            ctx.log.println(
                f"Build result {result.value if result else 'NONE'} does not meet "
                f"{required.value}; nothing is pushed"
            )
            outcome = PhaseOutcome.skip(
                FailureKind.BUILD_BELOW_THRESHOLD,
                f"Build result below required result {required.value}",
            )
            log.info("post_build_rolled_back", result=result.value if result else None)
            return self._complete(WorkflowState.ROLLED_BACK, outcome)

        outcome = self._finalize(ctx)
        return self._complete(WorkflowState.FINALIZED, outcome)

    def run(self, ctx: BuildContext, executor: BuildExecutor) -> WorkflowReport:
        """pre_build, the build payload, then post_build."""
        pre = self.pre_build(ctx)
        if pre.is_failed:
            return self.report(ctx)

        applicable = self._state is WorkflowState.MERGED
        if applicable:
            self._transition(WorkflowState.BUILDING)
        try:
            result = executor(ctx)
        except KeyboardInterrupt:
            ctx.log.println("Build interrupted")
            ctx.build.cancel()
        except BaseException:
            ctx.build.set_result(BuildResult.FAILURE)
            if applicable:
                self._complete(
                    WorkflowState.ROLLED_BACK,
                    PhaseOutcome.failed(FailureKind.INTEGRATION_FAILED, "Build executor raised"),
                )
            raise
        else:
            ctx.build.set_result(result)

        self._post_outcome = self.post_build(ctx)
        return self.report(ctx)

    def report(self, ctx: BuildContext) -> WorkflowReport:
        pre = self._pre_outcome or PhaseOutcome.skip(FailureKind.NOTHING_TO_DO, "pre_build not run")
        return WorkflowReport(
            build_id=ctx.build.build_id,
            pre_build=pre,
            post_build=self._post_outcome,
            terminal_state=self._terminal_state,
            result=ctx.build.result,
            head_before=self._head_before,
            head_after=self._head_after,
            states=self.history,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _finalize(self, ctx: BuildContext) -> PhaseOutcome:
        failure: PretestedIntegrationError | None = None
        deleted = False
        try:
            with self._hold(ctx):
                try:
                    self._bridge.commit(ctx)
                except CommitChangesFailure as exc:
                    failure = exc
                else:
                    try:
                        deleted = self._bridge.delete_integrated_branch(ctx)
                    except BranchDeletionFailed as exc:
                        failure = exc
        except TimeoutError as exc:
            failure = CommitChangesFailure(
                f"Timed out waiting for the lock on {self._bridge.branch}; nothing was pushed",
                cause=exc,
            )
        self._head_after = self._bridge.determine_integration_head(ctx)

        if failure is not None:
            self._report_finalization_failure(ctx, failure)
            return PhaseOutcome.from_error(failure)

        source = self._bridge.source_branch(ctx.build)
        if deleted and source is not None:
            ctx.log.println(f"Deleted integrated branch {source.name}")
        self._logger.info(
            "post_build_finalized",
            build_id=ctx.build.build_id,
            head=self._head_after.id or None,
            deleted=deleted,
        )
        return PhaseOutcome.applied(
            f"Integrated into {self._bridge.branch}", head=self._head_after
        )

    @contextlib.contextmanager
    def _hold(self, ctx: BuildContext) -> Iterator[None]:
        if self._locks is None:
            yield
            return
        with self._locks.hold(self._bridge.lock_key(ctx), timeout=self._lock_timeout):
            yield

    def _report_finalization_failure(
        self, ctx: BuildContext, failure: PretestedIntegrationError
    ) -> None:
        ctx.log.println(f"Finalization failed, manual reconciliation needed: {failure.summary}")
        if failure.output.strip():
            ctx.log.println(failure.output.strip())
        self._logger.error(
            "post_build_finalization_failed",
            build_id=ctx.build.build_id,
            kind=failure.kind.value,
            error=failure.summary,
        )
        existing = ctx.build.description
        note = f"Integration failed: {failure.summary}"
        try:
            ctx.build.set_description(f"{existing}<br/>{note}" if existing.strip() else note)
        except Exception as exc:  # noqa: BLE001 - annotation is best effort.
            self._logger.debug("build_description_failed", error=str(exc))

    def _abort_pre_build(self, ctx: BuildContext, outcome: PhaseOutcome) -> PhaseOutcome:
        ctx.log.println(outcome.message)
        if outcome.output.strip():
            ctx.log.println(outcome.output.strip())
        ctx.build.set_result(BuildResult.FAILURE)
        self._logger.error(
            "pre_build_failed",
            build_id=ctx.build.build_id,
            reason=outcome.reason.value if outcome.reason else None,
            error=outcome.message,
        )
        self._pre_outcome = outcome
        self._complete(WorkflowState.ROLLED_BACK, outcome)
        return outcome

    def _complete(self, terminal: WorkflowState, outcome: PhaseOutcome) -> PhaseOutcome:
        self._transition(terminal)
        self._terminal_state = terminal
        self._post_outcome = outcome if self._pre_outcome is not outcome else None
        self._transition(WorkflowState.IDLE)
        return outcome

    def _transition(self, target: WorkflowState) -> None:
        allowed = _TRANSITIONS[self._state]
        if target not in allowed:
            raise WorkflowStateError(f"illegal transition {self._state} -> {target}")
        self._state = target
        self._history.append(target)

    def _reset(self) -> None:
        self._history = [WorkflowState.IDLE]
        self._terminal_state = None
        self._pre_outcome = None
        self._post_outcome = None
        self._head_before = Commit.unset()
        self._head_after = Commit.unset()


__all__ = [
    "TERMINAL_STATES",
    "BuildExecutor",
    "IntegrationWorkflow",
    "WorkflowReport",
    "WorkflowState",
    "WorkflowStateError",
]

"""
pretested-integration — integration plane

File: src/pretested_integration/integration_plane/__init__.py

Purpose
- SCM bridges, merge strategies, and the pre-build / post-build workflow that
  merges a candidate commit and pushes it only after the build validated it.

Functional requirements
- At most one net effect on the remote integration branch per build.
- Deletion of the integrated source branch is idempotent.

Non-functional requirements
- Bridges and strategies are immutable and safe to share between builds.
"""

from pretested_integration.integration_plane.bridge import SCMBridge
from pretested_integration.integration_plane.errors import (
    BranchDeletionFailed,
    CommitChangesFailure,
    EstablishingWorkspaceFailed,
    IntegrationAllowedNoCommit,
    IntegrationFailed,
    NextCommitFailure,
    NothingToDo,
    PretestedIntegrationError,
    UnsupportedConfiguration,
)
from pretested_integration.integration_plane.git_bridge import GitBridge
from pretested_integration.integration_plane.locking import BranchLocks
from pretested_integration.integration_plane.outcomes import (
    FailureKind,
    OutcomeKind,
    PhaseOutcome,
)
from pretested_integration.integration_plane.registry import (
    BridgeRegistry,
    StrategyRegistry,
    build_bridge,
    default_bridge_registry,
    default_strategy_registry,
)
from pretested_integration.integration_plane.scm_client import (
    CommandResult,
    GitCLIClient,
    GitCommandError,
    SCMClient,
)
from pretested_integration.integration_plane.strategies import (
    AccumulatedCommitStrategy,
    IntegrationRequest,
    IntegrationStrategy,
    SquashCommitStrategy,
)
from pretested_integration.integration_plane.workflow import (
    BuildExecutor,
    IntegrationWorkflow,
    WorkflowReport,
    WorkflowState,
    WorkflowStateError,
)

__all__ = [
    "AccumulatedCommitStrategy",
    "BranchDeletionFailed",
    "BranchLocks",
    "BridgeRegistry",
    "BuildExecutor",
    "CommandResult",
    "CommitChangesFailure",
    "EstablishingWorkspaceFailed",
    "FailureKind",
    "GitBridge",
    "GitCLIClient",
    "GitCommandError",
    "IntegrationAllowedNoCommit",
    "IntegrationFailed",
    "IntegrationRequest",
    "IntegrationStrategy",
    "IntegrationWorkflow",
    "NextCommitFailure",
    "NothingToDo",
    "OutcomeKind",
    "PhaseOutcome",
    "PretestedIntegrationError",
    "SCMBridge",
    "SCMClient",
    "SquashCommitStrategy",
    "StrategyRegistry",
    "UnsupportedConfiguration",
    "WorkflowReport",
    "WorkflowState",
    "WorkflowStateError",
    "build_bridge",
    "default_bridge_registry",
    "default_strategy_registry",
]

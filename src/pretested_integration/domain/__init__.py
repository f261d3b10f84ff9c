"""
pretested-integration — domain types

File: src/pretested_integration/domain/__init__.py

Purpose
- Value objects shared by bridges, strategies, and the workflow: Commit,
  BuildResult, revision metadata, per-build state.

Non-functional requirements
- Domain layer stays free of IO side effects.
"""

from pretested_integration.domain.models import (
    BranchRef,
    BuildContext,
    BuildData,
    BuildRecord,
    BuildResult,
    Commit,
    ProjectConfiguration,
    RemoteRepository,
    Revision,
    ScmConfiguration,
)

__all__ = [
    "BranchRef",
    "BuildContext",
    "BuildData",
    "BuildRecord",
    "BuildResult",
    "Commit",
    "ProjectConfiguration",
    "RemoteRepository",
    "Revision",
    "ScmConfiguration",
]

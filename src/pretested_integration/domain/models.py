"""Value objects and per-build state shared by bridges, strategies, and the workflow."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from pretested_integration.integration_plane.scm_client import SCMClient
    from pretested_integration.observability.build_log import BuildLog

_COMMIT_ID_RE: Final[re.Pattern[str]] = re.compile(r"^[^\s]+$")


class BuildResult(StrEnum):
    """Build outcome, declared best to worst."""

    SUCCESS = "SUCCESS"
    UNSTABLE = "UNSTABLE"
    FAILURE = "FAILURE"
    ABORTED = "ABORTED"

    @property
    def ordinal(self) -> int:
        return _RESULT_ORDER.index(self)

    def is_better_or_equal_to(self, other: BuildResult) -> bool:
        return self.ordinal <= other.ordinal

    def is_worse_than(self, other: BuildResult) -> bool:
        return self.ordinal > other.ordinal

    def combine(self, other: BuildResult) -> BuildResult:
        """Return the worse of the two results."""
        return self if self.is_worse_than(other) else other

    @classmethod
    def parse(cls, raw: str | BuildResult) -> BuildResult:
        if isinstance(raw, BuildResult):
            return raw
        normalized = str(raw).strip().upper()
        try:
            return cls(normalized)
        except ValueError:
            allowed = ", ".join(item.value for item in cls)
            raise ValueError(f"unknown build result {raw!r}; expected one of: {allowed}") from None


_RESULT_ORDER: Final[tuple[BuildResult, ...]] = tuple(BuildResult)


@dataclass(frozen=True, slots=True)
class Commit:
    """Opaque revision identifier. The empty id is the unset commit."""

    id: str

    def __post_init__(self) -> None:
        if not isinstance(self.id, str):
            raise TypeError(f"Commit.id must be a string, got {type(self.id).__name__}")
        value = self.id.strip()
        if value and not _COMMIT_ID_RE.fullmatch(value):
            raise ValueError(f"Commit.id must not contain whitespace: {self.id!r}")
        object.__setattr__(self, "id", value)

    @classmethod
    def unset(cls) -> Commit:
        return cls("")

    @property
    def is_set(self) -> bool:
        return bool(self.id)

    def __bool__(self) -> bool:
        return self.is_set

    def __str__(self) -> str:
        return self.id


@dataclass(frozen=True, slots=True)
class BranchRef:
    """Remote-qualified branch name (``origin/feature-x``) and the sha it points to."""

    name: str
    sha: str

    def __post_init__(self) -> None:
        name = self.name.strip()
        if not name:
            raise ValueError("BranchRef.name cannot be empty")
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "sha", self.sha.strip())

    def without_remote(self) -> str:
        """Strip the leading ``<remote>/`` qualifier, if any."""
        _, sep, rest = self.name.partition("/")
        return rest if sep else self.name

    def is_qualified_by(self, remote: str) -> bool:
        return self.name.startswith(f"{remote}/")


@dataclass(frozen=True, slots=True)
class Revision:
    sha: str
    branches: tuple[BranchRef, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "branches", tuple(self.branches))


@dataclass(frozen=True, slots=True)
class BuildData:
    """Revision metadata attached to a build by the checkout step."""

    revision: Revision

    @classmethod
    def for_branch(cls, name: str, sha: str) -> BuildData:
        return cls(Revision(sha=sha, branches=(BranchRef(name=name, sha=sha),)))


@dataclass(slots=True)
class BuildRecord:
    """Mutable state of one build run."""

    build_id: str
    build_data: BuildData | None = None
    result: BuildResult | None = None
    description: str = ""
    cancelled: bool = False
    description_hook: Callable[[str], None] | None = field(default=None, repr=False)

    def set_result(self, result: BuildResult) -> BuildResult:
        """Record ``result``; a result can only get worse once set."""
        resolved = BuildResult.parse(result)
        self.result = resolved if self.result is None else self.result.combine(resolved)
        return self.result

    def set_description(self, text: str) -> None:
        if self.description_hook is not None:
            self.description_hook(text)
        self.description = text

    def cancel(self) -> None:
        self.cancelled = True
        self.set_result(BuildResult.ABORTED)


@dataclass(frozen=True, slots=True)
class RemoteRepository:
    name: str
    url: str = ""


@dataclass(frozen=True, slots=True)
class ScmConfiguration:
    """One configured SCM of a job: its kind (``git``, ``hg``...) and repositories."""

    kind: str
    repositories: tuple[RemoteRepository, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", self.kind.strip().lower())
        object.__setattr__(self, "repositories", tuple(self.repositories))


@dataclass(frozen=True, slots=True)
class ProjectConfiguration:
    """SCM configuration of a job, as seen at configuration-validation time.

    A single entry models a plain SCM; several entries model a multi-SCM setup.
    """

    scms: tuple[ScmConfiguration, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "scms", tuple(self.scms))

    @property
    def is_multi_scm(self) -> bool:
        return len(self.scms) > 1

    def scms_of_kind(self, kind: str) -> tuple[ScmConfiguration, ...]:
        wanted = kind.strip().lower()
        return tuple(scm for scm in self.scms if scm.kind == wanted)

    @classmethod
    def from_git_remotes(cls, remotes: Iterable[tuple[str, str]]) -> ProjectConfiguration:
        """Build a single-git-SCM configuration from ``(name, url)`` remote pairs."""
        seen: dict[str, RemoteRepository] = {}
        for name, url in remotes:
            key = name.strip()
            if key and key not in seen:
                seen[key] = RemoteRepository(name=key, url=url.strip())
        ordered = tuple(seen[name] for name in sorted(seen))
        return cls(scms=(ScmConfiguration(kind="git", repositories=ordered),))


@dataclass(slots=True)
class BuildContext:
    """Per-build transient state handed to every phase."""

    workspace: Path
    scm: SCMClient
    build: BuildRecord
    log: BuildLog
    environment: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.workspace = Path(self.workspace)


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

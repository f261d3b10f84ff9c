"""SCM client capability: run version-control commands against a working copy."""

from __future__ import annotations

import os
import shlex
import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

from pretested_integration.constants import DEFAULT_GIT_EXECUTABLE

_LOGGER = structlog.get_logger(__name__)

_MISSING_EXECUTABLE_CODE = 127


class GitCommandError(RuntimeError):
    """Raised when a checked git subprocess command exits non-zero."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"git command failed ({returncode}): {' '.join(command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Normalized subprocess result."""

    command: tuple[str, ...]
    cwd: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        parts = [part.strip("\n") for part in (self.stdout, self.stderr) if part.strip()]
        return "\n".join(parts)


@runtime_checkable
class SCMClient(Protocol):
    """Command-execution capability used by bridges and strategies."""

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        check: bool = False,
    ) -> CommandResult: ...


class GitCLIClient:
    """Runs the ``git`` binary non-interactively; no implicit timeout."""

    def __init__(
        self,
        executable: str = DEFAULT_GIT_EXECUTABLE,
        *,
        env_overrides: Mapping[str, str] | None = None,
        echo: Callable[[str], None] | None = None,
    ) -> None:
        self.executable = executable
        self._env_overrides = dict(env_overrides or {})
        self._echo = echo

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        check: bool = False,
    ) -> CommandResult:
        command = (self.executable, *args)
        run_cwd = Path(cwd).resolve()
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.update(self._env_overrides)

        if self._echo is not None:
            self._echo(shlex.join(command))

        try:
            completed = subprocess.run(
                command,
                cwd=run_cwd,
                env=env,
                text=True,
                encoding="utf-8",
                errors="replace",
                capture_output=True,
                check=False,
            )
        except FileNotFoundError:
            result = CommandResult(
                command=command,
                cwd=run_cwd.as_posix(),
                returncode=_MISSING_EXECUTABLE_CODE,
                stdout="",
                stderr=f"{self.executable} executable not found on PATH",
            )
        else:
            result = CommandResult(
                command=command,
                cwd=run_cwd.as_posix(),
                returncode=completed.returncode,
                stdout=completed.stdout or "",
                stderr=completed.stderr or "",
            )

        _LOGGER.debug(
            "scm_command",
            command=list(command),
            cwd=result.cwd,
            returncode=result.returncode,
        )

        if check and not result.ok:
            raise GitCommandError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result


__all__ = ["CommandResult", "GitCLIClient", "GitCommandError", "SCMClient"]

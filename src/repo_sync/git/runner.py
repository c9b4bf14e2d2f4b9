"""Async runner for the git executable."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Mapping

from ..process import CommandResult, run_command
from .utils import sanitize_environment


class GitRunnerError(RuntimeError):
    """Base class for git runner errors."""


class GitNotFoundError(GitRunnerError):
    """Raised when the git executable cannot be located."""


class GitRunner:
    """Execute git commands asynchronously inside a working directory."""

    def __init__(self, executable: Path | None = None) -> None:
        self._executable_path = self._resolve_executable(executable)

    @staticmethod
    def _resolve_executable(explicit: Path | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise GitNotFoundError(f"git executable not found at {candidate}")

        binary = shutil.which("git")
        if binary is None:
            raise GitNotFoundError("git executable not found on PATH")
        return Path(binary)

    @property
    def executable(self) -> Path:
        return self._executable_path

    async def version(self) -> CommandResult:
        return await self.run("--version", cwd=Path.cwd())

    async def run(self, *args: str, cwd: Path, timeout: float | None = None) -> CommandResult:
        return await self._invoke(args, cwd=cwd, timeout=timeout)

    async def _invoke(
        self, args: tuple[str, ...], *, cwd: Path, timeout: float | None
    ) -> CommandResult:
        return await run_command(
            [str(self._executable_path), *args],
            cwd=cwd,
            env=sanitize_environment(),
            timeout=timeout,
        )


class FakeGitRunner(GitRunner):
    """Test double that returns scripted results keyed by git arguments."""

    def __init__(self, responses: Mapping[tuple[str, ...], CommandResult] | None = None) -> None:  # type: ignore[override]
        self._responses = dict(responses or {})
        self._invocations: list[tuple[str, ...]] = []
        self._executable_path = Path("/tmp/fake-git")

    async def _invoke(  # type: ignore[override]
        self, args: tuple[str, ...], *, cwd: Path, timeout: float | None
    ) -> CommandResult:
        self._invocations.append(tuple(args))
        if args in self._responses:
            return self._responses[args]
        return CommandResult(args=tuple(args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations


__all__ = ["FakeGitRunner", "GitNotFoundError", "GitRunner", "GitRunnerError"]

"""Typed git operations bound to a single working copy."""

from __future__ import annotations

import re
from pathlib import Path

from ..process import CommandResult
from .runner import GitRunner, GitRunnerError

_HEAD_BRANCH = re.compile(r"HEAD branch:\s*(\S+)")
_STASH_REF = re.compile(r"^(stash@\{\d+\})")


class GitCommandError(GitRunnerError):
    """Raised when a read the sync cannot proceed without fails."""

    def __init__(self, result: CommandResult) -> None:
        self.result = result
        command = " ".join(result.args[1:]) if len(result.args) > 1 else " ".join(result.args)
        self.command = command
        self.detail = result.output or f"exit {result.returncode}"
        super().__init__(f"git {command} failed: {self.detail}")


class GitClient:
    """Git command layer for one repository.

    Reads return plain Python values. Mutating operations (checkout, pull,
    stash push/pop) return the ``CommandResult`` so callers can log the
    failure output.
    """

    def __init__(self, runner: GitRunner, path: Path) -> None:
        self._runner = runner
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def _git(self, *args: str, timeout: float | None = None) -> CommandResult:
        return await self._runner.run(*args, cwd=self._path, timeout=timeout)

    async def is_repo(self) -> bool:
        # A directory without its own .git entry is never a working-copy root,
        # even when it sits inside another repository.
        if not (self._path / ".git").exists():
            return False
        result = await self._git("rev-parse", "--is-inside-work-tree")
        return result.ok and result.stdout.strip() == "true"

    async def current_branch(self) -> str | None:
        result = await self._git("symbolic-ref", "--quiet", "--short", "HEAD")
        branch = result.stdout.strip()
        return branch if result.ok and branch else None

    async def status(self) -> list[str]:
        """Return the paths reported by ``git status --porcelain``."""

        result = await self._git("status", "--porcelain")
        if not result.ok:
            raise GitCommandError(result)
        return [line[3:] for line in result.stdout.splitlines() if line.strip()]

    async def remote_exists(self, remote: str) -> bool:
        result = await self._git("remote", "get-url", remote)
        return result.ok

    async def remote_reachable(self, remote: str, timeout: float) -> bool:
        result = await self._git("ls-remote", "--exit-code", remote, timeout=timeout)
        return result.ok

    async def symbolic_default_branch(self, remote: str, timeout: float) -> str | None:
        """Ask the remote which branch its HEAD points at."""

        result = await self._git("ls-remote", "--symref", remote, "HEAD", timeout=timeout)
        if not result.ok:
            return None
        for line in result.stdout.splitlines():
            if not line.startswith("ref:"):
                continue
            ref = line[len("ref:"):].split()[0]
            return ref.removeprefix("refs/heads/") or None
        return None

    async def cached_remote_head(self, remote: str) -> str | None:
        result = await self._git("symbolic-ref", "--quiet", "--short", f"refs/remotes/{remote}/HEAD")
        ref = result.stdout.strip()
        if not result.ok or not ref:
            return None
        return ref.removeprefix(f"{remote}/") or None

    async def remote_show_head(self, remote: str, timeout: float) -> str | None:
        result = await self._git("remote", "show", remote, timeout=timeout)
        if not result.ok:
            return None
        match = _HEAD_BRANCH.search(result.stdout)
        if match is None or match.group(1) == "(unknown)":
            return None
        return match.group(1)

    async def branch_exists_on_remote(self, remote: str, name: str, timeout: float) -> bool:
        result = await self._git("ls-remote", "--exit-code", "--heads", remote, name, timeout=timeout)
        return result.ok

    async def upstream_for(self, branch: str, remote: str) -> str | None:
        """Return the upstream of ``branch``, falling back to ``<remote>/<branch>``."""

        result = await self._git(
            "rev-parse", "--abbrev-ref", "--symbolic-full-name", f"{branch}@{{upstream}}"
        )
        upstream = result.stdout.strip()
        if result.ok and upstream:
            return upstream

        fallback = f"{remote}/{branch}"
        result = await self._git("rev-parse", "--verify", "--quiet", f"refs/remotes/{fallback}")
        return fallback if result.ok else None

    async def rev_list_count(self, revision_range: str) -> int:
        result = await self._git("rev-list", "--count", revision_range)
        if not result.ok:
            return 0
        try:
            return int(result.stdout.strip() or 0)
        except ValueError:
            return 0

    async def checkout(self, branch: str) -> CommandResult:
        return await self._git("checkout", branch)

    async def pull(self, timeout: float) -> CommandResult:
        # Fast-forward only: the branch pointer never moves anywhere but forward.
        return await self._git("pull", "--ff-only", timeout=timeout)

    async def stash_push(self, label: str, include_untracked: bool = True) -> CommandResult:
        args = ["stash", "push", "-m", label]
        if include_untracked:
            args.append("--include-untracked")
        return await self._git(*args)

    async def stash_list(self) -> list[str]:
        result = await self._git("stash", "list")
        if not result.ok:
            return []
        return [line for line in result.stdout.splitlines() if line.strip()]

    async def find_stash(self, label: str) -> str | None:
        """Return the ``stash@{N}`` reference whose message ends with ``label``."""

        for entry in await self.stash_list():
            if not entry.rstrip().endswith(label):
                continue
            match = _STASH_REF.match(entry)
            if match:
                return match.group(1)
        return None

    async def stash_pop(self, ref: str = "stash@{0}") -> CommandResult:
        return await self._git("stash", "pop", ref)


__all__ = ["GitClient", "GitCommandError"]

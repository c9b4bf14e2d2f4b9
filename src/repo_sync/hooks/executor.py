"""Run configured hook commands inside a synced repository."""

from __future__ import annotations

import shutil
from typing import Mapping

from ..git.utils import hook_environment
from ..logs import RepoLogger
from ..models import RepositoryDescriptor
from ..process import run_command
from .models import HookCommand, RepoHookSet

DEFAULT_HOOK_TIMEOUT = 300.0


class HookExecutor:
    """Runs the hook commands configured for a repository.

    Failures are logged and reported through the return value; they never
    raise, so a broken hook cannot fail the repository it runs in.
    """

    def __init__(
        self,
        hooks: Mapping[str, RepoHookSet] | None = None,
        *,
        dry_run: bool = False,
        default_timeout: float = DEFAULT_HOOK_TIMEOUT,
    ) -> None:
        self._hooks = dict(hooks or {})
        self._dry_run = dry_run
        self._default_timeout = default_timeout

    @property
    def repositories(self) -> list[str]:
        return sorted(self._hooks)

    def commands_for(self, repository: str) -> list[HookCommand]:
        hook_set = self._hooks.get(repository)
        return list(hook_set.commands) if hook_set else []

    async def run_hook(self, repository: RepositoryDescriptor, logger: RepoLogger) -> bool:
        """Run every command for ``repository``; return False if any of them failed."""

        commands = self.commands_for(repository.name)
        if not commands:
            logger.debug("  No specific commands configured for repository: %s", repository.name)
            return True

        logger.info("  Running %d custom command(s) for %s", len(commands), repository.name)
        succeeded = True
        for command in commands:
            if self._dry_run:
                logger.dry("Would run: %s", command.display)
                continue
            if not await self._run_one(repository, command, logger):
                succeeded = False
        return succeeded

    async def _run_one(self, repository: RepositoryDescriptor, command: HookCommand, logger: RepoLogger) -> bool:
        env = hook_environment(repository.path, command.env)
        timeout = command.timeout or self._default_timeout

        if command.argv is not None:
            program = command.argv[0]
            if "/" not in program and shutil.which(program, path=env["PATH"]) is None:
                logger.warning("  Command not found, skipping: %s", program)
                return False
            logger.debug("  Running: %s", command.display)
            invocation = dict(command=command.argv, shell=False)
        else:
            logger.warning("  Using shell execution for: %s", command.display)
            invocation = dict(command=command.shell, shell=True)

        try:
            result = await run_command(cwd=repository.path, env=env, timeout=timeout, **invocation)
        except OSError as exc:
            logger.warning("  Could not start %s: %s", command.display, exc)
            return False

        if result.timed_out:
            logger.warning("  %s timed out after %ss, continuing anyway", command.display, timeout)
            return False
        if not result.ok:
            logger.warning(
                "  %s failed with exit code %s, continuing anyway", command.display, result.returncode
            )
            if result.output:
                logger.debug("  %s", result.output[-2000:])
            return False
        return True


__all__ = ["DEFAULT_HOOK_TIMEOUT", "HookExecutor"]

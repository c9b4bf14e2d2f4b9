"""Per-repository sync workflow.

A repository moves through ``VALIDATING -> PROTECTING -> SYNCING -> HOOK ->
RESTORING -> DONE``. Any state may exit early to ``DONE`` with SKIPPED or
FAILED. Network trouble never fails a repository: a slow or unreachable
remote only means the local state is left as it was.
"""

from __future__ import annotations

import os
from datetime import datetime
from enum import Enum
from typing import Sequence

from .config import DEFAULT_BRANCHES
from .git import GitClient, GitCommandError
from .hooks import HookExecutor
from .logs import RepoLogger
from .models import Clock, Outcome, RepositoryDescriptor, StashRecord


class SyncState(str, Enum):
    VALIDATING = "VALIDATING"
    PROTECTING = "PROTECTING"
    SYNCING = "SYNCING"
    HOOK = "HOOK"
    RESTORING = "RESTORING"
    DONE = "DONE"


class RepoStateMachine:
    """Drive one repository through stash, branch switch, pull, hook and restore."""

    def __init__(
        self,
        repository: RepositoryDescriptor,
        git: GitClient,
        *,
        logger: RepoLogger,
        hooks: HookExecutor | None = None,
        remote: str = "origin",
        default_branches: Sequence[str] = DEFAULT_BRANCHES,
        connectivity_timeout: float = 10.0,
        pull_timeout: float = 60.0,
        dry_run: bool = False,
        clock: Clock | None = None,
    ) -> None:
        self.repository = repository
        self._git = git
        self._log = logger
        self._hooks = hooks
        self._remote = remote
        self._default_branches = tuple(default_branches)
        self._connectivity_timeout = connectivity_timeout
        self._pull_timeout = pull_timeout
        self._dry_run = dry_run
        self._clock = clock or datetime.now

        self.state = SyncState.VALIDATING
        self.history: list[SyncState] = []
        self.outcome: Outcome | None = None
        self.original_branch: str | None = None
        self.default_branch: str | None = None
        self.switched = False
        self.stash: StashRecord | None = None
        self.remote_reachable = False

    async def run(self) -> Outcome:
        self._log.info("Starting processing")
        try:
            outcome = await self._drive()
        except GitCommandError as exc:
            self._log.error("  git %s failed: %s", exc.command, exc.detail)
            await self._restore_stash()
            outcome = Outcome.FAILED
        return self._finish(outcome)

    async def _drive(self) -> Outcome:
        self._enter(SyncState.VALIDATING)
        early = await self._validate()
        if early is not None:
            return early

        self._enter(SyncState.PROTECTING)
        early = await self._protect()
        if early is not None:
            return early

        self._enter(SyncState.SYNCING)
        early = await self._sync()
        if early is not None:
            return early

        self._enter(SyncState.HOOK)
        await self._run_hook()

        self._enter(SyncState.RESTORING)
        await self._restore()
        return Outcome.SUCCESS

    def _enter(self, state: SyncState) -> None:
        self.state = state
        self.history.append(state)

    def _finish(self, outcome: Outcome) -> Outcome:
        self._enter(SyncState.DONE)
        self.outcome = outcome
        if outcome is Outcome.SUCCESS:
            self._log.info("  Repository %s processed successfully", self.repository.name)
        return outcome

    async def _validate(self) -> Outcome | None:
        path = self.repository.path
        if not path.is_dir() or not os.access(path, os.R_OK | os.X_OK):
            self._log.error("Cannot enter directory: %s", path)
            return Outcome.FAILED

        if not await self._git.is_repo():
            self._log.warning("  Not a git repository, skipping")
            return Outcome.SKIPPED

        branch = await self._git.current_branch()
        if branch is None:
            self._log.warning("  In detached HEAD state, skipping")
            return Outcome.SKIPPED

        self.original_branch = branch
        self._log.info("  Current branch: %s", branch)
        return None

    async def _protect(self) -> Outcome | None:
        changed = await self._git.status()
        self.remote_reachable = await self._probe_remote()
        unpushed = await self._unpushed_commits() if self.remote_reachable else 0

        if changed or unpushed:
            self._log.info("  Found local changes (uncommitted or unpushed)")
            if unpushed:
                self._log.debug("  %d unpushed commit(s) on %s", unpushed, self.original_branch)
        else:
            self._log.info("  No local changes detected")

        # Unpushed commits need no stash: the branch pointer is never moved backwards.
        if not changed:
            return None

        stash = StashRecord.new(self._clock(), simulated=self._dry_run)
        if self._dry_run:
            self._log.dry("Would stash changes as: %s", stash.label)
            self.stash = stash
            return None

        result = await self._git.stash_push(stash.label, include_untracked=True)
        if not result.ok:
            self._log.error("  Failed to stash changes, skipping repository")
            if result.output:
                self._log.debug("  %s", result.output)
            return Outcome.FAILED

        # A dirty submodule alone exits 0 with "No local changes to save".
        if await self._git.find_stash(stash.label) is None:
            self._log.info("  Nothing was stashed (git reported no local changes to save)")
            if result.output:
                self._log.debug("  %s", result.output)
            return None

        self.stash = stash
        self._log.info("  Stashed %d changed path(s) as: %s", len(changed), stash.label)
        return None

    async def _probe_remote(self) -> bool:
        if not await self._git.remote_exists(self._remote):
            self._log.debug("  Remote '%s' not found", self._remote)
            return False
        if not await self._git.remote_reachable(self._remote, self._connectivity_timeout):
            self._log.warning("  Remote '%s' is not accessible (network/auth issue)", self._remote)
            return False
        return True

    async def _unpushed_commits(self) -> int:
        upstream = await self._git.upstream_for(self.original_branch, self._remote)
        if upstream is None:
            self._log.debug("  No upstream branch found for %s", self.original_branch)
            return 0
        return await self._git.rev_list_count(f"{upstream}..HEAD")

    async def _sync(self) -> Outcome | None:
        default_branch = await self._resolve_default_branch()
        if default_branch is None:
            self._log.info("  No identifiable default branch, staying on %s", self.original_branch)
            return None

        self.default_branch = default_branch
        self._log.info("  Default branch: %s", default_branch)

        if default_branch != self.original_branch:
            if self._dry_run:
                self._log.dry("Would checkout: %s", default_branch)
            else:
                result = await self._git.checkout(default_branch)
                if not result.ok:
                    self._log.error("  Failed to checkout %s", default_branch)
                    if result.output:
                        self._log.debug("  %s", result.output)
                    await self._restore_stash()
                    return Outcome.FAILED
                self._log.info("  Switched to %s", default_branch)
            self.switched = True

        await self._pull()
        return None

    async def _resolve_default_branch(self) -> str | None:
        remote = self._remote
        timeout = self._connectivity_timeout

        if self.remote_reachable:
            branch = await self._git.symbolic_default_branch(remote, timeout)
            if branch:
                self._log.debug("  Default branch advertised by %s: %s", remote, branch)
                return branch

        branch = await self._git.cached_remote_head(remote)
        if branch:
            self._log.debug("  Default branch from cached %s/HEAD: %s", remote, branch)
            return branch

        if self.remote_reachable:
            branch = await self._git.remote_show_head(remote, timeout)
            if branch:
                self._log.debug("  Default branch from 'git remote show': %s", branch)
                return branch

            for candidate in self._default_branches:
                if await self._git.branch_exists_on_remote(remote, candidate, timeout):
                    self._log.debug("  Default branch from candidate list: %s", candidate)
                    return candidate

        self._log.debug("  No default branch found")
        return None

    async def _pull(self) -> None:
        if not self.remote_reachable:
            self._log.warning("  No accessible remote %s, skipping pull", self._remote)
            return

        self._log.info("  Pulling latest changes from %s...", self._remote)
        if self._dry_run:
            self._log.dry("Would run: git pull --ff-only")
            return

        result = await self._git.pull(self._pull_timeout)
        if result.timed_out:
            self._log.warning(
                "  Pull timed out after %ss: continuing with local state", self._pull_timeout
            )
        elif not result.ok:
            self._log.warning("  Pull failed: continuing with local state")
            if result.output:
                self._log.debug("  %s", result.output)
        elif "Already up to date" in result.stdout or "Already up-to-date" in result.stdout:
            self._log.info("  Already up to date")
        else:
            self._log.info("  Pull completed successfully")

    async def _run_hook(self) -> None:
        if self._hooks is None:
            self._log.debug("  No specific commands configured for repository: %s", self.repository.name)
            return
        try:
            succeeded = await self._hooks.run_hook(self.repository, self._log)
        except Exception:
            self._log.warning("  Custom commands raised an error, continuing anyway", exc_info=True)
            return
        if not succeeded:
            self._log.warning("  Custom commands failed for %s, continuing anyway", self.repository.name)

    async def _restore(self) -> None:
        if self.switched:
            if self._dry_run:
                self._log.dry("Would checkout: %s", self.original_branch)
            else:
                result = await self._git.checkout(self.original_branch)
                if result.ok:
                    self._log.info("  Switched back to %s", self.original_branch)
                else:
                    self._log.warning("  Could not switch back to %s", self.original_branch)
                    self._log.warning("  Manual checkout required: git checkout %s", self.original_branch)

        await self._restore_stash()

    async def _restore_stash(self) -> None:
        stash = self.stash
        if stash is None or stash.restored:
            return

        if stash.simulated:
            self._log.dry("Would restore stashed changes: %s", stash.label)
            return

        ref = await self._git.find_stash(stash.label)
        if ref is None:
            self._log.warning("  Stash %s not found; changes were not restored", stash.label)
            self._log.warning("  Inspect manually: git stash list")
            return

        result = await self._git.stash_pop(ref)
        if result.ok:
            stash.restored = True
            self._log.info("  Restored stashed changes: %s", stash.label)
        else:
            self._log.warning("  Could not auto-restore stash: %s (may have conflicts)", stash.label)
            self._log.warning("  Manual restore: git stash apply %s", ref)
            self._log.warning("  After resolving conflicts: git stash drop %s", ref)


__all__ = ["RepoStateMachine", "SyncState"]

"""Run setup checks, discover repositories and sync them in batches."""

from __future__ import annotations

import asyncio
import signal
import time
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Mapping, TextIO, TypeVar

from .config import RepoSyncSettings
from .discovery import discover_repositories
from .git import GitClient, GitNotFoundError, GitRunner
from .hooks import HookExecutor, HookLoader, HookLoadError, RepoHookSet
from .logs import RepoLogger, configure_logging, get_logger
from .models import Outcome, RepositoryDescriptor, RunSummary
from .results import render_summary, write_status
from .scheduler import BatchScheduler, JobFactory
from .state_machine import RepoStateMachine

T = TypeVar("T")

TERMINATED_EXIT_CODE = 128 + signal.SIGTERM


class SetupError(RuntimeError):
    """Raised when the run cannot start at all."""


def prune_logs(log_dir: Path, days: int, *, now: float | None = None) -> list[Path]:
    """Delete ``git_update_*.log`` files older than ``days`` days. ``0`` disables pruning."""

    if days <= 0 or not log_dir.is_dir():
        return []
    cutoff = (now if now is not None else time.time()) - days * 86400
    removed: list[Path] = []
    for path in sorted(log_dir.glob("git_update_*.log")):
        if path.is_file() and path.stat().st_mtime < cutoff:
            path.unlink(missing_ok=True)
            removed.append(path)
    return removed


async def _until_terminated(coro: Awaitable[T], log: RepoLogger) -> T:
    """Await ``coro``, turning SIGTERM into cancellation of the whole run.

    Cancellation reaches every in-flight ``run_command``, which kills its
    process group before re-raising.
    """

    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    installed = True
    try:
        loop.add_signal_handler(signal.SIGTERM, task.cancel)
    except (NotImplementedError, RuntimeError) as exc:
        # Only the main thread of a Unix process can own signal handlers.
        log.debug("SIGTERM handler not installed: %s", exc)
        installed = False
    try:
        return await coro
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGTERM)


def build_job_factory(
    settings: RepoSyncSettings,
    runner: GitRunner,
    hooks: HookExecutor | None,
) -> JobFactory:
    """Return the coroutine factory the scheduler runs once per repository."""

    async def process(repository: RepositoryDescriptor, logger: RepoLogger) -> Outcome:
        machine = RepoStateMachine(
            repository,
            GitClient(runner, repository.path),
            logger=logger,
            hooks=hooks,
            remote=settings.remote,
            default_branches=settings.default_branches,
            connectivity_timeout=settings.connectivity_timeout,
            pull_timeout=settings.pull_timeout,
            dry_run=settings.dry_run,
        )
        return await machine.run()

    return process


def prepare(
    settings: RepoSyncSettings,
    *,
    runner: GitRunner | None = None,
    hooks: Mapping[str, RepoHookSet] | None = None,
) -> tuple[GitRunner, HookExecutor]:
    """Validate everything a run depends on before any repository is touched."""

    code_dir = settings.code_dir.expanduser()
    if not code_dir.is_dir():
        raise SetupError(f"Code directory does not exist: {code_dir}")

    if runner is None:
        try:
            runner = GitRunner(Path(settings.git_path) if settings.git_path else None)
        except GitNotFoundError as exc:
            raise SetupError(str(exc)) from exc

    if hooks is None:
        try:
            hooks = HookLoader(settings.hook_paths).load_all()
        except HookLoadError as exc:
            raise SetupError(f"Invalid hook configuration: {exc}") from exc

    executor = HookExecutor(hooks, dry_run=settings.dry_run, default_timeout=settings.hook_timeout)
    return runner, executor


async def sync_repositories(
    settings: RepoSyncSettings,
    runner: GitRunner,
    hooks: HookExecutor | None,
    *,
    logger: RepoLogger | None = None,
    transcript_sink=None,
) -> RunSummary:
    log = logger or get_logger()
    version = await runner.version()
    if version.ok:
        log.debug("Using %s (%s)", version.stdout.strip(), runner.executable)
    else:
        log.warning("'%s --version' failed: %s", runner.executable, version.output or "no output")

    discovery = discover_repositories(
        settings.code_dir.expanduser(),
        skip_dirs=settings.skip_dirs,
        excluded=settings.excluded_repos,
    )
    for name in discovery.skipped:
        log.debug("Skipping directory: %s", name)
    for name in discovery.excluded:
        log.info("Skipping excluded repository: %s", name)

    repositories = discovery.repositories
    log.info(
        "Found %d repositories to process, %d skipped",
        len(repositories),
        len(discovery.skipped) + len(discovery.excluded),
    )
    if not repositories:
        log.warning("No repositories found to process")

    scheduler = BatchScheduler(
        build_job_factory(settings, runner, hooks),
        batch_size=settings.batch_size,
        job_timeout=settings.job_timeout,
        verbose=settings.verbose,
        transcript_sink=transcript_sink,
        logger=log,
    )
    return await scheduler.run_all(repositories)


def run(
    settings: RepoSyncSettings,
    *,
    runner: GitRunner | None = None,
    hooks: Mapping[str, RepoHookSet] | None = None,
    stream: TextIO | None = None,
) -> int:
    """Execute one full run and return the process exit code."""

    started_at = datetime.now()
    log_file = settings.resolved_log_file(started_at)
    log_dir_error: OSError | None = None
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        log_dir_error = exc
    handler = configure_logging(
        verbose=settings.verbose,
        log_file=log_file,
        lock_timeout=settings.log_lock_timeout,
        stream=stream,
    )
    log = get_logger()

    log.info("Starting parallel git repository update")
    log.info("Working directory: %s", settings.code_dir)
    log.info("Batch size: %d parallel jobs", settings.batch_size)
    log.info("Job timeout: %ss per repository", settings.job_timeout)
    if settings.dry_run:
        log.info("DRY RUN MODE - No changes will be made")
    if settings.verbose:
        log.info("Verbose logging enabled")
    log.info("Log file: %s", log_file)
    if log_dir_error is not None:
        log.warning("Cannot create log directory, logging to console only: %s", log_dir_error)

    if settings.log_retention_days:
        removed = prune_logs(log_file.parent, settings.log_retention_days)
        if removed:
            log.info("Removed %d log file(s) older than %d days", len(removed), settings.log_retention_days)

    try:
        git_runner, executor = prepare(settings, runner=runner, hooks=hooks)
    except SetupError as exc:
        log.error("%s", exc)
        return 1
    if executor.repositories:
        log.debug("Custom commands configured for: %s", ", ".join(executor.repositories))

    try:
        summary = asyncio.run(
            _until_terminated(
                sync_repositories(
                    settings, git_runner, executor, logger=log, transcript_sink=handler.write_block
                ),
                log,
            )
        )
    except asyncio.CancelledError:
        log.error("Terminated: running jobs were stopped, repositories may need manual cleanup")
        return TERMINATED_EXIT_CODE
    finished_at = datetime.now()

    handler.write_block("=" * 80)
    log.info("Parallel git repository sync completed")
    for line in render_summary(summary, batch_size=settings.batch_size):
        log.info("%s", line)

    message = "" if summary.succeeded else "Some repositories failed or timed out"
    if settings.status_file is not None:
        write_status(
            settings.status_file.expanduser(),
            summary,
            started_at=started_at,
            finished_at=finished_at,
            dry_run=settings.dry_run,
            message=message,
        )
        log.debug("Status written to %s", settings.status_file)

    if not summary.succeeded:
        log.warning("Some repositories failed to update. Check the log for details.")
    else:
        log.info("All repositories updated successfully!")
    return summary.exit_code


__all__ = [
    "SetupError",
    "TERMINATED_EXIT_CODE",
    "build_job_factory",
    "prepare",
    "prune_logs",
    "run",
    "sync_repositories",
]

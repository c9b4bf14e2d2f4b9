"""Bounded-concurrency batch execution of repository jobs."""

from __future__ import annotations

import asyncio
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Iterator, Sequence

from .logs import RepoLogger, close_job_log, get_logger, open_job_log
from .models import Clock, JobRecord, Outcome, RepositoryDescriptor, RunSummary
from .results import ResultAggregator

JobFactory = Callable[[RepositoryDescriptor, RepoLogger], Awaitable[Outcome]]


def partition(items: Sequence[RepositoryDescriptor], size: int) -> Iterator[list[RepositoryDescriptor]]:
    if size < 1:
        raise ValueError("batch size must be >= 1")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


class BatchScheduler:
    """Run jobs in consecutive batches with a wall-clock timeout per job.

    Batch N+1 is not started until every job in batch N has finished or been
    cancelled. A cancelled job does not get to restore its repository; the
    TIMEOUT outcome is the signal that manual follow-up may be needed.
    """

    def __init__(
        self,
        job_factory: JobFactory,
        *,
        batch_size: int = 3,
        job_timeout: float = 300.0,
        job_log_dir: Path | None = None,
        verbose: bool = False,
        transcript_sink: Callable[[str], None] | None = None,
        logger: RepoLogger | None = None,
        clock: Clock | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if job_timeout <= 0:
            raise ValueError("job_timeout must be > 0")
        self._job_factory = job_factory
        self._batch_size = batch_size
        self._job_timeout = job_timeout
        self._job_log_dir = job_log_dir
        self._verbose = verbose
        self._transcript_sink = transcript_sink
        self._log = logger or get_logger()
        self._clock = clock or datetime.now

        self._active = 0
        self.max_active = 0
        self.batches: list[list[JobRecord]] = []

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def active(self) -> int:
        return self._active

    async def run_all(
        self,
        repositories: Iterable[RepositoryDescriptor],
        aggregator: ResultAggregator | None = None,
    ) -> RunSummary:
        repositories = list(repositories)
        aggregator = aggregator or ResultAggregator()

        owns_log_dir = self._job_log_dir is None
        log_dir = self._job_log_dir or Path(tempfile.mkdtemp(prefix="repo_sync_jobs_"))
        log_dir.mkdir(parents=True, exist_ok=True)
        try:
            for index, batch in enumerate(partition(repositories, self._batch_size), start=1):
                records = await self._run_batch(index, batch, log_dir)
                for record in records:
                    aggregator.record(
                        record.repository,
                        record.outcome or Outcome.UNKNOWN,
                        duration_seconds=record.duration_seconds,
                    )
        finally:
            if owns_log_dir:
                shutil.rmtree(log_dir, ignore_errors=True)

        return aggregator.summary()

    async def _run_batch(
        self, index: int, batch: list[RepositoryDescriptor], log_dir: Path
    ) -> list[JobRecord]:
        records = [
            JobRecord(
                repository=repository,
                batch=index,
                position=position,
                log_path=log_dir / f"{index:03d}-{repository.name}.log",
            )
            for position, repository in enumerate(batch)
        ]
        self.batches.append(records)

        for record in records:
            self._log.info("%s Starting %s %s", "-" * 20, record.repository.name, "-" * 20)
            record.task = asyncio.create_task(
                self._supervise(record), name=f"repo-sync:{record.repository.name}"
            )

        self._log.info("Waiting for batch %d of %d repositories to complete...", index, len(records))
        await asyncio.gather(*(record.task for record in records))

        for record in records:
            self._collect(record)

        completed = sum(1 for record in records if record.outcome is not Outcome.TIMEOUT)
        self._log.info("Batch completed: %d/%d repositories processed", completed, len(records))
        return records

    async def _supervise(self, record: JobRecord) -> None:
        name = record.repository.name
        try:
            job_logger, handler = open_job_log(
                name, record.log_path, key=record.key, propagate=not self._echo_transcripts
            )
        except OSError as exc:
            self._log.warning("Cannot open job log for %s: %s", name, exc)
            job_logger, handler = get_logger(name), None
        record.started_at = self._clock()
        try:
            record.outcome = await asyncio.wait_for(
                self._execute(record, job_logger), timeout=self._job_timeout
            )
        except asyncio.TimeoutError:
            self._log.warning("Job for %s timed out after %ss", name, self._job_timeout)
            job_logger.warning("Terminated after %ss; repository may need manual cleanup", self._job_timeout)
            record.outcome = Outcome.TIMEOUT
        except Exception:
            self._log.exception("Job for %s terminated without reporting an outcome", name)
            record.outcome = Outcome.UNKNOWN
        finally:
            record.finished_at = self._clock()
            if handler is not None:
                close_job_log(job_logger, handler)

    async def _execute(self, record: JobRecord, job_logger: RepoLogger) -> Outcome:
        self._active += 1
        self.max_active = max(self.max_active, self._active)
        try:
            outcome = await self._job_factory(record.repository, job_logger)
        finally:
            self._active -= 1

        if not isinstance(outcome, Outcome):
            job_logger.error("Job finished without reporting an outcome")
            return Outcome.UNKNOWN
        return outcome

    @property
    def _echo_transcripts(self) -> bool:
        return self._verbose and self._transcript_sink is not None

    def _collect(self, record: JobRecord) -> None:
        path = record.log_path
        if self._echo_transcripts and path.exists():
            transcript = path.read_text(encoding="utf-8").rstrip()
            if transcript:
                header = f"===== {record.repository.name} [{record.outcome.value}] ====="
                self._transcript_sink(f"{header}\n{transcript}")
        path.unlink(missing_ok=True)


__all__ = ["BatchScheduler", "JobFactory", "partition"]

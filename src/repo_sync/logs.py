"""Repository-tagged logging safe to use from many concurrent jobs."""

from __future__ import annotations

import logging
import sys
import threading
import zlib
from pathlib import Path
from typing import Any, TextIO

ROOT_LOGGER = "repo_sync"
MAIN_TAG = "MAIN"

DRY_RUN = 25
logging.addLevelName(DRY_RUN, "DRY")

RESET = "\033[0m"
REPO_COLORS = (
    "\033[0;31m",
    "\033[0;32m",
    "\033[1;33m",
    "\033[0;34m",
    "\033[0;36m",
    "\033[0;35m",
)
_LEVEL_STYLES = {
    "ERROR": ("\033[0;31m", "ERROR"),
    "CRITICAL": ("\033[0;31m", "ERROR"),
    "WARNING": ("\033[1;33m", "WARN"),
    "INFO": ("\033[0;32m", "INFO"),
    "DEBUG": ("\033[0;34m", "DEBUG"),
    "DRY": ("\033[0;36m", "DRY-RUN"),
}

# Shared by every SynchronizedHandler in the process.
_SINK_LOCK = threading.Lock()


def color_for(repo: str) -> str:
    """Map a repository name to a stable console color."""

    return REPO_COLORS[zlib.crc32(repo.encode("utf-8")) % len(REPO_COLORS)]


def _repo_of(record: logging.LogRecord) -> str:
    return getattr(record, "repo", None) or MAIN_TAG


def _file_level(levelname: str) -> str:
    return "WARN" if levelname == "WARNING" else levelname


class ConsoleFormatter(logging.Formatter):
    """``[repo] [LEVEL] message`` with optional ANSI colors."""

    def __init__(self, use_color: bool = True) -> None:
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        repo = _repo_of(record)
        color, label = _LEVEL_STYLES.get(record.levelname, ("", record.levelname))
        message = record.getMessage()
        if self.use_color:
            line = f"{color_for(repo)}[{repo}]{RESET} {color}[{label}]{RESET} {message}"
        else:
            line = f"[{repo}] [{label}] {message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class FileFormatter(logging.Formatter):
    """``[timestamp] [repo] [LEVEL] message`` for append-only log files."""

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, self.datefmt)
        line = f"[{timestamp}] [{_repo_of(record)}] [{_file_level(record.levelname)}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class SynchronizedHandler(logging.Handler):
    """Write one console line and one log-file line per record under a shared lock.

    The lock is waited on for at most ``lock_timeout`` seconds. When it cannot
    be acquired the record is written anyway and ``lock_misses`` is bumped, so
    a stuck writer can never block a sync job.
    """

    def __init__(
        self,
        stream: TextIO | None = None,
        log_file: Path | None = None,
        *,
        lock_timeout: float = 5.0,
        use_color: bool | None = None,
        lock: Any | None = None,
    ) -> None:
        super().__init__()
        self.stream = stream if stream is not None else sys.stdout
        self.log_file = Path(log_file) if log_file is not None else None
        self.lock_timeout = lock_timeout
        self.lock_misses = 0
        self._sink_lock = lock if lock is not None else _SINK_LOCK
        if use_color is None:
            use_color = bool(getattr(self.stream, "isatty", lambda: False)())
        self.console_formatter = ConsoleFormatter(use_color=use_color)
        self.file_formatter = FileFormatter()

    def handle(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        # Skip the handler's own unbounded lock; emit() takes the bounded one.
        rv = self.filter(record)
        if isinstance(rv, logging.LogRecord):
            record = rv
        if rv:
            self.emit(record)
        return bool(rv)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            console_line = self.console_formatter.format(record)
            file_line = self.file_formatter.format(record)
        except Exception:
            self.handleError(record)
            return
        self._write(console_line, file_line, record)

    def write_block(self, text: str) -> None:
        """Write a multi-line block to the console and log file without interleaving."""

        block = text.rstrip("\n")
        self._write(block, block, None)

    def _write(self, console_line: str, file_line: str | None, record: logging.LogRecord | None) -> None:
        acquired = self._sink_lock.acquire(timeout=self.lock_timeout)
        if not acquired:
            self.lock_misses += 1
        try:
            self.stream.write(console_line + "\n")
            self.stream.flush()
            if file_line is not None and self.log_file is not None and self.log_file.parent.is_dir():
                with self.log_file.open("a", encoding="utf-8") as handle:
                    handle.write(file_line + "\n")
        except Exception:
            if record is not None:
                self.handleError(record)
        finally:
            if acquired:
                self._sink_lock.release()


class RepoLogger(logging.LoggerAdapter):
    """Logger adapter that tags every record with a repository name."""

    def __init__(self, logger: logging.Logger, repo: str) -> None:
        super().__init__(logger, {"repo": repo})

    @property
    def repo(self) -> str:
        return self.extra["repo"]  # type: ignore[index]

    def dry(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.log(DRY_RUN, msg, *args, **kwargs)


def get_logger(repo: str = MAIN_TAG) -> RepoLogger:
    return RepoLogger(logging.getLogger(ROOT_LOGGER), repo)


def configure_logging(
    *,
    verbose: bool = False,
    log_file: Path | None = None,
    lock_timeout: float = 5.0,
    stream: TextIO | None = None,
) -> SynchronizedHandler:
    """Install the synchronized console/file handler on the package logger."""

    logger = logging.getLogger(ROOT_LOGGER)
    for existing in list(logger.handlers):
        if isinstance(existing, SynchronizedHandler):
            logger.removeHandler(existing)
            existing.close()

    handler = SynchronizedHandler(stream=stream, log_file=log_file, lock_timeout=lock_timeout)
    handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    return handler


def open_job_log(
    repo: str, path: Path, *, key: str, propagate: bool = True
) -> tuple[RepoLogger, logging.Handler]:
    """Return a logger for one job that writes to the job's own log file.

    With ``propagate`` left on, records also reach the shared console handler
    as they happen; otherwise they only land in ``path``. ``key`` names the
    underlying logger and must be unique among the jobs open at once.
    """

    logger = logging.getLogger(f"{ROOT_LOGGER}.jobs.{key}")
    logger.setLevel(logging.DEBUG)
    logger.propagate = propagate
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(FileFormatter())
    handler.setLevel(logging.DEBUG)
    logger.addHandler(handler)
    return RepoLogger(logger, repo), handler


def close_job_log(job_logger: RepoLogger, handler: logging.Handler) -> None:
    job_logger.logger.removeHandler(handler)
    handler.close()


__all__ = [
    "DRY_RUN",
    "MAIN_TAG",
    "ROOT_LOGGER",
    "ConsoleFormatter",
    "FileFormatter",
    "RepoLogger",
    "SynchronizedHandler",
    "close_job_log",
    "color_for",
    "configure_logging",
    "get_logger",
    "open_job_log",
]

"""Data models shared by the scheduler, state machine and result aggregation."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable
from uuid import uuid4

STASH_PREFIX = "auto-stash"


class Outcome(str, Enum):
    """Terminal classification of one repository within a run."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"

    @property
    def is_failure(self) -> bool:
        return self in (Outcome.FAILED, Outcome.TIMEOUT)


@dataclass(frozen=True, slots=True)
class RepositoryDescriptor:
    path: Path
    name: str

    @classmethod
    def from_path(cls, path: Path | str) -> "RepositoryDescriptor":
        resolved = Path(path)
        return cls(path=resolved, name=resolved.name)


@dataclass(slots=True)
class StashRecord:
    """A stash created (or, in a dry run, simulated) for one repository."""

    label: str
    created_at: datetime
    simulated: bool = False
    restored: bool = False

    @classmethod
    def new(cls, now: datetime, *, simulated: bool = False) -> "StashRecord":
        label = f"{STASH_PREFIX}-{now.strftime('%Y%m%d_%H%M%S')}-{uuid4().hex[:6]}"
        return cls(label=label, created_at=now, simulated=simulated)


@dataclass(slots=True)
class JobRecord:
    repository: RepositoryDescriptor
    batch: int
    position: int
    log_path: Path
    task: asyncio.Task | None = None
    outcome: Outcome | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def key(self) -> str:
        return f"{self.batch}.{self.position}"

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


@dataclass(slots=True)
class RunSummary:
    total: int
    counts: dict[Outcome, int]
    outcomes: dict[str, Outcome] = field(default_factory=dict)
    durations: dict[str, float] = field(default_factory=dict)

    def count(self, outcome: Outcome) -> int:
        return self.counts.get(outcome, 0)

    @property
    def succeeded(self) -> bool:
        return not any(self.count(outcome) for outcome in Outcome if outcome.is_failure)

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "counts": {outcome.value: self.count(outcome) for outcome in Outcome},
            "repositories": {name: outcome.value for name, outcome in self.outcomes.items()},
            "durations": {name: round(seconds, 3) for name, seconds in self.durations.items()},
            "exit_code": self.exit_code,
        }


Clock = Callable[[], datetime]


__all__ = [
    "Clock",
    "JobRecord",
    "Outcome",
    "RepositoryDescriptor",
    "RunSummary",
    "STASH_PREFIX",
    "StashRecord",
]

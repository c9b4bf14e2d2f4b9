"""Outcome aggregation, summary rendering and status persistence."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from . import __version__
from .models import Outcome, RepositoryDescriptor, RunSummary


class ResultAggregator:
    """Collects exactly one Outcome per repository."""

    def __init__(self) -> None:
        self._outcomes: dict[Path, tuple[str, Outcome]] = {}
        self._durations: dict[Path, float] = {}

    def record(
        self,
        repository: RepositoryDescriptor,
        outcome: Outcome,
        *,
        duration_seconds: float | None = None,
    ) -> None:
        if repository.path in self._outcomes:
            raise ValueError(f"Outcome already recorded for {repository.path}")
        self._outcomes[repository.path] = (repository.name, outcome)
        if duration_seconds is not None:
            self._durations[repository.path] = duration_seconds

    def __len__(self) -> int:
        return len(self._outcomes)

    def summary(self) -> RunSummary:
        counts = {outcome: 0 for outcome in Outcome}
        outcomes: dict[str, Outcome] = {}
        durations: dict[str, float] = {}
        for path, (name, outcome) in self._outcomes.items():
            counts[outcome] += 1
            outcomes[name] = outcome
            if path in self._durations:
                durations[name] = self._durations[path]
        return RunSummary(
            total=len(self._outcomes), counts=counts, outcomes=outcomes, durations=durations
        )


def render_summary(summary: RunSummary, *, batch_size: int | None = None) -> list[str]:
    """Return the human-readable summary lines printed at the end of a run."""

    lines = [
        f"Total repositories: {summary.total}",
        f"Successfully processed: {summary.count(Outcome.SUCCESS)}",
        f"Failed to process: {summary.count(Outcome.FAILED)}",
        f"Skipped (not git repos or detached HEAD): {summary.count(Outcome.SKIPPED)}",
        f"Timed out: {summary.count(Outcome.TIMEOUT)}",
    ]
    if summary.count(Outcome.UNKNOWN):
        lines.append(f"Unknown (no outcome reported): {summary.count(Outcome.UNKNOWN)}")
    if batch_size is not None:
        lines.append(f"Batch size used: {batch_size} parallel jobs")
    return lines


def write_status(
    path: Path,
    summary: RunSummary,
    *,
    started_at: datetime,
    finished_at: datetime,
    dry_run: bool = False,
    message: str = "",
) -> dict:
    """Persist a machine-readable status document for the last run."""

    payload = {
        "last_run": {
            "date": finished_at.astimezone().isoformat(timespec="seconds"),
            "status": "success" if summary.succeeded else "failed",
            "dry_run": dry_run,
            "start_time": started_at.strftime("%Y-%m-%d %H:%M:%S"),
            "end_time": finished_at.strftime("%Y-%m-%d %H:%M:%S"),
            "duration_seconds": round((finished_at - started_at).total_seconds(), 3),
            "message": message,
        },
        "summary": summary.to_dict(),
        "today": finished_at.strftime("%Y-%m-%d"),
        "version": __version__,
    }
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    return payload


__all__ = ["ResultAggregator", "render_summary", "write_status"]

"""Report the status file written by ``repo-sync --status-file``."""

from __future__ import annotations

import argparse
import json
import sys
from datetime import date
from pathlib import Path
from typing import Any

DEFAULT_STATUS_FILE = Path("logs/git_update_status.json")


def load_status(path: Path) -> dict[str, Any]:
    """Read and decode a status document."""

    return json.loads(Path(path).read_text(encoding="utf-8"))


def succeeded_today(status: dict[str, Any], *, today: date | None = None) -> bool:
    """Return True when the recorded run happened today and succeeded."""

    today_text = (today or date.today()).isoformat()
    last_run = status.get("last_run") or {}
    return status.get("today") == today_text and last_run.get("status") == "success"


def _default_formatter(status: dict[str, Any]) -> str:
    last_run = status.get("last_run") or {}
    counts = (status.get("summary") or {}).get("counts") or {}
    fields = [
        f"status={last_run.get('status')}",
        f"date={last_run.get('date')}",
        f"duration={last_run.get('duration_seconds')}s",
    ]
    fields.extend(f"{name.lower()}={count}" for name, count in sorted(counts.items()))
    if last_run.get("dry_run"):
        fields.append("dry_run=true")
    return " | ".join(fields)


def report_status(args: argparse.Namespace, *, formatter=_default_formatter) -> int:
    try:
        status = load_status(args.status_file)
    except FileNotFoundError:
        print(f"No status file at {args.status_file}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as exc:
        print(f"Status file {args.status_file} is not valid JSON: {exc}", file=sys.stderr)
        return 1

    if args.check_today:
        if succeeded_today(status):
            print("Today's git update already completed successfully")
            return 0
        print("No successful git update recorded today")
        return 1

    if args.format == "json":
        print(json.dumps(status, indent=2))
    else:
        print(formatter(status))

    summary = status.get("summary") or {}
    repositories = summary.get("repositories") or {}
    durations = summary.get("durations") or {}
    if args.failures:
        failed = {name: outcome for name, outcome in repositories.items() if outcome in {"FAILED", "TIMEOUT"}}
        for name, outcome in sorted(failed.items()):
            if name in durations:
                print(f"{name}: {outcome} after {durations[name]}s")
            else:
                print(f"{name}: {outcome}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Show the outcome of the last repo-sync run.")
    parser.add_argument(
        "--status-file",
        type=Path,
        default=DEFAULT_STATUS_FILE,
        help=f"Status file to read (default: {DEFAULT_STATUS_FILE})",
    )
    parser.add_argument(
        "--format",
        choices={"json", "text"},
        default="text",
        help="Output format (default: text)",
    )
    parser.add_argument(
        "--check-today",
        action="store_true",
        help="Exit 0 only if a successful run was recorded today",
    )
    parser.add_argument(
        "--failures",
        action="store_true",
        help="Also list repositories that failed or timed out",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    exit_code = report_status(args)
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()

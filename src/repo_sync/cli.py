"""Command line entry point for repo-sync."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from . import __version__
from .config import RepoSyncSettings, get_settings
from .orchestrator import run

EPILOG = """\
Environment variables:
  CODE_DIR          Directory containing git repositories (default: ~/code)
  VERBOSE           Enable verbose logging (true/false)
  DRY_RUN           Enable dry-run mode (true/false)
  BATCH_SIZE        Number of parallel jobs (default: 3)
  JOB_TIMEOUT       Timeout per repository in seconds (default: 300)
  SKIP_DIRS         Space-separated list of directories to skip
  EXCLUDED_REPOS    Space-separated list of repositories to leave alone
  DEFAULT_BRANCHES  Space-separated list of default branch names to check

Examples:
  repo-sync                        # Update all repos in ~/code (3 parallel)
  repo-sync --batch 5              # Use 5 parallel jobs
  repo-sync --verbose --batch 2    # Use 2 parallel jobs with verbose output
  repo-sync --dry-run              # Show what would be done
"""


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from exc
    if number < 1:
        raise argparse.ArgumentTypeError("must be >= 1")
    return number


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a number, got {value!r}") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError("must be > 0")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repo-sync",
        description="Update every git repository under a directory, in parallel batches.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", default=None, help="Enable verbose output")
    parser.add_argument(
        "-n",
        "--dry-run",
        action="store_true",
        default=None,
        help="Show what would be done without making changes",
    )
    parser.add_argument("-d", "--dir", dest="code_dir", type=Path, help="Set code directory (default: ~/code)")
    parser.add_argument(
        "-b",
        "--batch",
        dest="batch_size",
        type=_positive_int,
        help="Set batch size for parallel processing (default: 3)",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        dest="job_timeout",
        type=_positive_float,
        help="Set job timeout in seconds (default: 300)",
    )
    parser.add_argument(
        "--hooks",
        dest="hook_paths",
        type=Path,
        action="append",
        help="Hook YAML file or directory (repeatable; replaces REPO_SYNC_HOOK_PATHS)",
    )
    parser.add_argument("--status-file", type=Path, help="Write a JSON run summary to this path")
    parser.add_argument("--log-file", type=Path, help="Append the run log to this file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def apply_overrides(settings: RepoSyncSettings, args: argparse.Namespace) -> RepoSyncSettings:
    """Return settings with every flag given on the command line applied."""

    updates: dict[str, Any] = {}
    for name in ("verbose", "dry_run", "batch_size", "job_timeout", "status_file", "log_file"):
        value = getattr(args, name, None)
        if value is not None:
            updates[name] = value
    if args.code_dir is not None:
        updates["code_dir"] = args.code_dir.expanduser()
    if args.hook_paths:
        updates["hook_paths"] = tuple(path.expanduser().resolve() for path in args.hook_paths)
    return settings.model_copy(update=updates)


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = get_settings()
    except ValidationError as exc:
        parser.exit(1, f"repo-sync: invalid configuration:\n{exc}\n")
    exit_code = run(apply_overrides(settings, args))
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()

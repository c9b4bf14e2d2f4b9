"""Environment helpers for git and hook subprocesses."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

_SANITIZED_VARS = {
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_INDEX_FILE",
    "GIT_OBJECT_DIRECTORY",
    "GIT_CEILING_DIRECTORIES",
    "PYTHONHOME",
    "PYTHONPATH",
}

# Unattended runs must fail fast instead of waiting for credentials, and
# porcelain-adjacent output ("Already up to date", "HEAD branch") is parsed.
_GIT_OVERRIDES = {
    "GIT_TERMINAL_PROMPT": "0",
    "LC_ALL": "C",
}


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return an environment suitable for running git against an explicit working directory."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    env.update(_GIT_OVERRIDES)
    if additional:
        env.update(additional)
    return env


def hook_environment(cwd: Path, additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return the minimal environment repository hook commands run with."""

    env = {
        "PATH": os.environ.get("PATH", os.defpath),
        "HOME": os.environ.get("HOME", str(Path.home())),
        "PWD": str(cwd),
    }
    if additional:
        env.update(additional)
    return env


__all__ = ["hook_environment", "sanitize_environment"]

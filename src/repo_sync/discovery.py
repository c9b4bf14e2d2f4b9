"""Find candidate repository directories under the root directory."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .models import RepositoryDescriptor


@dataclass(slots=True)
class DiscoveryResult:
    repositories: list[RepositoryDescriptor] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    excluded: list[str] = field(default_factory=list)


def discover_repositories(
    root: Path,
    *,
    skip_dirs: Iterable[str] = (),
    excluded: Iterable[str] = (),
) -> DiscoveryResult:
    """List the immediate subdirectories of ``root`` that should be processed.

    Hidden directories are ignored. Names in ``skip_dirs`` or ``excluded`` are
    reported separately and not processed. Whether a directory is actually a
    git working copy is decided later, per repository.
    """

    skip = set(skip_dirs)
    exclude = set(excluded)
    result = DiscoveryResult()

    for child in sorted(Path(root).iterdir(), key=lambda path: path.name):
        if not child.is_dir() or child.name.startswith("."):
            continue
        if child.name in skip:
            result.skipped.append(child.name)
            continue
        if child.name in exclude:
            result.excluded.append(child.name)
            continue
        result.repositories.append(RepositoryDescriptor.from_path(child))

    return result


__all__ = ["DiscoveryResult", "discover_repositories"]

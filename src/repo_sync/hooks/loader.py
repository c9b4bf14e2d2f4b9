"""Hook file loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml
from pydantic import ValidationError

from .models import RepoHookSet


class HookLoadError(RuntimeError):
    """Raised when one or more hook files cannot be parsed."""


class HookLoader:
    """Loads per-repository hook definitions from YAML files or directories of them."""

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        self._search_paths: list[Path] = [Path(path) for path in (search_paths or [])]

    def _files(self) -> Iterable[Path]:
        for base in self._search_paths:
            if base.is_file():
                yield base
            elif base.is_dir():
                yield from sorted(base.glob("*.yml")) + sorted(base.glob("*.yaml"))

    def load_all(self) -> dict[str, RepoHookSet]:
        """Load hook sets keyed by repository name.

        A file may hold several YAML documents. Later files override earlier
        ones when repository names collide. Missing search paths are an error.
        """

        missing = [str(path) for path in self._search_paths if not path.exists()]
        if missing:
            raise HookLoadError(f"Hook path(s) not found: {', '.join(missing)}")

        hook_sets: dict[str, RepoHookSet] = {}
        errors: list[str] = []

        for path in self._files():
            try:
                documents = list(yaml.safe_load_all(path.read_text(encoding="utf-8")))
            except yaml.YAMLError as exc:
                errors.append(f"Failed to parse YAML in {path}: {exc}")
                continue

            for document in documents:
                if document is None:
                    continue
                try:
                    hook_set = RepoHookSet.model_validate(document)
                except ValidationError as exc:
                    errors.append(f"Hook validation error in {path}: {exc}")
                    continue
                hook_sets[hook_set.repository] = hook_set

        if errors:
            raise HookLoadError("; ".join(errors))

        return hook_sets


__all__ = ["HookLoadError", "HookLoader"]

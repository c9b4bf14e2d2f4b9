"""Per-repository hook models, loader and executor."""

from .executor import DEFAULT_HOOK_TIMEOUT, HookExecutor
from .loader import HookLoadError, HookLoader
from .models import HookCommand, RepoHookSet

__all__ = [
    "DEFAULT_HOOK_TIMEOUT",
    "HookCommand",
    "HookExecutor",
    "HookLoadError",
    "HookLoader",
    "RepoHookSet",
]

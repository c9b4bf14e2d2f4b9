"""Git command layer."""

from .client import GitClient, GitCommandError
from .runner import FakeGitRunner, GitNotFoundError, GitRunner, GitRunnerError

__all__ = [
    "FakeGitRunner",
    "GitClient",
    "GitCommandError",
    "GitNotFoundError",
    "GitRunner",
    "GitRunnerError",
]

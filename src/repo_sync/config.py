"""Configuration management for repo-sync."""

from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_SKIP_DIRS = ("logs", ".DS_Store", "automated-git-sync")
DEFAULT_BRANCHES = ("main", "master")


def _split_words(value, *, name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(value.split())
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(str(item) for item in value)
    raise TypeError(f"{name} must be a list of names or a space-separated string")


class RepoSyncSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    code_dir: Path = Field(default=Path("~/code"), validation_alias="CODE_DIR")
    skip_dirs: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_SKIP_DIRS, validation_alias="SKIP_DIRS"
    )
    excluded_repos: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(), validation_alias="EXCLUDED_REPOS"
    )
    default_branches: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_BRANCHES, validation_alias="DEFAULT_BRANCHES"
    )
    verbose: bool = Field(default=False, validation_alias="VERBOSE")
    dry_run: bool = Field(default=False, validation_alias="DRY_RUN")
    batch_size: int = Field(default=3, validation_alias="BATCH_SIZE")
    job_timeout: float = Field(default=300.0, validation_alias="JOB_TIMEOUT")
    remote: str = Field(default="origin", validation_alias="REPO_SYNC_REMOTE")
    connectivity_timeout: float = Field(default=10.0, validation_alias="REPO_SYNC_CONNECT_TIMEOUT")
    pull_timeout: float = Field(default=60.0, validation_alias="REPO_SYNC_PULL_TIMEOUT")
    hook_timeout: float = Field(default=300.0, validation_alias="REPO_SYNC_HOOK_TIMEOUT")
    hook_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(), validation_alias="REPO_SYNC_HOOK_PATHS"
    )
    log_dir: Path = Field(default=Path("./logs"), validation_alias="REPO_SYNC_LOG_DIR")
    log_file: Path | None = Field(default=None, validation_alias="LOG_FILE")
    log_retention_days: int | None = Field(default=None, validation_alias="LOG_RETENTION_DAYS")
    log_lock_timeout: float = Field(default=5.0, validation_alias="REPO_SYNC_LOG_LOCK_TIMEOUT")
    status_file: Path | None = Field(default=None, validation_alias="REPO_SYNC_STATUS_FILE")
    git_path: str | None = Field(default=None, validation_alias="GIT_PATH")

    @field_validator("skip_dirs", "excluded_repos", mode="before")
    @classmethod
    def _parse_names(cls, value, info):
        return _split_words(value, name=info.field_name.upper())

    @field_validator("default_branches", mode="before")
    @classmethod
    def _parse_branches(cls, value):
        branches = _split_words(value, name="DEFAULT_BRANCHES")
        return branches or DEFAULT_BRANCHES

    @field_validator("hook_paths", mode="before")
    @classmethod
    def _parse_hook_paths(cls, value):
        if value is None or value == "":
            return ()
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts)
        raise TypeError("REPO_SYNC_HOOK_PATHS must be a list of paths or a path-separated string")

    @field_validator("batch_size")
    @classmethod
    def _validate_batch_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("BATCH_SIZE must be >= 1")
        return value

    @field_validator(
        "job_timeout", "connectivity_timeout", "pull_timeout", "hook_timeout", "log_lock_timeout"
    )
    @classmethod
    def _validate_timeout(cls, value: float, info) -> float:
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("log_retention_days")
    @classmethod
    def _validate_retention(cls, value: int | None) -> int | None:
        if value is not None and value < 0:
            raise ValueError("LOG_RETENTION_DAYS must be >= 0")
        return value

    def resolved_log_file(self, now: datetime | None = None) -> Path:
        """Return the shared log file, defaulting to a timestamped file in ``log_dir``."""

        if self.log_file is not None:
            return self.log_file.expanduser()
        stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
        return self.log_dir.expanduser() / f"git_update_{stamp}.log"


@lru_cache(maxsize=1)
def get_settings() -> RepoSyncSettings:
    """Return cached settings instance."""

    settings = RepoSyncSettings()
    settings.code_dir = settings.code_dir.expanduser()
    settings.hook_paths = tuple(path.expanduser().resolve() for path in settings.hook_paths)
    return settings


__all__ = ["DEFAULT_BRANCHES", "DEFAULT_SKIP_DIRS", "RepoSyncSettings", "get_settings"]

"""Models for per-repository hook commands."""

from __future__ import annotations

import shlex
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class HookCommand(BaseModel):
    """A single command run in a repository after it has been synced."""

    argv: list[str] | None = Field(
        default=None,
        description="Argument list executed directly, without a shell.",
    )
    shell: str | None = Field(
        default=None,
        description="Command line interpreted by /bin/sh. Explicit opt-in for pipes and operators.",
    )
    description: str | None = Field(
        default=None,
        description="Optional human-friendly label used in log output.",
    )
    timeout: float | None = Field(
        default=None,
        description="Seconds before the command is killed; falls back to the executor default.",
    )
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment variables layered over the minimal hook environment.",
    )

    @field_validator("argv", mode="before")
    @classmethod
    def _split_argv(cls, value: Any):
        if value is None:
            return None
        if isinstance(value, str):
            return shlex.split(value)
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value]
        raise TypeError("argv must be a list of arguments or a command string")

    @field_validator("argv")
    @classmethod
    def _require_program(cls, value: list[str] | None) -> list[str] | None:
        if value is not None and (not value or not value[0].strip()):
            raise ValueError("argv must name a program to run")
        return value

    @field_validator("timeout")
    @classmethod
    def _positive_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("timeout must be > 0")
        return value

    @model_validator(mode="after")
    def _exactly_one_form(self) -> "HookCommand":
        if (self.argv is None) == (self.shell is None):
            raise ValueError("hook command needs exactly one of 'argv' or 'shell'")
        if self.shell is not None and not self.shell.strip():
            raise ValueError("shell command must not be empty")
        return self

    @property
    def display(self) -> str:
        if self.description:
            return self.description
        if self.argv is not None:
            return shlex.join(self.argv)
        return self.shell or ""


class RepoHookSet(BaseModel):
    """Commands configured for one repository, matched by directory name."""

    repository: str = Field(..., description="Repository directory name the commands apply to.")
    commands: list[HookCommand] = Field(
        default_factory=list,
        description="Commands run in order after the repository is synced.",
    )

    @field_validator("repository")
    @classmethod
    def _normalize_repository(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Hook repository name must not be empty")
        return normalized

    @field_validator("commands", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return list(value)
        raise TypeError("commands must be a list of hook commands")


__all__ = ["HookCommand", "RepoHookSet"]

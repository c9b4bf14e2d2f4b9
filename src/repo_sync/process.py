"""Bounded async subprocess execution shared by git calls and repository hooks."""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence


@dataclass(slots=True)
class CommandResult:
    """Holds the outcome of one subprocess invocation."""

    args: tuple[str, ...]
    returncode: int | None
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """Combined stripped stdout/stderr, for log messages."""

        parts = [self.stdout.strip(), self.stderr.strip()]
        return "\n".join(part for part in parts if part)


def _kill_group(process: asyncio.subprocess.Process) -> None:
    # Each child is started in its own session, so its pid is also the group id.
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        with contextlib.suppress(ProcessLookupError):
            process.kill()


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        _kill_group(process)
    await process.wait()


async def run_command(
    command: Sequence[str] | str,
    *,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
    shell: bool = False,
) -> CommandResult:
    """Run a command to completion, killing it (and its children) on timeout or cancellation.

    ``command`` is an argument list, or a single string when ``shell`` is true.
    A timeout is reported through ``CommandResult.timed_out`` rather than raised.
    Cancellation kills the process group and then propagates.
    """

    common = dict(
        cwd=str(cwd) if cwd is not None else None,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=dict(env) if env is not None else None,
        start_new_session=True,
    )
    if shell:
        if not isinstance(command, str):
            raise TypeError("shell commands must be given as a single string")
        args: tuple[str, ...] = (command,)
        process = await asyncio.create_subprocess_shell(command, **common)
    else:
        if isinstance(command, str):
            raise TypeError("commands must be given as an argument list unless shell=True")
        args = tuple(command)
        process = await asyncio.create_subprocess_exec(*args, **common)

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError:
        await _terminate(process)
        return CommandResult(
            args=args,
            returncode=process.returncode,
            stdout="",
            stderr="",
            timed_out=True,
        )
    except asyncio.CancelledError:
        await _terminate(process)
        raise

    return CommandResult(
        args=args,
        returncode=process.returncode,
        stdout=stdout_bytes.decode("utf-8", errors="replace"),
        stderr=stderr_bytes.decode("utf-8", errors="replace"),
    )


__all__ = ["CommandResult", "run_command"]

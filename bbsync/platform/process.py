"""Async subprocess execution with Result-based error handling.

Commands are always given as an argument vector and never go through a
shell. Output is captured and failures come back as ``ProcessError`` values
instead of exceptions.

Usage:
    result = await run(["git", "status"], cwd=repo_path)
    match result:
        case Ok(stdout):
            print(stdout)
        case Err(error):
            print(f"Failed: {error.summary}")
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from bbsync.core.result import Err, Ok, Result

__all__ = ["ProcessError", "first_line", "run"]

ProcessErrorKind = Literal["exited", "spawn"]


def first_line(text: str) -> str:
    """First non-blank line of text, stripped ("" when there is none)."""
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return ""


@dataclass(frozen=True, slots=True)
class ProcessError:
    """Error from a failed subprocess execution.

    Attributes:
        command: The command that was executed.
        kind: "exited" for a non-zero exit, "spawn" if it never started.
        returncode: The exit code (-1 when not available).
        stdout: Standard output (may be empty).
        stderr: Standard error, or the OS error text for "spawn".
    """

    command: tuple[str, ...]
    kind: ProcessErrorKind
    returncode: int
    stdout: str
    stderr: str

    @property
    def summary(self) -> str:
        """One-line cause: stderr first, then stdout, then "no output"."""
        return first_line(self.stderr) or first_line(self.stdout) or "no output"

    def __str__(self) -> str:
        cmd_str = " ".join(self.command[:3])
        if len(self.command) > 3:
            cmd_str += " ..."
        if self.kind == "spawn":
            return f"{cmd_str} could not be started: {self.summary}"
        return f"{cmd_str} failed (exit {self.returncode})"


async def run(
    cmd: list[str],
    cwd: Path,
    env: Mapping[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[str, ProcessError]:
    """Execute a command and return its stdout or an error.

    Args:
        cmd: Command and arguments to execute.
        cwd: Working directory for the command.
        env: Extra environment variables layered over the current env.
        timeout: Maximum seconds to wait (None for no limit).

    Returns:
        Ok(stdout) on success, Err(ProcessError) on failure.
    """
    full_env = None
    if env is not None:
        full_env = {**os.environ, **env}

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(cwd),
            env=full_env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        return Err(
            ProcessError(
                command=tuple(cmd),
                kind="spawn",
                returncode=-1,
                stdout="",
                stderr=str(e),
            )
        )

    try:
        stdout_b, stderr_b = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        proc.kill()
        await proc.wait()
        return Err(
            ProcessError(
                command=tuple(cmd),
                kind="exited",
                returncode=-1,
                stdout="",
                stderr=f"Command timed out after {timeout}s",
            )
        )

    stdout = stdout_b.decode("utf-8", errors="replace")
    stderr = stderr_b.decode("utf-8", errors="replace")

    if proc.returncode != 0:
        return Err(
            ProcessError(
                command=tuple(cmd),
                kind="exited",
                returncode=proc.returncode if proc.returncode is not None else -1,
                stdout=stdout,
                stderr=stderr,
            )
        )

    return Ok(stdout)

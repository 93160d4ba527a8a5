from __future__ import annotations

import asyncio
from pathlib import Path

from .errors import TaskExecutionError
from .logging import get_logger


log = get_logger("devflow.process")

_STDERR_TAIL = 2000


async def run_command(
    task_name: str,
    argv: list[str],
    cwd: str | Path,
    stdin: bytes | None = None,
) -> bytes:
    """Run an external command to completion and return its stdout.

    A missing executable or a non-zero exit becomes a TaskExecutionError
    carrying the exit code and the tail of stderr.
    """
    log.debug("Exec (%s): %s", task_name, " ".join(argv))
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd),
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise TaskExecutionError(
            task_name, f"Task '{task_name}' could not start {argv[0]!r}: {e}"
        ) from e
    out, err = await proc.communicate(stdin)
    if proc.returncode != 0:
        tail = err.decode("utf-8", errors="replace")[-_STDERR_TAIL:].strip()
        error = TaskExecutionError(
            task_name,
            f"Task '{task_name}': {argv[0]} exited with code {proc.returncode}"
            + (f"\n{tail}" if tail else ""),
        )
        error.returncode = proc.returncode
        raise error
    return out

"""Subprocess invocation with output capture and timeout escalation.

This is the only module that touches OS process primitives. Every call
owns its own process, pipes and buffers, so any number of invocations can
run concurrently on one event loop.
"""

from __future__ import annotations

import asyncio
import os
import signal
import time
from collections.abc import Mapping, Sequence
from contextlib import suppress

from rlm_eval.types import ProcessResult

# Seconds between SIGTERM and SIGKILL once the timeout fires
KILL_GRACE_SECONDS = 1.0
# Upper bound on draining pipes after the process has exited
PIPE_DRAIN_SECONDS = 1.0
# How often the exit status is checked while waiting
EXIT_POLL_SECONDS = 0.01
# Reported for launch failures and signal-terminated processes
FAILURE_EXIT_CODE = 1

_READ_CHUNK_SIZE = 64 * 1024

__all__ = [
    "FAILURE_EXIT_CODE",
    "KILL_GRACE_SECONDS",
    "run_process",
]


def _elapsed_ms(start: float) -> int:
    return max(0, int((time.monotonic() - start) * 1000))


def _send_signal(process: asyncio.subprocess.Process, sig: int) -> None:
    """Signal the process group so children spawned by the agent go too."""
    with suppress(ProcessLookupError):
        if hasattr(os, "killpg"):
            os.killpg(process.pid, sig)
        else:
            process.send_signal(sig)


async def _read_stream(stream: asyncio.StreamReader, sink: bytearray) -> None:
    while chunk := await stream.read(_READ_CHUNK_SIZE):
        sink.extend(chunk)


async def _feed_stdin(stream: asyncio.StreamWriter, data: bytes | None) -> None:
    # The process may exit without consuming its input
    with suppress(BrokenPipeError, ConnectionResetError):
        if data:
            stream.write(data)
            await stream.drain()
        stream.close()
        await stream.wait_closed()


async def _wait_for_exit(
    process: asyncio.subprocess.Process, timeout_seconds: float | None = None
) -> bool:
    """Wait until the process itself has exited. Returns False on timeout.

    ``process.wait()`` can also wait for the pipes to close, which a
    background child of the agent may hold open long after the agent
    exits. ``returncode`` is set as soon as the process is reaped.
    """
    deadline = None if timeout_seconds is None else time.monotonic() + timeout_seconds
    while process.returncode is None:
        if deadline is not None and time.monotonic() >= deadline:
            return False
        await asyncio.sleep(EXIT_POLL_SECONDS)
    return True


async def _wait_with_escalation(
    process: asyncio.subprocess.Process, timeout_seconds: float
) -> bool:
    """Wait for exit; SIGTERM at the deadline, SIGKILL after the grace period.

    Returns True when the deadline passed before the process exited.
    """
    if await _wait_for_exit(process, timeout_seconds):
        return False

    _send_signal(process, signal.SIGTERM)
    if not await _wait_for_exit(process, KILL_GRACE_SECONDS):
        _send_signal(process, signal.SIGKILL)
        await _wait_for_exit(process)
    return True


async def _abandon(
    process: asyncio.subprocess.Process, io_tasks: list[asyncio.Task[None]]
) -> None:
    """Kill and reap the process and stop its pipe tasks after cancellation."""
    if process.returncode is None:
        _send_signal(process, signal.SIGKILL)
    for task in io_tasks:
        task.cancel()
    await asyncio.gather(*io_tasks, return_exceptions=True)
    await _wait_for_exit(process, KILL_GRACE_SECONDS)


async def _drain(io_tasks: list[asyncio.Task[None]]) -> None:
    _, pending = await asyncio.wait(io_tasks, timeout=PIPE_DRAIN_SECONDS)
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)


async def run_process(
    command: str,
    args: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    stdin: str | None = None,
    timeout_ms: int,
) -> ProcessResult:
    """Run ``command`` with ``args`` and collect its output.

    ``stdin`` (if given) is written to the process and the stream is closed;
    stdout and stderr are accumulated concurrently. When the process has not
    exited after ``timeout_ms`` it receives SIGTERM, then SIGKILL one second
    later.

    Never raises for process-level failures: a command that cannot be
    launched is reported as ``exit_code=1`` with empty output.
    """
    start = time.monotonic()
    try:
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(env) if env is not None else None,
            start_new_session=True,
        )
    except OSError:
        return ProcessResult(
            stdout="",
            stderr="",
            exit_code=FAILURE_EXIT_CODE,
            wall_time_ms=_elapsed_ms(start),
        )

    assert process.stdin is not None
    assert process.stdout is not None
    assert process.stderr is not None

    stdout_buffer = bytearray()
    stderr_buffer = bytearray()
    io_tasks = [
        asyncio.create_task(_read_stream(process.stdout, stdout_buffer)),
        asyncio.create_task(_read_stream(process.stderr, stderr_buffer)),
        asyncio.create_task(
            _feed_stdin(
                process.stdin, stdin.encode("utf-8") if stdin is not None else None
            )
        ),
    ]

    try:
        timed_out = await _wait_with_escalation(process, timeout_ms / 1000)
    except asyncio.CancelledError:
        await _abandon(process, io_tasks)
        raise
    wall_time_ms = _elapsed_ms(start)

    await _drain(io_tasks)

    returncode = process.returncode
    exit_code = (
        returncode if returncode is not None and returncode >= 0 else FAILURE_EXIT_CODE
    )

    return ProcessResult(
        stdout=stdout_buffer.decode("utf-8", errors="replace"),
        stderr=stderr_buffer.decode("utf-8", errors="replace"),
        exit_code=exit_code,
        wall_time_ms=wall_time_ms,
        timed_out=timed_out,
    )

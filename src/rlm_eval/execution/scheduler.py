"""Bounded-concurrency task execution for eval runs."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from pathlib import Path

from rlm_eval.checkpoint import ResultWriter
from rlm_eval.protocols import Driver, ProgressCallback, ScoringFn
from rlm_eval.stats import mean
from rlm_eval.types import DriverOptions, EvalResult, ProgressInfo, Task

TRACE_SUBDIR = "trace"
TRACE_RESPONSE_SUFFIX = "-response.md"

__all__ = [
    "EvalScheduler",
    "count_trace_iterations",
    "format_elapsed",
    "run_task",
]


def count_trace_iterations(trace: str) -> int:
    """Count ``*-response.md`` files in ``<trace>/trace``.

    Best-effort fallback for agents that do not report an iteration count.
    Returns 0 when the trace is not a readable local directory.
    """
    if not trace:
        return 0
    try:
        return sum(
            1
            for entry in (Path(trace) / TRACE_SUBDIR).iterdir()
            if entry.name.endswith(TRACE_RESPONSE_SUFFIX)
        )
    except OSError:
        return 0


def format_elapsed(seconds: float) -> str:
    """Compact elapsed time: ``42s``, ``3m07s``, ``1h05m``."""
    total_seconds = int(seconds)
    minutes, secs = divmod(total_seconds, 60)
    hours, mins = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h{mins:02d}m"
    if minutes > 0:
        return f"{minutes}m{secs:02d}s"
    return f"{secs}s"


def _error_result(task: Task, message: str) -> EvalResult:
    return {
        "task_id": task.id,
        "query": task.query,
        "expected_answer": task.expected_answer,
        "generated_answer": "",
        "score": 0.0,
        "iterations": 0,
        "wall_time_ms": 0,
        "error": message,
    }


async def run_task(
    task: Task,
    driver: Driver,
    scoring_fn: ScoringFn,
    options: DriverOptions,
) -> EvalResult:
    """Execute a single attempt for ``task`` and build its result.

    Any exception raised by the driver or the scoring function becomes an
    error result; nothing propagates except cancellation.
    """
    try:
        invocation = await driver.call(task.query, task.context, options)
        iterations = (
            invocation.iterations
            if invocation.iterations is not None
            else count_trace_iterations(invocation.trace)
        )
        result: EvalResult = {
            "task_id": task.id,
            "query": task.query,
            "expected_answer": task.expected_answer,
            "generated_answer": "",
            "score": 0.0,
            # Floor of 1 keeps per-iteration statistics well defined
            "iterations": iterations or 1,
            "wall_time_ms": invocation.wall_time_ms,
        }
        if invocation.trace:
            result["trace"] = invocation.trace

        if invocation.exit_code != 0:
            if invocation.timed_out:
                result["error"] = f"timed out after {options.timeout_ms}ms"
            else:
                result["error"] = f"exit code {invocation.exit_code}"
            return result

        result["score"] = float(scoring_fn(task.expected_answer, invocation.answer))
        result["generated_answer"] = invocation.answer
        return result
    except Exception as e:
        return _error_result(task, str(e) or type(e).__name__)


class EvalScheduler:
    """Runs pending tasks through a fixed pool of workers.

    Workers pull from a fully materialized queue, so at most ``concurrency``
    tasks are in flight at any instant. Each completion is persisted through
    the ResultWriter before progress is reported.
    """

    def __init__(
        self,
        driver: Driver,
        scoring_fn: ScoringFn,
        writer: ResultWriter,
        options: DriverOptions,
        concurrency: int,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1 (got {concurrency})")
        self._driver = driver
        self._scoring_fn = scoring_fn
        self._writer = writer
        self._options = options
        self._concurrency = concurrency
        self._on_progress = on_progress
        self._start_time = 0.0
        self._total = 0

    async def run(self, pending: Sequence[Task], total: int | None = None) -> None:
        """Execute every task in ``pending`` exactly once.

        Args:
            pending: Tasks without a stored result.
            total: Size of the full task list, for progress reporting.
        """
        self._total = total if total is not None else len(pending)
        self._start_time = time.monotonic()
        if not pending:
            return

        queue: asyncio.Queue[Task] = asyncio.Queue()
        for task in pending:
            queue.put_nowait(task)

        workers = [
            asyncio.create_task(self._worker(queue))
            for _ in range(min(self._concurrency, len(pending)))
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            for worker in workers:
                worker.cancel()

    async def _worker(self, queue: asyncio.Queue[Task]) -> None:
        while True:
            try:
                task = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            result = await run_task(task, self._driver, self._scoring_fn, self._options)
            await self._writer.record(result)
            self._report_progress(result)

    def _report_progress(self, result: EvalResult) -> None:
        if self._on_progress is None:
            return
        results = self._writer.results
        scores = [r["score"] for r in results if not r.get("error")]
        self._on_progress(
            ProgressInfo(
                completed=len(results),
                total=self._total,
                score=result["score"],
                mean_score=mean(scores),
                elapsed=format_elapsed(time.monotonic() - self._start_time),
            )
        )

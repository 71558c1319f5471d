import asyncio
import time

import orjson
import pytest

from rlm_eval.checkpoint import ReportMetadata, ResultWriter
from rlm_eval.execution.scheduler import (
    EvalScheduler,
    count_trace_iterations,
    format_elapsed,
    run_task,
)
from rlm_eval.scoring import exact_match
from rlm_eval.types import DriverOptions, InvocationResult

from conftest import FakeDriver, make_task

METADATA = ReportMetadata(
    benchmark="test",
    model="m",
    driver="fake",
    max_iterations=15,
    max_depth=2,
    concurrency=3,
)


class StaticDriver:
    """Returns one fixed invocation result for every call."""

    def __init__(self, result: InvocationResult):
        self.result = result

    async def call(self, query, context=None, options=None):
        return self.result


class RaisingDriver:
    async def call(self, query, context=None, options=None):
        raise ConnectionError("connection refused")


def _failing_scorer(expected, actual):
    raise ValueError("cannot score")


class TestRunTask:
    @pytest.mark.asyncio
    async def test_successful_task(self):
        result = await run_task(make_task("a"), FakeDriver(), exact_match, DriverOptions())

        assert result["task_id"] == "a"
        assert result["generated_answer"] == "query a"
        assert result["score"] == 1.0
        assert result["iterations"] == 2
        assert "error" not in result
        assert "trace" not in result

    @pytest.mark.asyncio
    async def test_driver_exception_becomes_error_result(self):
        result = await run_task(make_task("a"), RaisingDriver(), exact_match, DriverOptions())

        assert result["error"] == "connection refused"
        assert result["score"] == 0.0
        assert result["generated_answer"] == ""
        assert result["iterations"] == 0
        assert result["wall_time_ms"] == 0

    @pytest.mark.asyncio
    async def test_scoring_exception_becomes_error_result(self):
        result = await run_task(
            make_task("a"), FakeDriver(), _failing_scorer, DriverOptions()
        )

        assert result["error"] == "cannot score"
        assert result["score"] == 0.0
        assert result["generated_answer"] == ""

    @pytest.mark.asyncio
    async def test_nonzero_exit_keeps_diagnostics(self):
        driver = StaticDriver(
            InvocationResult(
                answer="half an answer",
                exit_code=2,
                wall_time_ms=1500,
                trace="/tmp/trace",
                iterations=4,
            )
        )

        result = await run_task(make_task("a", "x"), driver, exact_match, DriverOptions())

        assert result["error"] == "exit code 2"
        assert result["score"] == 0.0
        assert result["generated_answer"] == ""
        assert result["wall_time_ms"] == 1500
        assert result["iterations"] == 4
        assert result["trace"] == "/tmp/trace"

    @pytest.mark.asyncio
    async def test_timeout_error_message(self):
        driver = StaticDriver(
            InvocationResult(
                answer="", exit_code=1, wall_time_ms=1200, trace="", timed_out=True
            )
        )

        result = await run_task(
            make_task("a"), driver, exact_match, DriverOptions(timeout_ms=200)
        )

        assert result["error"] == "timed out after 200ms"
        assert result["score"] == 0.0

    @pytest.mark.asyncio
    async def test_iterations_fall_back_to_trace_count(self, tmp_path):
        (tmp_path / "trace").mkdir()
        for name in ("001-response.md", "002-response.md", "001-prompt.md"):
            (tmp_path / "trace" / name).write_text("x")
        driver = StaticDriver(
            InvocationResult(answer="x", exit_code=0, wall_time_ms=5, trace=str(tmp_path))
        )

        result = await run_task(make_task("a", "x"), driver, exact_match, DriverOptions())

        assert result["iterations"] == 2
        assert result["trace"] == str(tmp_path)

    @pytest.mark.asyncio
    async def test_iterations_floor_of_one(self):
        driver = StaticDriver(
            InvocationResult(answer="x", exit_code=0, wall_time_ms=5, trace="ssh://box")
        )

        result = await run_task(make_task("a", "x"), driver, exact_match, DriverOptions())

        assert result["iterations"] == 1


def test_count_trace_iterations_without_directory(tmp_path):
    assert count_trace_iterations("") == 0
    assert count_trace_iterations(str(tmp_path / "missing")) == 0


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "0s"), (42.9, "42s"), (187, "3m07s"), (3900, "1h05m")],
)
def test_format_elapsed(seconds, expected):
    assert format_elapsed(seconds) == expected


class TestEvalScheduler:
    @pytest.mark.asyncio
    async def test_respects_concurrency_limit(self, tmp_path):
        driver = FakeDriver(delay=0.1)
        writer = ResultWriter(tmp_path / "report.json", METADATA)
        scheduler = EvalScheduler(driver, exact_match, writer, DriverOptions(), concurrency=3)
        tasks = [make_task(f"t{i}") for i in range(10)]

        start = time.monotonic()
        await scheduler.run(tasks)
        elapsed = time.monotonic() - start

        assert driver.max_in_flight == 3
        # ceil(10 / 3) waves of 0.1s, far below the 1s a serial run takes
        assert elapsed < 0.8
        assert sorted(r["task_id"] for r in writer.results) == sorted(t.id for t in tasks)

    @pytest.mark.asyncio
    async def test_each_task_dispatched_once(self, tmp_path):
        driver = FakeDriver(delay=0.01)
        writer = ResultWriter(tmp_path / "report.json", METADATA)
        scheduler = EvalScheduler(driver, exact_match, writer, DriverOptions(), concurrency=4)
        tasks = [make_task(f"t{i}") for i in range(25)]

        await scheduler.run(tasks)

        assert sorted(driver.calls) == sorted(t.query for t in tasks)
        persisted = orjson.loads((tmp_path / "report.json").read_bytes())
        assert len(persisted["results"]) == 25

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_other_tasks(self, tmp_path):
        writer = ResultWriter(tmp_path / "report.json", METADATA)
        scheduler = EvalScheduler(
            RaisingDriver(), exact_match, writer, DriverOptions(), concurrency=2
        )

        await scheduler.run([make_task(f"t{i}") for i in range(5)])

        assert len(writer.results) == 5
        assert all(r["error"] == "connection refused" for r in writer.results)

    @pytest.mark.asyncio
    async def test_progress_callback(self, tmp_path):
        events = []
        driver = FakeDriver(answers={"query t1": "wrong"})
        writer = ResultWriter(tmp_path / "report.json", METADATA)
        scheduler = EvalScheduler(
            driver,
            exact_match,
            writer,
            DriverOptions(),
            concurrency=1,
            on_progress=events.append,
        )

        await scheduler.run([make_task("t0"), make_task("t1")], total=5)

        assert [e.completed for e in events] == [1, 2]
        assert all(e.total == 5 for e in events)
        assert [e.score for e in events] == [1.0, 0.0]
        assert events[-1].mean_score == 0.5
        assert events[-1].elapsed == "0s"

    @pytest.mark.asyncio
    async def test_empty_pending_list(self, tmp_path):
        driver = FakeDriver()
        writer = ResultWriter(tmp_path / "report.json", METADATA)
        scheduler = EvalScheduler(driver, exact_match, writer, DriverOptions(), concurrency=3)

        await scheduler.run([])

        assert driver.calls == []

    def test_rejects_non_positive_concurrency(self, tmp_path):
        writer = ResultWriter(tmp_path / "report.json", METADATA)
        with pytest.raises(ValueError):
            EvalScheduler(FakeDriver(), exact_match, writer, DriverOptions(), concurrency=0)

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, tmp_path):
        driver = FakeDriver(delay=10)
        writer = ResultWriter(tmp_path / "report.json", METADATA)
        scheduler = EvalScheduler(driver, exact_match, writer, DriverOptions(), concurrency=2)

        run = asyncio.create_task(scheduler.run([make_task("a"), make_task("b")]))
        await asyncio.sleep(0.05)
        run.cancel()

        with pytest.raises(asyncio.CancelledError):
            await run
        assert writer.results == []

import asyncio
import stat
from pathlib import Path

import pytest

from rlm_eval.types import DriverOptions, InvocationResult, Task


class FakeDriver:
    """In-process driver that answers with the query, after an optional delay."""

    def __init__(self, delay: float = 0.0, answers: dict[str, str] | None = None):
        self.delay = delay
        self.answers = answers or {}
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def call(
        self,
        query: str,
        context: str | None = None,
        options: DriverOptions | None = None,
    ) -> InvocationResult:
        self.calls.append(query)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        return InvocationResult(
            answer=self.answers.get(query, query),
            exit_code=0,
            wall_time_ms=int(self.delay * 1000),
            trace="",
            iterations=2,
        )


def make_task(task_id: str, expected: str | None = None) -> Task:
    return Task(
        id=task_id,
        query=f"query {task_id}",
        expected_answer=expected if expected is not None else f"query {task_id}",
    )


def write_script(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def fake_agent(tmp_path: Path) -> Path:
    """Agent script: echoes query and stdin, reports 3 iterations, writes a trace dir."""
    return write_script(
        tmp_path / "fake-rlm",
        'mkdir -p "$_RLM_TREE_ROOT/run-1/trace"\n'
        'touch "$_RLM_TREE_ROOT/run-1/trace/001-response.md"\n'
        'input=$(cat)\n'
        'echo "answer: $1 | $input | $RLM_MAX_ITERATIONS/$RLM_MAX_DEPTH | $RLM_MODEL"\n'
        'echo \'rlm-meta: {"iterations": 3}\' >&2\n',
    )

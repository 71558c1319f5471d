"""Shared type definitions for the eval harness."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NotRequired, TypedDict

DEFAULT_MAX_ITERATIONS = 15
DEFAULT_MAX_DEPTH = 2
DEFAULT_TIMEOUT_MS = 300_000


@dataclass(frozen=True, slots=True)
class Task:
    """Single unit of evaluation work produced by a task source."""

    id: str
    query: str
    expected_answer: str
    context: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DriverOptions:
    """Per-call limits forwarded to the invoked agent."""

    max_iterations: int = DEFAULT_MAX_ITERATIONS
    max_depth: int = DEFAULT_MAX_DEPTH
    timeout_ms: int = DEFAULT_TIMEOUT_MS


@dataclass(slots=True)
class ProcessResult:
    """Captured output of one external process invocation."""

    stdout: str
    stderr: str
    exit_code: int
    wall_time_ms: int
    timed_out: bool = False


@dataclass(slots=True)
class InvocationResult:
    """What a driver reports back for one task."""

    answer: str
    exit_code: int
    wall_time_ms: int
    trace: str
    iterations: int | None = None
    timed_out: bool = False


@dataclass(frozen=True, slots=True)
class ProgressInfo:
    """Snapshot emitted after every task completion."""

    completed: int
    total: int
    score: float
    mean_score: float
    elapsed: str


class EvalResult(TypedDict):
    """Persisted outcome of a single task."""

    task_id: str
    query: str
    expected_answer: str
    generated_answer: str
    score: float
    iterations: int
    wall_time_ms: int
    error: NotRequired[str]
    trace: NotRequired[str]


class AggregateStats(TypedDict):
    """Summary statistics derived from a result set."""

    mean_score: float
    median_score: float
    std_score: float
    p25_score: float
    p75_score: float
    mean_iterations: float
    median_iterations: float
    mean_wall_time_ms: float
    total_wall_time_ms: int
    completed_tasks: int
    failed_tasks: int


class ReportConfig(TypedDict):
    driver: str
    max_iterations: int
    max_depth: int
    concurrency: int


class BenchmarkReport(TypedDict):
    """Full report document; both the final output and the resume checkpoint."""

    benchmark: str
    model: str
    config: ReportConfig
    timestamp: str
    results: list[EvalResult]
    aggregate: AggregateStats

"""Eval run orchestration: setup, resumption, scheduling and final report."""

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from rich.console import Console

from rlm_eval.checkpoint import ReportMetadata, ResultWriter, load_results
from rlm_eval.config import EvalConfig, default_output_path
from rlm_eval.driver_registry import create_driver
from rlm_eval.exceptions import FatalEvalError
from rlm_eval.execution.scheduler import EvalScheduler
from rlm_eval.protocols import Driver, ProgressCallback, ScoringFn
from rlm_eval.task_registry import get_benchmark
from rlm_eval.types import BenchmarkReport, DriverOptions, EvalResult, Task

console = Console(stderr=True)


@dataclass(slots=True)
class ResumePlan:
    """Split of the task list against previously stored results."""

    resolved: list[EvalResult]
    pending: list[Task]


def plan_resume(tasks: Sequence[Task], existing: dict[str, EvalResult]) -> ResumePlan:
    """Copy stored results verbatim; everything else is pending."""
    resolved: list[EvalResult] = []
    pending: list[Task] = []
    for task in tasks:
        stored = existing.get(task.id)
        if stored is not None:
            resolved.append(stored)
        else:
            pending.append(task)
    return ResumePlan(resolved=resolved, pending=pending)


def _check_unique_ids(tasks: Sequence[Task]) -> None:
    seen: set[str] = set()
    for task in tasks:
        if task.id in seen:
            raise FatalEvalError(
                f"Duplicate task id {task.id!r}. Results are keyed by task id, "
                f"so every task must have a unique id."
            )
        seen.add(task.id)


async def run_eval(
    tasks: Sequence[Task],
    driver: Driver,
    scoring_fn: ScoringFn,
    *,
    output: Path,
    metadata: ReportMetadata,
    options: DriverOptions,
    on_progress: ProgressCallback | None = None,
) -> BenchmarkReport:
    """Run every task not already recorded in ``output`` and return the report.

    The report file is rewritten after each completion, so an interrupted
    run resumes from where it stopped when pointed at the same output path.
    """
    _check_unique_ids(tasks)

    existing = load_results(output)
    plan = plan_resume(tasks, existing)

    if plan.resolved:
        console.print(
            f"Resuming: {len(plan.resolved)} tasks already completed, "
            f"{len(plan.pending)} remaining"
        )

    writer = ResultWriter(output, metadata, initial_results=plan.resolved)
    scheduler = EvalScheduler(
        driver=driver,
        scoring_fn=scoring_fn,
        writer=writer,
        options=options,
        concurrency=metadata.concurrency,
        on_progress=on_progress,
    )
    await scheduler.run(plan.pending, total=len(tasks))

    return await writer.flush()


def load_tasks(config: EvalConfig) -> tuple[list[Task], ScoringFn]:
    """Resolve the benchmark's task source and scoring function, and load tasks."""
    benchmark = get_benchmark(config.benchmark)
    try:
        tasks = benchmark["source"](config)
    except FatalEvalError:
        raise
    except Exception as e:
        raise FatalEvalError(
            f"Failed to load tasks for benchmark {config.benchmark!r}: {e}"
        ) from e

    if config.max_tasks is not None and config.max_tasks < len(tasks):
        tasks = tasks[: config.max_tasks]
    return tasks, benchmark["scoring_fn"]


async def run_from_config(
    config: EvalConfig,
    on_progress: ProgressCallback | None = None,
    results_dir: Path | None = None,
) -> tuple[BenchmarkReport, Path]:
    """Full workflow for a validated config. Returns (report, output path).

    Raises:
        FatalEvalError: For setup failures (unknown benchmark or driver,
            missing task data). Raised before any task is dispatched.
    """
    driver = create_driver(config.driver, config.driver_settings())
    tasks, scoring_fn = load_tasks(config)

    if config.output is not None:
        output = config.output
    elif results_dir is not None:
        output = default_output_path(config.benchmark, config.model, results_dir)
    else:
        output = default_output_path(config.benchmark, config.model)

    console.print(f"Loaded {len(tasks)} tasks")
    console.print(f"Output: {output}")
    console.print(f"Driver: {config.driver}, Concurrency: {config.concurrency}")
    console.print(
        f"Max iterations: {config.max_iterations}, Max depth: {config.max_depth}"
    )

    metadata = ReportMetadata(
        benchmark=config.benchmark,
        model=config.model,
        driver=config.driver,
        max_iterations=config.max_iterations,
        max_depth=config.max_depth,
        concurrency=config.concurrency,
    )
    report = await run_eval(
        tasks,
        driver,
        scoring_fn,
        output=output,
        metadata=metadata,
        options=config.driver_options(),
        on_progress=on_progress,
    )
    return report, output

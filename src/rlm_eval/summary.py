"""End-of-run summary and post-hoc analysis of report files."""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from rich.console import Console
from rich.table import Table

from rlm_eval.exceptions import CorruptReportError, FatalEvalError
from rlm_eval.checkpoint import parse_report
from rlm_eval.stats import mean, median, partition_results, percentile
from rlm_eval.types import EvalResult

console = Console()

SCORE_BUCKETS = 11
HISTOGRAM_WIDTH = 30
CHILDREN_SUBDIR = "children"
_SNIAH_ID = re.compile(r"^s-niah-(\d+)-\d+$")


@dataclass(slots=True)
class Distribution:
    mean: float = 0.0
    p20: float = 0.0
    median: float = 0.0
    p80: float = 0.0
    min: float = 0.0
    max: float = 0.0
    total: float = 0.0


@dataclass(slots=True)
class BehaviorRates:
    total: int = 0
    eager_returns: int = 0
    self_corrections: int = 0
    recursive_usage: int = 0
    errored: int = 0
    all_results: int = 0

    @staticmethod
    def _rate(count: int, total: int) -> float:
        return count / total if total else 0.0

    @property
    def eager_return_rate(self) -> float:
        return self._rate(self.eager_returns, self.total)

    @property
    def self_correction_rate(self) -> float:
        return self._rate(self.self_corrections, self.total)

    @property
    def recursive_rate(self) -> float:
        return self._rate(self.recursive_usage, self.total)

    @property
    def error_rate(self) -> float:
        return self._rate(self.errored, self.all_results)


@dataclass(slots=True)
class ReportAnalysis:
    iterations: Distribution
    wall_time_seconds: Distribution
    behavior: BehaviorRates
    score_histogram: list[int]
    success_by_iterations: dict[int, tuple[int, int]] = field(default_factory=dict)
    context_length: dict[int, tuple[float, float, int]] = field(default_factory=dict)


def distribution(values: Sequence[float]) -> Distribution:
    if not values:
        return Distribution()
    return Distribution(
        mean=mean(values),
        p20=percentile(values, 20),
        median=median(values),
        p80=percentile(values, 80),
        min=float(min(values)),
        max=float(max(values)),
        total=float(sum(values)),
    )


def _has_children(trace: str | None) -> bool:
    if not trace:
        return False
    try:
        return any((Path(trace) / CHILDREN_SUBDIR).iterdir())
    except OSError:
        return False


def behavior_rates(results: Sequence[EvalResult]) -> BehaviorRates:
    completed, failed = partition_results(results)
    return BehaviorRates(
        total=len(completed),
        eager_returns=sum(1 for r in completed if r["iterations"] == 1),
        self_corrections=sum(
            1 for r in completed if r["score"] > 0 and r["iterations"] > 1
        ),
        recursive_usage=sum(1 for r in completed if _has_children(r.get("trace"))),
        errored=len(failed),
        all_results=len(results),
    )


def score_histogram(scores: Sequence[float]) -> list[int]:
    """Counts per 0.1-wide bucket; the last bucket holds exact 1.0 scores."""
    buckets = [0] * SCORE_BUCKETS
    for score in scores:
        buckets[min(int(score * 10), SCORE_BUCKETS - 1)] += 1
    return buckets


def success_by_iterations(
    results: Sequence[EvalResult],
) -> dict[int, tuple[int, int]]:
    """Map iteration count -> (successes, total) over completed results."""
    grouped: dict[int, list[int]] = defaultdict(lambda: [0, 0])
    for r in results:
        counts = grouped[r["iterations"]]
        counts[1] += 1
        if r["score"] > 0:
            counts[0] += 1
    return {k: (v[0], v[1]) for k, v in sorted(grouped.items())}


def context_length_breakdown(
    results: Sequence[EvalResult],
) -> dict[int, tuple[float, float, int]]:
    """S-NIAH only: context length -> (mean score, mean iterations, n)."""
    grouped: dict[int, list[EvalResult]] = defaultdict(list)
    for r in results:
        match = _SNIAH_ID.match(r["task_id"])
        if match:
            grouped[int(match.group(1))].append(r)
    return {
        length: (
            mean([r["score"] for r in rows]),
            mean([r["iterations"] for r in rows]),
            len(rows),
        )
        for length, rows in sorted(grouped.items())
    }


def analyze_results(results: Sequence[EvalResult]) -> ReportAnalysis:
    completed, _ = partition_results(results)
    return ReportAnalysis(
        iterations=distribution([r["iterations"] for r in completed]),
        wall_time_seconds=distribution([r["wall_time_ms"] / 1000 for r in completed]),
        behavior=behavior_rates(results),
        score_histogram=score_histogram([r["score"] for r in completed]),
        success_by_iterations=success_by_iterations(completed),
        context_length=context_length_breakdown(results),
    )


def load_report(path: Path) -> dict[str, Any]:
    """Strictly load a report for analysis; unlike resumption, errors are fatal."""
    if not path.exists():
        raise FatalEvalError(f"File not found: {path}")
    try:
        return parse_report(path.read_bytes())
    except CorruptReportError as e:
        raise FatalEvalError(f"Failed to parse {path}: {e}") from e


def find_latest_report(results_dir: Path) -> Path | None:
    if not results_dir.is_dir():
        return None
    files = sorted(results_dir.glob("*.json"))
    return files[-1] if files else None


def _format_length(length: int) -> str:
    if length >= 1024 * 1024:
        return f"{length // (1024 * 1024)}M"
    if length >= 1024:
        return f"{length // 1024}K"
    return str(length)


def print_summary(report: dict[str, Any], output_file: Path) -> None:
    """Print the aggregate block for a finished run."""
    agg = report["aggregate"]

    table = Table(title="Eval Summary", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Benchmark", str(report["benchmark"]))
    table.add_row("Model", str(report["model"]))
    table.add_row(
        "Tasks", f"{agg['completed_tasks']} completed, {agg['failed_tasks']} failed"
    )
    table.add_section()
    table.add_row("Mean score", f"{agg['mean_score']:.4f}")
    table.add_row("Median score", f"{agg['median_score']:.4f}")
    table.add_row("Std score", f"{agg['std_score']:.4f}")
    table.add_row("P25 score", f"{agg['p25_score']:.4f}")
    table.add_row("P75 score", f"{agg['p75_score']:.4f}")
    table.add_section()
    table.add_row("Mean iterations", f"{agg['mean_iterations']:.1f}")
    table.add_row("Mean wall time", f"{agg['mean_wall_time_ms'] / 1000:.1f}s")
    table.add_row("Total wall time", f"{agg['total_wall_time_ms'] / 1000:.1f}s")
    console.print(table)

    if agg["failed_tasks"] > 0:
        console.print(
            f"\n{agg['failed_tasks']} task(s) failed; they are stored with an 'error' field."
        )
        console.print("  Stored results are final; write to a new --output to retry them.")
    console.print(f"\nResults saved to: {output_file}")


def _distribution_table(title: str, dist: Distribution, unit: str = "") -> Table:
    table = Table(title=title, show_header=False)
    table.add_column("Stat", style="cyan")
    table.add_column("Value", justify="right")
    for name in ("mean", "p20", "median", "p80", "min", "max"):
        table.add_row(name.capitalize(), f"{getattr(dist, name):.2f}{unit}")
    if unit:
        table.add_row("Total", f"{dist.total:.1f}{unit}")
    return table


def print_analysis(report: dict[str, Any], path: Path) -> ReportAnalysis:
    """Print the post-hoc analysis of a report file."""
    results: list[EvalResult] = report["results"]
    analysis = analyze_results(results)
    agg = report.get("aggregate") or {}

    console.print(f"\nAnalysis of: {path}")
    console.print(
        f"Benchmark: {report.get('benchmark')} | Model: {report.get('model')} | "
        f"{report.get('timestamp')}"
    )
    console.print(
        f"Tasks: {agg.get('completed_tasks', analysis.behavior.total)} completed, "
        f"{agg.get('failed_tasks', analysis.behavior.errored)} failed\n"
    )

    console.print(_distribution_table("Iteration Statistics", analysis.iterations))
    console.print(
        _distribution_table("Wall Time (seconds)", analysis.wall_time_seconds, "s")
    )

    behavior = analysis.behavior
    table = Table(title="Behavioral Patterns", show_header=False)
    table.add_column("Pattern", style="cyan")
    table.add_column("Rate", justify="right")
    table.add_row(
        "Eager return",
        f"{behavior.eager_return_rate:.1%} ({behavior.eager_returns}/{behavior.total})",
    )
    table.add_row(
        "Self-correction",
        f"{behavior.self_correction_rate:.1%} ({behavior.self_corrections}/{behavior.total})",
    )
    table.add_row(
        "Recursive usage",
        f"{behavior.recursive_rate:.1%} ({behavior.recursive_usage}/{behavior.total})",
    )
    table.add_row(
        "Error rate",
        f"{behavior.error_rate:.1%} ({behavior.errored}/{behavior.all_results})",
    )
    console.print(table)

    console.print("\n[bold]Score Distribution[/bold]")
    max_count = max(max(analysis.score_histogram), 1)
    for i, count in enumerate(analysis.score_histogram):
        label = f"[{i / 10:.1f}, {(i + 1) / 10:.1f})" if i < 10 else "[1.0]     "
        bar = "#" * round(count / max_count * HISTOGRAM_WIDTH)
        console.print(f"  {label} {bar} {count}", markup=False)

    console.print("\n[bold]Success Rate by Iteration Count[/bold]")
    for iterations, (success, total) in analysis.success_by_iterations.items():
        console.print(
            f"  {iterations} iterations: {success / total:.0%} success ({success}/{total})"
        )

    if analysis.context_length:
        console.print("\n[bold]Context Length Analysis (S-NIAH)[/bold]")
        for length, (score, iterations, n) in analysis.context_length.items():
            console.print(
                f"  {_format_length(length):>5}: score {score:.2f} | "
                f"iterations {iterations:.1f} | n={n}"
            )

    if agg:
        console.print(
            f"\nMean score: {agg.get('mean_score', 0.0):.4f} | "
            f"Median score: {agg.get('median_score', 0.0):.4f}"
        )
    return analysis


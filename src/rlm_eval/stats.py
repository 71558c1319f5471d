"""Order statistics and report aggregation.

Every helper returns 0 for an empty input instead of raising.
"""

import math
import statistics
from collections.abc import Sequence

from rlm_eval.types import AggregateStats, EvalResult


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return statistics.fmean(values)


def median(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return float(statistics.median(values))


def percentile(values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile: ``sorted[ceil(p/100 * n) - 1]``, index clamped at 0."""
    if not values:
        return 0.0
    ordered = sorted(values)
    index = math.ceil((p / 100) * len(ordered)) - 1
    return float(ordered[max(0, min(index, len(ordered) - 1))])


def std(values: Sequence[float]) -> float:
    """Population standard deviation."""
    if not values:
        return 0.0
    return statistics.pstdev(values)


def partition_results(
    results: Sequence[EvalResult],
) -> tuple[list[EvalResult], list[EvalResult]]:
    """Split into (completed, failed) by presence of an error."""
    completed = [r for r in results if not r.get("error")]
    failed = [r for r in results if r.get("error")]
    return completed, failed


def compute_aggregate(results: Sequence[EvalResult]) -> AggregateStats:
    """Recompute summary statistics from the full result set."""
    completed, failed = partition_results(results)

    scores = [r["score"] for r in completed]
    iterations = [r["iterations"] for r in completed]
    wall_times = [r["wall_time_ms"] for r in completed]

    return {
        "mean_score": mean(scores),
        "median_score": median(scores),
        "std_score": std(scores),
        "p25_score": percentile(scores, 25),
        "p75_score": percentile(scores, 75),
        "mean_iterations": mean(iterations),
        "median_iterations": median(iterations),
        "mean_wall_time_ms": mean(wall_times),
        "total_wall_time_ms": sum(wall_times),
        "completed_tasks": len(completed),
        "failed_tasks": len(failed),
    }

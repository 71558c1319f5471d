"""Benchmark registry: task source and scoring function per benchmark name."""

from typing import TypedDict

from rlm_eval.datasets import (
    load_arc_from_config,
    load_oolong_from_config,
    load_sniah_tasks,
)
from rlm_eval.exceptions import FatalEvalError
from rlm_eval.protocols import ScoringFn, TaskSource
from rlm_eval.scoring import arc_grid_match, exact_match, oolong_score


class BenchmarkEntry(TypedDict):
    """Configuration for a benchmark.

    Attributes:
        source: Loads the ordered task list from an EvalConfig.
        scoring_fn: Scores one answer against the expected value.
    """

    source: TaskSource
    scoring_fn: ScoringFn


BENCHMARKS: dict[str, BenchmarkEntry] = {
    # synthetic, needs no data files
    "s-niah": {"source": load_sniah_tasks, "scoring_fn": exact_match},
    # requires JSONL rows under data/oolong (or --data-dir)
    "oolong": {"source": load_oolong_from_config, "scoring_fn": oolong_score},
    # requires challenge/solution JSON under data/arc (or --data-dir)
    "arc": {"source": load_arc_from_config, "scoring_fn": arc_grid_match},
}


def register_benchmark(name: str, source: TaskSource, scoring_fn: ScoringFn) -> None:
    BENCHMARKS[name] = {"source": source, "scoring_fn": scoring_fn}


def get_benchmark(name: str) -> BenchmarkEntry:
    """Return benchmark entry or raise a FatalEvalError for unknown names."""
    entry = BENCHMARKS.get(name)
    if entry is None:
        raise FatalEvalError(
            f"Unknown benchmark: {name!r}. Expected one of {sorted(BENCHMARKS)}."
        )
    return entry

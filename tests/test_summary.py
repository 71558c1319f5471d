import orjson
import pytest

from rlm_eval.checkpoint import ReportMetadata, build_report, save_report
from rlm_eval.exceptions import FatalEvalError
from rlm_eval.summary import (
    analyze_results,
    behavior_rates,
    context_length_breakdown,
    distribution,
    find_latest_report,
    load_report,
    print_analysis,
    print_summary,
    score_histogram,
    success_by_iterations,
)

METADATA = ReportMetadata(
    benchmark="s-niah",
    model="m",
    driver="local",
    max_iterations=15,
    max_depth=2,
    concurrency=5,
)


def _result(task_id, score, iterations, wall_time_ms=1000, **extra):
    result = {
        "task_id": task_id,
        "query": "q",
        "expected_answer": "a",
        "generated_answer": "a" if score else "",
        "score": score,
        "iterations": iterations,
        "wall_time_ms": wall_time_ms,
    }
    result.update(extra)
    return result


RESULTS = [
    _result("s-niah-8192-0", 1.0, 1, 2000),
    _result("s-niah-8192-1", 0.0, 1, 4000),
    _result("s-niah-16384-0", 1.0, 3, 6000),
    _result("s-niah-16384-1", 0.45, 2, 8000),
    _result("s-niah-16384-2", 0.0, 0, 0, error="exit code 1"),
]


def test_distribution():
    dist = distribution([1, 2, 3, 4, 5])

    assert dist.mean == 3.0
    assert dist.p20 == 1.0
    assert dist.median == 3.0
    assert dist.p80 == 4.0
    assert (dist.min, dist.max, dist.total) == (1.0, 5.0, 15.0)


def test_distribution_of_nothing():
    assert distribution([]).mean == 0.0


def test_behavior_rates(tmp_path):
    trace = tmp_path / "run"
    (trace / "children" / "child-1").mkdir(parents=True)
    results = RESULTS + [_result("x", 1.0, 2, trace=str(trace))]

    rates = behavior_rates(results)

    assert rates.total == 5
    assert rates.eager_returns == 2
    assert rates.self_corrections == 3
    assert rates.recursive_usage == 1
    assert rates.errored == 1
    assert rates.error_rate == pytest.approx(1 / 6)
    assert rates.eager_return_rate == pytest.approx(0.4)


def test_score_histogram_buckets():
    buckets = score_histogram([0.0, 0.05, 0.45, 0.99, 1.0, 1.0])

    assert len(buckets) == 11
    assert buckets[0] == 2
    assert buckets[4] == 1
    assert buckets[9] == 1
    assert buckets[10] == 2


def test_success_by_iterations():
    completed = [r for r in RESULTS if "error" not in r]

    assert success_by_iterations(completed) == {1: (1, 2), 2: (1, 1), 3: (1, 1)}


def test_context_length_breakdown_ignores_other_ids():
    breakdown = context_length_breakdown(RESULTS + [_result("oolong-x-0", 1.0, 1)])

    assert set(breakdown) == {8192, 16384}
    score, iterations, n = breakdown[8192]
    assert (score, iterations, n) == (0.5, 1.0, 2)
    assert breakdown[16384][2] == 3


def test_analyze_results_uses_completed_only():
    analysis = analyze_results(RESULTS)

    assert analysis.iterations.max == 3.0
    assert analysis.wall_time_seconds.total == 20.0
    assert sum(analysis.score_histogram) == 4


def test_find_latest_report(tmp_path):
    assert find_latest_report(tmp_path / "missing") is None
    assert find_latest_report(tmp_path) is None

    for name in (
        "s-niah_m_2025-01-02T00-00-00Z.json",
        "s-niah_m_2025-03-01T00-00-00Z.json",
        "arc_m_2024-12-31T00-00-00Z.json",
    ):
        (tmp_path / name).write_text("{}")

    assert find_latest_report(tmp_path).name == "s-niah_m_2025-03-01T00-00-00Z.json"


def test_load_report_is_strict(tmp_path):
    with pytest.raises(FatalEvalError, match="not found"):
        load_report(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text("nope")
    with pytest.raises(FatalEvalError, match="Failed to parse"):
        load_report(bad)


def test_print_summary_and_analysis(tmp_path, capsys):
    path = tmp_path / "report.json"
    report = build_report(RESULTS, METADATA)
    save_report(report, path)

    print_summary(report, path)
    analysis = print_analysis(load_report(path), path)

    out = capsys.readouterr().out
    assert "Eval Summary" in out
    assert "Behavioral Patterns" in out
    assert "Context Length Analysis" in out
    assert "16K" in out
    assert analysis.behavior.errored == 1
    assert orjson.loads(path.read_bytes())["aggregate"]["failedTasks"] == 1

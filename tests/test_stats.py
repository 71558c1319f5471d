import pytest

from rlm_eval.stats import compute_aggregate, mean, median, percentile, std


def _result(score, iterations=1, wall_time_ms=100, error=None):
    result = {
        "task_id": f"t{score}-{iterations}-{wall_time_ms}",
        "query": "q",
        "expected_answer": "a",
        "generated_answer": "",
        "score": score,
        "iterations": iterations,
        "wall_time_ms": wall_time_ms,
    }
    if error:
        result["error"] = error
    return result


def test_basic_statistics():
    scores = [0, 0.5, 1, 1]

    assert mean(scores) == pytest.approx(0.625)
    assert median(scores) == pytest.approx(0.75)
    assert percentile(scores, 75) == 1.0
    # nearest rank: ceil(0.25 * 4) - 1 = index 0
    assert percentile(scores, 25) == 0.0
    assert std(scores) == pytest.approx(0.41457, abs=1e-4)


def test_percentile_clamps_index():
    assert percentile([3, 1, 2], 0) == 1.0
    assert percentile([3, 1, 2], 100) == 3.0
    assert percentile([7], 50) == 7.0


@pytest.mark.parametrize("fn", [mean, median, std])
def test_empty_input_is_zero(fn):
    assert fn([]) == 0.0


def test_empty_percentile_is_zero():
    assert percentile([], 25) == 0.0


def test_aggregate_excludes_failed_results():
    results = [
        _result(1.0, iterations=2, wall_time_ms=1000),
        _result(0.0, iterations=4, wall_time_ms=3000),
        _result(0.0, iterations=0, wall_time_ms=0, error="exit code 1"),
    ]

    agg = compute_aggregate(results)

    assert agg["completed_tasks"] == 2
    assert agg["failed_tasks"] == 1
    assert agg["mean_score"] == 0.5
    assert agg["median_score"] == 0.5
    assert agg["mean_iterations"] == 3.0
    assert agg["median_iterations"] == 3.0
    assert agg["mean_wall_time_ms"] == 2000.0
    assert agg["total_wall_time_ms"] == 4000


def test_aggregate_of_empty_result_set():
    agg = compute_aggregate([])

    assert agg["completed_tasks"] == 0
    assert agg["failed_tasks"] == 0
    assert all(value == 0 for value in agg.values())


def test_aggregate_all_failed():
    agg = compute_aggregate([_result(0.0, error="timed out after 10ms")])

    assert agg["failed_tasks"] == 1
    assert agg["mean_score"] == 0.0
    assert agg["p75_score"] == 0.0

"""ARC-AGI task loader.

Each ARC task has training input/output grid pairs and one or more test
inputs. The agent receives the whole task as JSON on stdin and must return
the predicted output grid(s) as JSON.
"""

from pathlib import Path
from typing import Any

import orjson

from rlm_eval.config import EvalConfig
from rlm_eval.exceptions import FatalEvalError
from rlm_eval.types import Task

DEFAULT_DATA_DIR = Path("data") / "arc"
CHALLENGES_FILE = "arc-agi_evaluation_challenges.json"
SOLUTIONS_FILE = "arc-agi_evaluation_solutions.json"

ARC_QUERY_TEMPLATE = """You are solving an ARC-AGI task. The task data is available in the input file ($RLM_INPUT) as a JSON string.

The JSON contains:
- "train": Training examples, each with "input" and "output" grids (2D arrays of ints 0-9)
- "test": Test inputs with "input" grids only (you must predict the outputs)

Analyze all training examples to discover the transformation rule that maps each input to its output. The rule must be consistent across ALL training examples. Then apply it to the test input(s).

{return_format}

Return ONLY the raw JSON grid(s). No explanation, no markdown, no wrapping."""


def build_arc_query(num_tests: int) -> str:
    if num_tests == 1:
        return_format = (
            "Return the output as a JSON 2D array of integers, e.g.: [[1,2,3],[4,5,6]]"
        )
    else:
        return_format = (
            f"There are {num_tests} test inputs. Return an array of {num_tests} "
            f"output grids as JSON, e.g.: [[[1,2],[3,4]], [[5,6],[7,8]]]"
        )
    return ARC_QUERY_TEMPLATE.format(return_format=return_format)


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = orjson.loads(path.read_bytes())
    except orjson.JSONDecodeError as e:
        raise FatalEvalError(f"Invalid JSON in ARC data file {path}: {e}") from e
    if not isinstance(data, dict):
        raise FatalEvalError(f"ARC data file {path} must contain a JSON object")
    return data


def load_arc_tasks(
    data_dir: Path = DEFAULT_DATA_DIR,
    selected_problems: list[str] | None = None,
) -> list[Task]:
    challenges_path = data_dir / CHALLENGES_FILE
    solutions_path = data_dir / SOLUTIONS_FILE
    if not challenges_path.exists() or not solutions_path.exists():
        raise FatalEvalError(
            f"ARC data not found at {data_dir}. Expected {CHALLENGES_FILE} and {SOLUTIONS_FILE}."
        )

    challenges = _read_json(challenges_path)
    solutions = _read_json(solutions_path)

    task_ids = list(challenges)
    if selected_problems:
        selected = set(selected_problems)
        task_ids = [task_id for task_id in task_ids if task_id in selected]

    tasks: list[Task] = []
    for task_id in task_ids:
        challenge = challenges[task_id]
        solution = solutions.get(task_id)
        if solution is None:
            raise FatalEvalError(f"No solution found for ARC task {task_id}")

        tests = challenge.get("test", [])
        train = challenge.get("train", [])
        expected = solution[0] if len(tests) == 1 else solution
        tasks.append(
            Task(
                id=f"arc-{task_id}",
                query=build_arc_query(len(tests)),
                context=orjson.dumps({"train": train, "test": tests}).decode(),
                expected_answer=orjson.dumps(expected).decode(),
                metadata={
                    "num_train_examples": len(train),
                    "num_test_inputs": len(tests),
                },
            )
        )

    return tasks


def load_arc_from_config(config: EvalConfig) -> list[Task]:
    return load_arc_tasks(
        data_dir=config.data_dir or DEFAULT_DATA_DIR,
        selected_problems=config.selected_problems,
    )

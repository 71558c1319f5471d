"""OOLONG-synth task loader.

Reads pre-downloaded rows of the ``oolongbench/oolong-synth`` dataset from
JSONL (or JSON) files in the data directory, filters them by dataset name
and context length, and turns each row into a task.
"""

import ast
from pathlib import Path
from typing import Any

import orjson
from rich.console import Console

from rlm_eval.config import EvalConfig
from rlm_eval.exceptions import FatalEvalError
from rlm_eval.types import Task

DEFAULT_DATA_DIR = Path("data") / "oolong"
DEFAULT_DATASET_FILTER = "trec_coarse"
DEFAULT_CONTEXT_LEN = 131072

console = Console(stderr=True)

OolongRow = dict[str, Any]


def normalize_answer(raw: str) -> str:
    """Reduce a Python list literal answer to its first element.

    The dataset stores answers like ``"['abbreviation']"`` or ``"[42]"``.
    Anything that is not a non-empty list literal is returned trimmed.
    """
    trimmed = raw.strip()
    if not (trimmed.startswith("[") and trimmed.endswith("]")):
        return trimmed
    try:
        parsed = ast.literal_eval(trimmed)
    except (ValueError, SyntaxError):
        return trimmed
    if isinstance(parsed, (list, tuple)) and parsed:
        first = str(parsed[0]).strip()
        return first or trimmed
    return trimmed


def _load_file(path: Path) -> list[OolongRow]:
    rows: list[OolongRow] = []
    content = path.read_bytes()
    if path.suffix == ".jsonl":
        for line in content.splitlines():
            if not line.strip():
                continue
            try:
                row = orjson.loads(line)
            except orjson.JSONDecodeError:
                continue
            if isinstance(row, dict):
                rows.append(row)
        return rows

    try:
        parsed = orjson.loads(content)
    except orjson.JSONDecodeError:
        console.print(f"[yellow]Warning: skipping malformed data file {path}[/yellow]")
        return rows
    items = parsed if isinstance(parsed, list) else [parsed]
    rows.extend(item for item in items if isinstance(item, dict))
    return rows


def load_rows(data_dir: Path) -> list[OolongRow]:
    """Load every row from the ``.jsonl``/``.json`` files in ``data_dir``."""
    files = (
        sorted(p for p in data_dir.iterdir() if p.suffix in (".jsonl", ".json"))
        if data_dir.is_dir()
        else []
    )
    if not files:
        raise FatalEvalError(
            f"No data files found in {data_dir}. Place OOLONG JSONL files there first."
        )

    rows: list[OolongRow] = []
    for path in files:
        rows.extend(_load_file(path))
    return rows


def _filter_rows(
    rows: list[OolongRow], dataset_filter: str, context_len: int | None
) -> list[OolongRow]:
    filtered = [r for r in rows if r.get("dataset") == dataset_filter]
    if not filtered:
        available = sorted({str(r.get("dataset")) for r in rows})
        console.print(
            f"[yellow]Warning: no rows with dataset={dataset_filter!r}. "
            f"Available datasets: {', '.join(available)}. Falling back to all rows.[/yellow]"
        )
        filtered = rows

    if context_len:
        by_len = [r for r in filtered if r.get("context_len") == context_len]
        if by_len:
            return by_len
        max_len = max(int(r.get("context_len") or 0) for r in filtered)
        console.print(
            f"[yellow]Warning: no rows with context_len={context_len}. "
            f"Using largest available: {max_len}[/yellow]"
        )
        filtered = [r for r in filtered if int(r.get("context_len") or 0) == max_len]

    return filtered


def load_oolong_tasks(
    data_dir: Path = DEFAULT_DATA_DIR,
    dataset_filter: str = DEFAULT_DATASET_FILTER,
    context_len: int | None = DEFAULT_CONTEXT_LEN,
) -> list[Task]:
    rows = _filter_rows(load_rows(data_dir), dataset_filter, context_len)

    return [
        Task(
            id=f"oolong-{dataset_filter}-{index}",
            query=row["question"],
            context=row.get("context_window_text"),
            expected_answer=normalize_answer(str(row["answer"])),
            metadata={
                "dataset": row.get("dataset"),
                "context_len": row.get("context_len"),
                "task_group": row.get("task_group"),
                "task": row.get("task"),
                "answer_type": row.get("answer_type"),
                "input_subset": row.get("input_subset"),
                "num_labels": row.get("num_labels"),
                "context_window_id": row.get("context_window_id"),
            },
        )
        for index, row in enumerate(rows)
    ]


def load_oolong_from_config(config: EvalConfig) -> list[Task]:
    return load_oolong_tasks(
        data_dir=config.data_dir or DEFAULT_DATA_DIR,
        dataset_filter=config.dataset_filter,
        context_len=config.context_len,
    )

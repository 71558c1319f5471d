"""Result persistence and resumption for eval runs.

The report file is both the run's final output and its checkpoint: it is
rewritten in full after every task completion, and on startup its
``results`` are keyed by ``taskId`` to skip work that is already done.

In memory, records use snake_case keys. On disk, the result, config and
aggregate keys are camelCase (``taskId``, ``wallTimeMs``, ``meanScore``).
Reports with snake_case keys are still read.
"""

import asyncio
import os
import re
import tempfile
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import orjson
from rich.console import Console

from rlm_eval.exceptions import CorruptReportError
from rlm_eval.stats import compute_aggregate
from rlm_eval.types import BenchmarkReport, EvalResult

console = Console(stderr=True)


@dataclass(frozen=True, slots=True)
class ReportMetadata:
    """Run-level fields written alongside the results."""

    benchmark: str
    model: str
    driver: str
    max_iterations: int
    max_depth: int
    concurrency: int


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _snake(key: str) -> str:
    return re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", key).lower()


def _rekey(record: Any, convert: Callable[[str], str]) -> Any:
    if not isinstance(record, dict):
        return record
    return {convert(key): value for key, value in record.items()}


def to_document(report: BenchmarkReport) -> dict[str, Any]:
    """Convert an in-memory report to its on-disk (camelCase) form."""
    document: dict[str, Any] = dict(report)
    document["config"] = _rekey(report["config"], _camel)
    document["results"] = [_rekey(result, _camel) for result in report["results"]]
    document["aggregate"] = _rekey(report["aggregate"], _camel)
    return document


def from_document(document: dict[str, Any]) -> dict[str, Any]:
    """Convert an on-disk report to in-memory snake_case keys.

    Keys already in snake_case pass through unchanged.
    """
    report = dict(document)
    for name in ("config", "aggregate"):
        if name in report:
            report[name] = _rekey(report[name], _snake)
    if isinstance(report.get("results"), list):
        report["results"] = [_rekey(result, _snake) for result in report["results"]]
    return report


def parse_report(raw: bytes) -> dict[str, Any]:
    """Parse report bytes into snake_case form.

    Raises CorruptReportError for anything unusable.
    """
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise CorruptReportError(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise CorruptReportError("top-level value is not an object")

    if not isinstance(data.get("results"), list):
        raise CorruptReportError("'results' is missing or not a list")

    report = from_document(data)
    for index, result in enumerate(report["results"]):
        if not isinstance(result, dict) or not isinstance(result.get("task_id"), str):
            raise CorruptReportError(f"result #{index} has no taskId")

    return report


def load_results(output_file: Path) -> dict[str, EvalResult]:
    """Load prior results keyed by task id.

    A missing file means a fresh run. A file that cannot be read or parsed
    is reported and also treated as a fresh run; it is never fatal.
    """
    if not output_file.exists():
        return {}

    try:
        data = parse_report(output_file.read_bytes())
    except (OSError, CorruptReportError) as e:
        console.print(
            f"[yellow]Warning: ignoring unreadable report {output_file} ({e}); starting fresh[/yellow]"
        )
        return {}

    return {result["task_id"]: result for result in data["results"]}


def build_report(
    results: Sequence[EvalResult], metadata: ReportMetadata
) -> BenchmarkReport:
    """Rebuild the full report document from the current result set."""
    return {
        "benchmark": metadata.benchmark,
        "model": metadata.model,
        "config": {
            "driver": metadata.driver,
            "max_iterations": metadata.max_iterations,
            "max_depth": metadata.max_depth,
            "concurrency": metadata.concurrency,
        },
        "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "results": list(results),
        "aggregate": compute_aggregate(results),
    }


def save_report(report: BenchmarkReport, output_file: Path) -> None:
    """Overwrite the report file using atomic write.

    Uses write-to-temp-then-rename so an interrupted write leaves the
    previous report in place.

    Creates parent directory if it doesn't exist.
    """
    output_file.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        dir=output_file.parent,
        prefix=f".{output_file.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(orjson.dumps(to_document(report), option=orjson.OPT_INDENT_2))
        os.replace(temp_path, output_file)
    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


class ResultWriter:
    """Accumulates results and rewrites the report after every completion.

    Writes are serialized with a lock and run off the event loop.
    """

    def __init__(
        self,
        output_file: Path,
        metadata: ReportMetadata,
        initial_results: Sequence[EvalResult] = (),
    ) -> None:
        self._output_file = output_file
        self._metadata = metadata
        self._results: list[EvalResult] = list(initial_results)
        self._lock = asyncio.Lock()

    @property
    def results(self) -> list[EvalResult]:
        return self._results

    @property
    def output_file(self) -> Path:
        return self._output_file

    async def record(self, result: EvalResult) -> BenchmarkReport:
        """Append one result and persist the whole report."""
        async with self._lock:
            self._results.append(result)
            return await self._persist()

    async def flush(self) -> BenchmarkReport:
        """Persist the current result set without adding to it."""
        async with self._lock:
            return await self._persist()

    async def _persist(self) -> BenchmarkReport:
        report = build_report(self._results, self._metadata)
        await asyncio.to_thread(save_report, report, self._output_file)
        return report

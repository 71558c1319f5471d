#!/usr/bin/env python3
"""Command-line interface for the eval harness."""

import argparse
import asyncio
import sys
import textwrap
from pathlib import Path
from typing import Any

from rich.console import Console
from tqdm import tqdm

from rlm_eval.config import (
    DEFAULT_RESULTS_DIR,
    EvalConfig,
    load_eval_config_data,
    read_config_file,
)
from rlm_eval.eval_runner import run_from_config
from rlm_eval.exceptions import FatalEvalError
from rlm_eval.summary import (
    find_latest_report,
    load_report,
    print_analysis,
    print_summary,
)
from rlm_eval.types import ProgressInfo

console = Console(stderr=True)

# CLI flag dest -> EvalConfig field, for flags that are passed through as-is
_CONFIG_FIELDS = (
    "benchmark",
    "model",
    "driver",
    "host",
    "concurrency",
    "max_iterations",
    "max_depth",
    "timeout_ms",
    "max_tasks",
    "output",
    "agent_path",
    "tree_root",
    "mock_dir",
    "remote_command",
    "tasks_per_length",
    "seed",
    "context_len",
    "dataset_filter",
    "data_dir",
    "selected_problems",
)


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        help="JSON config file. Command-line flags override its values.",
    )
    parser.add_argument(
        "--benchmark", "-b", help="Benchmark name (s-niah, oolong, arc)"
    )
    parser.add_argument("--model", "-m", help="Model identifier passed to the agent")
    parser.add_argument(
        "--driver",
        help="Driver name (local, ssh) or custom driver: module:attr, module, or file.py",
    )
    parser.add_argument("--host", help="Remote host for the ssh driver")
    parser.add_argument(
        "--concurrency", type=int, help="Maximum number of tasks in flight (default: 5)"
    )
    parser.add_argument(
        "--max-iterations", type=int, help="Agent iteration limit (default: 15)"
    )
    parser.add_argument(
        "--max-depth", type=int, help="Agent recursion depth limit (default: 2)"
    )
    parser.add_argument(
        "--timeout-ms",
        type=int,
        help="Per-task timeout in milliseconds (default: 300000)",
    )
    parser.add_argument(
        "--max-tasks", "-l", type=int, help="Only run the first N tasks"
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        help="Report path. Reusing a path resumes the run it holds.",
    )
    parser.add_argument("--agent-path", type=Path, help="Local agent executable")
    parser.add_argument(
        "--tree-root", type=Path, help="Working directory root for the local agent"
    )
    parser.add_argument(
        "--mock-dir", type=Path, help="Mock response directory for the local agent"
    )
    parser.add_argument(
        "--remote-command", help="Agent command on the remote host (default: rlm)"
    )
    parser.add_argument(
        "--tasks-per-length", type=int, help="S-NIAH tasks per context length"
    )
    parser.add_argument("--seed", type=int, help="S-NIAH generation seed")
    parser.add_argument("--context-len", type=int, help="OOLONG context length")
    parser.add_argument("--dataset-filter", help="OOLONG dataset name")
    parser.add_argument("--data-dir", type=Path, help="Benchmark data directory")
    parser.add_argument(
        "--selected-problems",
        nargs="+",
        metavar="ID",
        help="ARC task ids to run",
    )


def build_config(args: argparse.Namespace) -> EvalConfig:
    """Merge the optional config file with command-line overrides."""
    data: dict[str, Any] = read_config_file(args.config) if args.config else {}
    for name in _CONFIG_FIELDS:
        value = getattr(args, name, None)
        if value is not None:
            data[name] = value

    missing = [name for name in ("benchmark", "model") if not data.get(name)]
    if missing:
        flags = ", ".join(f"--{name}" for name in missing)
        raise ValueError(f"Missing required setting(s): {flags}")

    return load_eval_config_data(data, config_path=args.config)


class ProgressReporter:
    """tqdm bar driven by scheduler progress callbacks."""

    def __init__(self) -> None:
        self._pbar: tqdm | None = None

    def __call__(self, progress: ProgressInfo) -> None:
        if self._pbar is None:
            self._pbar = tqdm(
                total=progress.total,
                initial=progress.completed - 1,
                desc="Evaluating tasks",
            )
        self._pbar.update(progress.completed - self._pbar.n)
        self._pbar.set_postfix_str(
            f"score {progress.score:.2f} | mean {progress.mean_score:.2f} | "
            f"elapsed {progress.elapsed}"
        )

    def close(self) -> None:
        if self._pbar is not None:
            self._pbar.close()


async def _handle_run(args: argparse.Namespace) -> int:
    config = build_config(args)
    reporter = ProgressReporter()
    try:
        report, output = await run_from_config(config, on_progress=reporter)
    finally:
        reporter.close()
    print_summary(report, output)
    return 0


def _handle_analyze(args: argparse.Namespace) -> int:
    path = args.file
    if path is None:
        path = find_latest_report(args.results_dir)
        if path is None:
            raise FatalEvalError(
                f"No report files found in {args.results_dir}. Pass a file to analyze."
            )
    print_analysis(load_report(path), path)
    return 0


async def main_async(argv: list[str] | None = None) -> int:
    """Main CLI interface for the eval harness.

    Returns:
        Exit code (0 for success, 1 for setup failures).
    """
    parser = argparse.ArgumentParser(
        description="Benchmark harness for recursive language model agents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""
            Example usage:
              rlm-eval run -b s-niah -m gpt-4o --max-tasks 10
              rlm-eval run -c config.json -o results/run.json   # Resume if it exists
              rlm-eval run -b oolong -m gpt-4o --driver ssh --host box
              rlm-eval analyze                                   # Newest report
              rlm-eval analyze results/run.json
        """),
    )

    subparsers = parser.add_subparsers(dest="subcommand", required=True)

    run_parser = subparsers.add_parser(
        "run",
        help="Run a benchmark (resumes when --output already holds results)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_run_arguments(run_parser)

    analyze_parser = subparsers.add_parser(
        "analyze",
        help="Analyze an existing report file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    analyze_parser.add_argument(
        "file",
        nargs="?",
        type=Path,
        help="Report file. Defaults to the newest file in the results directory.",
    )
    analyze_parser.add_argument(
        "--results-dir",
        type=Path,
        default=DEFAULT_RESULTS_DIR,
        help="Directory searched when no file is given (default: results)",
    )

    args = parser.parse_args(argv)
    try:
        if args.subcommand == "analyze":
            return _handle_analyze(args)
        return await _handle_run(args)
    except (FatalEvalError, ValueError) as e:
        console.print(f"Error: {e}", style="red", markup=False)
        return 1


def main():
    """Entry point that runs async main."""
    sys.exit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()

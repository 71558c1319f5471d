"""Configuration loading and validation."""

import json
import re
import time
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, PositiveInt

from rlm_eval.types import (
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TIMEOUT_MS,
    DriverOptions,
)

DEFAULT_DRIVER = "local"
DEFAULT_CONCURRENCY = 5
DEFAULT_REMOTE_COMMAND = "rlm"
DEFAULT_RESULTS_DIR = Path("results")

# Environment variables read by the invoked agent
ENV_MAX_ITERATIONS = "RLM_MAX_ITERATIONS"
ENV_MAX_DEPTH = "RLM_MAX_DEPTH"
ENV_MODEL = "RLM_MODEL"
ENV_TREE_ROOT = "_RLM_TREE_ROOT"
ENV_MOCK_DIR = "_RLM_MOCK_DIR"


class DriverSettings(BaseModel):
    """Construction-time settings handed to a driver factory."""

    model_config = ConfigDict(frozen=True)

    model: str | None = None
    agent_path: Path | None = None
    tree_root: Path | None = None
    mock_dir: Path | None = None
    host: str | None = None
    remote_command: str = DEFAULT_REMOTE_COMMAND


class EvalConfig(BaseModel):
    """Eval run configuration schema."""

    benchmark: str
    model: str
    driver: str = DEFAULT_DRIVER
    host: str | None = None
    concurrency: PositiveInt = DEFAULT_CONCURRENCY
    max_iterations: PositiveInt = DEFAULT_MAX_ITERATIONS
    max_depth: PositiveInt = DEFAULT_MAX_DEPTH
    timeout_ms: PositiveInt = DEFAULT_TIMEOUT_MS
    max_tasks: PositiveInt | None = None
    output: Path | None = None

    # Driver construction
    agent_path: Path | None = None
    tree_root: Path | None = None
    mock_dir: Path | None = None
    remote_command: str = DEFAULT_REMOTE_COMMAND

    # Benchmark-specific task source options
    tasks_per_length: PositiveInt = 8
    seed: int = 42
    context_len: PositiveInt = 131072
    dataset_filter: str = "trec_coarse"
    data_dir: Path | None = None
    selected_problems: list[str] | None = None

    def driver_settings(self) -> DriverSettings:
        return DriverSettings(
            model=self.model,
            agent_path=self.agent_path,
            tree_root=self.tree_root,
            mock_dir=self.mock_dir,
            host=self.host,
            remote_command=self.remote_command,
        )

    def driver_options(self) -> DriverOptions:
        return DriverOptions(
            max_iterations=self.max_iterations,
            max_depth=self.max_depth,
            timeout_ms=self.timeout_ms,
        )


def slugify_model(model: str) -> str:
    """Make a model identifier safe for use in a file name."""
    return re.sub(r"[^a-zA-Z0-9_-]", "", model.replace("/", "_"))


def default_output_path(
    benchmark: str, model: str, results_dir: Path = DEFAULT_RESULTS_DIR
) -> Path:
    """Build ``results/{benchmark}_{model}_{timestamp}.json``."""
    timestamp = time.strftime("%Y-%m-%dT%H-%M-%SZ", time.gmtime())
    return results_dir / f"{benchmark}_{slugify_model(model)}_{timestamp}.json"


def load_eval_config_data(
    data: dict[str, Any], config_path: str | Path | None = None
) -> EvalConfig:
    """Load and validate config from a parsed dict."""
    config = EvalConfig(**data)

    if config.driver == "ssh" and not config.host:
        source = f" ({config_path})" if config_path else ""
        raise ValueError(f"'host' is required when driver is 'ssh'{source}")

    if not config.model.strip():
        raise ValueError("'model' must be a non-empty string")

    return config


def read_config_file(config_path: str | Path) -> dict[str, Any]:
    """Read a JSON config file into a dict without validating it."""
    path = Path(config_path)
    if not path.exists():
        raise ValueError(f"Config file {config_path} does not exist")
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(
            f"Config file {config_path} must contain a JSON object at top-level"
        )
    return data


def load_eval_config(config_path: str | Path) -> EvalConfig:
    """Load and validate config from JSON file."""
    return load_eval_config_data(read_config_file(config_path), config_path=config_path)

# Core eval functions
from rlm_eval.eval_runner import run_eval, run_from_config
from rlm_eval.config import DriverSettings, EvalConfig

# Extension points
from rlm_eval.driver_registry import create_driver, register_driver
from rlm_eval.task_registry import register_benchmark

# Result store and statistics
from rlm_eval.checkpoint import ReportMetadata, load_results
from rlm_eval.stats import compute_aggregate

# Exception types
from rlm_eval.exceptions import FatalEvalError

# Type definitions for custom drivers, sources and scoring functions
from rlm_eval.types import (
    BenchmarkReport,
    DriverOptions,
    EvalResult,
    InvocationResult,
    Task,
)
from rlm_eval.protocols import Driver, ScoringFn, TaskSource

__all__ = [
    # Main API
    "run_eval",
    "run_from_config",
    "create_driver",
    "register_driver",
    "register_benchmark",
    "load_results",
    "compute_aggregate",
    # Types
    "BenchmarkReport",
    "DriverOptions",
    "DriverSettings",
    "EvalConfig",
    "EvalResult",
    "InvocationResult",
    "ReportMetadata",
    "Task",
    "Driver",
    "ScoringFn",
    "TaskSource",
    # Exceptions
    "FatalEvalError",
]

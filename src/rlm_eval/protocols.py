"""Protocol definitions for pluggable collaborators."""

from typing import Protocol

from rlm_eval.config import DriverSettings, EvalConfig
from rlm_eval.types import DriverOptions, InvocationResult, ProgressInfo, Task


class Driver(Protocol):
    """Adapter that invokes the agent under test in a specific environment.

    Built-in implementations run the agent as a local subprocess or over
    SSH. Custom drivers only need to provide this one coroutine.

    Example:
        class EchoDriver:
            async def call(
                self,
                query: str,
                context: str | None = None,
                options: DriverOptions | None = None,
            ) -> InvocationResult:
                return InvocationResult(
                    answer=query, exit_code=0, wall_time_ms=0, trace=""
                )
    """

    async def call(
        self,
        query: str,
        context: str | None = None,
        options: DriverOptions | None = None,
    ) -> InvocationResult:
        """Run the agent once.

        Args:
            query: Task query, passed to the agent as a positional argument
            context: Optional long context, piped to the agent's stdin
            options: Iteration/depth limits and the per-call timeout

        Returns:
            InvocationResult with the trimmed answer, exit code and trace locator
        """
        ...


class DriverFactory(Protocol):
    """Builds a driver from construction settings."""

    def __call__(self, settings: DriverSettings) -> Driver: ...


class ScoringFn(Protocol):
    """Pure scoring function returning a value in [0, 1].

    Must tolerate empty or malformed ``actual`` without raising.
    """

    def __call__(self, expected: str, actual: str) -> float: ...


class ProgressCallback(Protocol):
    def __call__(self, progress: ProgressInfo) -> None: ...


class TaskSource(Protocol):
    """Produces the ordered task list for a benchmark.

    May raise FatalEvalError when its data cannot be loaded.
    """

    def __call__(self, config: EvalConfig) -> list[Task]: ...

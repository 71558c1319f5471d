"""Local subprocess driver: runs the agent binary as a child process."""

import os
import re
import shutil
import tempfile
from pathlib import Path

import orjson

from rlm_eval.config import (
    ENV_MAX_DEPTH,
    ENV_MAX_ITERATIONS,
    ENV_MOCK_DIR,
    ENV_MODEL,
    ENV_TREE_ROOT,
    DriverSettings,
)
from rlm_eval.process import run_process
from rlm_eval.types import DriverOptions, InvocationResult

AGENT_BINARY_NAME = "rlm"
TREE_ROOT_PREFIX = "rlm-eval-"

# One line on stderr carries the agent's run metadata, e.g.
#   rlm-meta: {"iterations": 4, "depth": 1}
_META_PATTERN = re.compile(r"rlm-meta: (\{.*\})")


def find_agent_binary() -> str:
    """Locate the agent: checked-in ``bin/rlm`` first, then ``PATH``."""
    # src/rlm_eval/drivers/local.py -> repository root
    checked_in = Path(__file__).resolve().parents[3] / "bin" / AGENT_BINARY_NAME
    if checked_in.exists():
        return str(checked_in)
    return shutil.which(AGENT_BINARY_NAME) or AGENT_BINARY_NAME


def parse_iterations(stderr: str) -> int | None:
    """Pull the iteration count out of the agent's metadata line, if any."""
    match = _META_PATTERN.search(stderr)
    if match is None:
        return None
    try:
        meta = orjson.loads(match.group(1))
    except orjson.JSONDecodeError:
        return None
    if not isinstance(meta, dict):
        return None
    iterations = meta.get("iterations")
    if isinstance(iterations, int) and not isinstance(iterations, bool):
        return iterations
    return None


def resolve_trace(tree_root: Path) -> str:
    """Return the agent's working directory under ``tree_root``.

    The agent writes one directory per process into the tree root. When
    several exist (a shared root), the most recently modified one wins;
    when none exist the tree root itself is returned.
    """
    try:
        entries = list(tree_root.iterdir())
    except OSError:
        # The agent may have failed before creating anything
        return str(tree_root)

    latest: Path | None = None
    latest_mtime = 0.0
    for entry in entries:
        try:
            if not entry.is_dir():
                continue
            mtime = entry.stat().st_mtime
        except OSError:
            # Removed between listing and stat
            continue
        if latest is None or mtime > latest_mtime:
            latest, latest_mtime = entry, mtime
    return str(latest if latest is not None else tree_root)


class LocalDriver:
    """Driver implementation that spawns the agent on this machine."""

    def __init__(self, settings: DriverSettings | None = None) -> None:
        settings = settings or DriverSettings()
        self.agent_path = (
            str(settings.agent_path) if settings.agent_path else find_agent_binary()
        )
        self.tree_root = settings.tree_root
        self.mock_dir = settings.mock_dir
        self.model = settings.model

    def _build_env(self, tree_root: Path, options: DriverOptions) -> dict[str, str]:
        env = {
            **os.environ,
            ENV_MAX_ITERATIONS: str(options.max_iterations),
            ENV_MAX_DEPTH: str(options.max_depth),
            ENV_TREE_ROOT: str(tree_root),
        }
        if self.mock_dir:
            env[ENV_MOCK_DIR] = str(self.mock_dir)
        if self.model:
            env[ENV_MODEL] = self.model
        return env

    async def call(
        self,
        query: str,
        context: str | None = None,
        options: DriverOptions | None = None,
    ) -> InvocationResult:
        options = options or DriverOptions()
        tree_root = self.tree_root or Path(tempfile.mkdtemp(prefix=TREE_ROOT_PREFIX))

        result = await run_process(
            self.agent_path,
            [query],
            env=self._build_env(tree_root, options),
            stdin=context,
            timeout_ms=options.timeout_ms,
        )

        return InvocationResult(
            answer=result.stdout.strip(),
            exit_code=result.exit_code,
            wall_time_ms=result.wall_time_ms,
            trace=resolve_trace(tree_root),
            iterations=parse_iterations(result.stderr),
            timed_out=result.timed_out,
        )

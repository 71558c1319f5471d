"""SSH driver for running the agent on a remote host.

Runs ``ssh <host> "RLM_MAX_ITERATIONS=.. RLM_MAX_DEPTH=.. rlm '<query>'"`` and
pipes the task context over the connection's stdin.

Prerequisites:
- Key-based SSH access to the host
- The agent installed on the remote host's PATH
- Any model API credentials configured on the remote host
"""

import shlex

from rlm_eval.config import (
    DEFAULT_REMOTE_COMMAND,
    ENV_MAX_DEPTH,
    ENV_MAX_ITERATIONS,
    ENV_MODEL,
    DriverSettings,
)
from rlm_eval.exceptions import FatalEvalError
from rlm_eval.process import run_process
from rlm_eval.types import DriverOptions, InvocationResult

SSH_BINARY = "ssh"
SSH_CONNECT_TIMEOUT_SECONDS = 10

# Evaluation hosts are ephemeral, so host keys are not pinned.
SSH_OPTIONS = [
    "-o",
    "StrictHostKeyChecking=no",
    "-o",
    f"ConnectTimeout={SSH_CONNECT_TIMEOUT_SECONDS}",
]


def build_remote_command(
    query: str,
    options: DriverOptions,
    model: str | None = None,
    remote_command: str = DEFAULT_REMOTE_COMMAND,
) -> str:
    """Compose the single shell string executed on the remote host."""
    env_parts = [
        f"{ENV_MAX_ITERATIONS}={options.max_iterations}",
        f"{ENV_MAX_DEPTH}={options.max_depth}",
    ]
    if model:
        env_parts.append(f"{ENV_MODEL}={shlex.quote(model)}")
    return f"{' '.join(env_parts)} {remote_command} {shlex.quote(query)}"


class SshDriver:
    """Driver implementation that invokes the agent over SSH.

    The trace locator is ``ssh://<host>``; it is for display only and is
    never dereferenced by the harness.
    """

    def __init__(self, settings: DriverSettings) -> None:
        if not settings.host:
            raise FatalEvalError("SSH driver requires a host")
        self.host = settings.host
        self.model = settings.model
        self.remote_command = settings.remote_command

    async def call(
        self,
        query: str,
        context: str | None = None,
        options: DriverOptions | None = None,
    ) -> InvocationResult:
        options = options or DriverOptions()
        remote_cmd = build_remote_command(
            query, options, model=self.model, remote_command=self.remote_command
        )

        result = await run_process(
            SSH_BINARY,
            [self.host, *SSH_OPTIONS, remote_cmd],
            stdin=context,
            timeout_ms=options.timeout_ms,
        )

        return InvocationResult(
            answer=result.stdout.strip(),
            exit_code=result.exit_code,
            wall_time_ms=result.wall_time_ms,
            trace=f"ssh://{self.host}",
            timed_out=result.timed_out,
        )

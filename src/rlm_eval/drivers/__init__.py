"""Built-in driver implementations.

- LocalDriver: spawns the agent as a local subprocess
- SshDriver: runs the agent on a remote host over SSH

Each driver implements the Driver protocol (a single async ``call``) and is
registered by name in ``rlm_eval.driver_registry``.
"""

from rlm_eval.drivers.local import LocalDriver, find_agent_binary
from rlm_eval.drivers.ssh import SshDriver

__all__ = [
    "LocalDriver",
    "SshDriver",
    "find_agent_binary",
]

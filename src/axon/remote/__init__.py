"""Remote execution over SSH: batched commands and file uploads."""

from axon.remote.batch import (
    BatchHandle,
    CommandExecutor,
    CommandResult,
    RemoteCommandBatch,
    wait_all,
)
from axon.remote.executor import SSHExecutor

__all__ = [
    "BatchHandle",
    "CommandExecutor",
    "CommandResult",
    "RemoteCommandBatch",
    "SSHExecutor",
    "wait_all",
]

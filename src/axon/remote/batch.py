"""Batched remote command execution.

A ``RemoteCommandBatch`` collects named shell commands for one host and runs
them in a single SSH session. Every command is wrapped between marker lines
carrying a per-batch random token, so the combined output can be split back
into one ``CommandResult`` per command:

    echo '<token>:START:0'
    { docker ps
    } </dev/null 2>&1 && echo '<token>:EXIT:0:0' || echo "<token>:EXIT:0:$?"

Commands run in submission order and a failing command does not stop the
ones after it; callers check the exit code of every command they depend on.
Batches for different hosts can be dispatched concurrently with
``execute_async`` and joined with ``wait_all``.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from concurrent.futures import Executor, Future, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from axon.lib.errors import (
    BatchNotExecutedError,
    RemoteExecutionError,
    UnknownCommandError,
)
from axon.lib.logging_config import get_logger

if TYPE_CHECKING:
    from axon.models.environment import ServerEndpoint

logger = get_logger(__name__)

# Exit code reported for commands whose exit marker never arrived
MISSING_EXIT_CODE = 255


class CommandExecutor(Protocol):
    """Transport that runs a bash script on a host and returns its stdout."""

    def run_script(self, endpoint: ServerEndpoint, script: str) -> str: ...

    def stream(
        self, endpoint: ServerEndpoint, command: str, write: Callable[[str], None]
    ) -> int: ...

    def upload(
        self, endpoint: ServerEndpoint, content: bytes, remote_path: str
    ) -> None: ...


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one command in a batch.

    Attributes:
        name: Logical name the command was added under
        exit_code: Exit status, or 255 when the command never finished
        output: Combined stdout and stderr, trailing newline stripped
    """

    name: str
    exit_code: int
    output: str

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class _Command:
    name: str
    command: str
    stdin: str | None = None


class RemoteCommandBatch:
    """Ordered set of named commands executed on one host.

    Args:
        endpoint: Host the batch runs on
        label: Short description used in log messages
    """

    def __init__(self, endpoint: ServerEndpoint, label: str = "batch") -> None:
        self.endpoint = endpoint
        self.label = label
        self.token = f"AXON_{uuid.uuid4().hex}"
        self._commands: list[_Command] = []
        self._results: dict[str, CommandResult] | None = None

    def __len__(self) -> int:
        return len(self._commands)

    @property
    def names(self) -> list[str]:
        return [c.name for c in self._commands]

    @property
    def executed(self) -> bool:
        return self._results is not None

    def add(self, name: str, command: str, stdin: str | None = None) -> None:
        """Append a command to the batch.

        Args:
            name: Unique logical name used to read the result back
            command: Shell command text
            stdin: Data fed to the command on standard input through a
                here-document. It is masked in logs.

        Raises:
            ValueError: If the name is already used or the batch has run
        """
        if self._results is not None:
            raise ValueError(f"Batch '{self.label}' has already been executed")
        if name in self.names:
            raise ValueError(f"Duplicate command name in batch: {name}")
        self._commands.append(_Command(name, command, stdin))

    def render(self, mask_stdin: bool = False) -> str:
        """Build the bash script for this batch."""
        lines = ["set -o pipefail"]
        for index, cmd in enumerate(self._commands):
            body = cmd.command
            if cmd.stdin is not None:
                delimiter = f"{self.token}_IN_{index}"
                data = "***" if mask_stdin else cmd.stdin.rstrip("\n")
                body = f"{body} <<'{delimiter}'\n{data}\n{delimiter}"
                redirect = "2>&1"
            else:
                redirect = "</dev/null 2>&1"
            ok = f"echo '{self.token}:EXIT:{index}:0'"
            failed = f'echo "{self.token}:EXIT:{index}:$?"'
            lines.append(f"echo '{self.token}:START:{index}'")
            lines.append(f"{{ {body}\n}} {redirect} && {ok} || {failed}")
        return "\n".join(lines) + "\n"

    def parse(self, output: str) -> dict[str, CommandResult]:
        """Split combined script output into per-command results."""
        start_prefix = f"{self.token}:START:"
        exit_prefix = f"{self.token}:EXIT:"
        captured: dict[int, list[str]] = {}
        codes: dict[int, int] = {}
        current: int | None = None

        for line in output.splitlines():
            if line.startswith(start_prefix):
                current = int(line[len(start_prefix) :])
                captured[current] = []
                continue
            marker_at = line.find(exit_prefix)
            if marker_at >= 0:
                # output without a trailing newline shares the marker's line
                if marker_at > 0 and current is not None:
                    captured[current].append(line[:marker_at])
                rest = line[marker_at + len(exit_prefix) :]
                index_text, _, code_text = rest.partition(":")
                codes[int(index_text)] = int(code_text or MISSING_EXIT_CODE)
                current = None
                continue
            if current is not None:
                captured[current].append(line)

        results: dict[str, CommandResult] = {}
        for index, cmd in enumerate(self._commands):
            results[cmd.name] = CommandResult(
                name=cmd.name,
                exit_code=codes.get(index, MISSING_EXIT_CODE),
                output="\n".join(captured.get(index, [])),
            )
        return results

    def execute(self, executor: CommandExecutor) -> RemoteCommandBatch:
        """Run the batch synchronously.

        Returns:
            The batch itself, with results available

        Raises:
            RemoteExecutionError: If the host cannot be reached
        """
        if not self._commands:
            self._results = {}
            return self

        logger.debug(
            "Running %s on %s (%d commands):\n%s",
            self.label,
            self.endpoint.label,
            len(self._commands),
            self.render(mask_stdin=True),
        )
        output = executor.run_script(self.endpoint, self.render())
        self._results = self.parse(output)

        failed = [r.name for r in self._results.values() if not r.succeeded]
        logger.debug(
            "%s on %s finished; failed commands: %s",
            self.label,
            self.endpoint.label,
            ", ".join(failed) or "none",
        )
        return self

    def execute_async(
        self, executor: CommandExecutor, pool: Executor
    ) -> BatchHandle:
        """Dispatch the batch on a worker thread.

        Join with :meth:`BatchHandle.wait` or :func:`wait_all`.
        """
        return BatchHandle(self, pool.submit(self.execute, executor))

    def result(self, name: str) -> CommandResult:
        """Return the result of the command added under ``name``.

        Raises:
            BatchNotExecutedError: If the batch has not completed yet
            UnknownCommandError: If no command was added under ``name``
        """
        if self._results is None:
            raise BatchNotExecutedError(
                f"Batch '{self.label}' has not been executed; "
                "call execute() or wait for its handle first"
            )
        if name not in self._results:
            raise UnknownCommandError(name, self.names)
        return self._results[name]

    def exit_code(self, name: str) -> int:
        return self.result(name).exit_code

    def output(self, name: str) -> str:
        return self.result(name).output

    def succeeded(self, name: str) -> bool:
        return self.result(name).succeeded


class BatchHandle:
    """Handle for a batch dispatched with ``execute_async``."""

    def __init__(self, batch: RemoteCommandBatch, future: Future[RemoteCommandBatch]):
        self.batch = batch
        self.future = future

    def wait(self, timeout: float | None = None) -> RemoteCommandBatch:
        """Block until the batch finishes and return it.

        Raises:
            RemoteExecutionError: If the batch failed to run or did not
                finish within ``timeout`` seconds
        """
        try:
            return self.future.result(timeout=timeout)
        except FutureTimeoutError as e:
            raise RemoteExecutionError(
                self.batch.endpoint.host,
                f"Batch '{self.batch.label}' did not finish within {timeout}s",
            ) from e


def wait_all(
    *handles: BatchHandle, timeout: float | None = None
) -> list[RemoteCommandBatch]:
    """Join several async batches.

    Unless ``timeout`` expires, every batch is allowed to finish before the
    first failure is raised, so no remote session is left running unobserved.

    Returns:
        The batches in the order of ``handles``

    Raises:
        RemoteExecutionError: If a batch failed, or some batch was still
            running after ``timeout`` seconds
    """
    _, pending = wait([h.future for h in handles], timeout=timeout)
    if pending:
        late = [h for h in handles if h.future in pending]
        for handle in late:
            handle.future.cancel()
        raise RemoteExecutionError(
            late[0].batch.endpoint.host,
            f"{len(late)} batch(es) did not finish within {timeout}s: "
            + ", ".join(h.batch.label for h in late),
        )
    return [h.wait() for h in handles]

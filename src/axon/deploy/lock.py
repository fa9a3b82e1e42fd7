"""Per-environment deploy lease held on the system server.

Two deploys of the same environment must not interleave, so each deploy
takes a lease before mutating anything. The lease is a directory created
with ``mkdir``, which either creates it or fails atomically. The holder
writes a short description of itself into ``owner`` so a blocked deploy can
report who holds it. Leases older than ``lock_timeout`` are treated as left
behind by a crashed run and are broken with a warning.
"""

from __future__ import annotations

import os
import posixpath
import shlex
import socket
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from axon.lib.errors import DeploymentError, DeploymentLockedError
from axon.lib.logging_config import get_logger
from axon.remote.batch import RemoteCommandBatch

if TYPE_CHECKING:
    from axon.models.environment import EnvironmentDescriptor
    from axon.remote.batch import CommandExecutor

logger = get_logger(__name__)

# Exit code of the acquire command when the lease is already held
HELD_EXIT_CODE = 4


def lease_path(descriptor: EnvironmentDescriptor) -> str:
    """Path of the lease directory for an environment."""
    name = f"{descriptor.product}-{descriptor.environment}.lock"
    return posixpath.join(descriptor.nginx.paths.locks_dir, name)


def describe_owner() -> str:
    """Describe the current process for the ``owner`` file."""
    started = datetime.now(timezone.utc).isoformat(timespec="seconds")
    return f"{socket.gethostname()} pid={os.getpid()} since {started}"


class DeployLock:
    """Lease on one environment.

    Args:
        descriptor: Environment to lock
        executor: Transport used to reach the system server
    """

    def __init__(
        self, descriptor: EnvironmentDescriptor, executor: CommandExecutor
    ) -> None:
        self.descriptor = descriptor
        self.executor = executor
        self.endpoint = descriptor.system_server
        self.path = lease_path(descriptor)
        self.timeout = descriptor.deployment.lock_timeout
        self.sudo = "sudo " if self.endpoint.uses_sudo else ""
        self.held = False

    def _acquire_command(self, owner: str) -> str:
        s = self.sudo
        q = shlex.quote(self.path)
        q_owner = shlex.quote(posixpath.join(self.path, "owner"))
        locks_dir = shlex.quote(posixpath.dirname(self.path))
        # On contention print the holder and the lease age in seconds
        return (
            f"{s}mkdir -p {locks_dir} && "
            f"if {s}mkdir {q} 2>/dev/null; then "
            f"printf '%s\\n' {shlex.quote(owner)} | {s}tee {q_owner} >/dev/null; "
            f"else {s}cat {q_owner} 2>/dev/null || echo unknown; "
            f"echo $(( $(date +%s) - $({s}stat -c %Y {q}) )); "
            f"(exit {HELD_EXIT_CODE}); fi"
        )

    def _try_acquire(self, owner: str) -> tuple[bool, str, int | None]:
        batch = RemoteCommandBatch(self.endpoint, label="lease acquire")
        batch.add("acquire", self._acquire_command(owner))
        batch.execute(self.executor)
        result = batch.result("acquire")
        if result.succeeded:
            return True, "", None
        if result.exit_code != HELD_EXIT_CODE:
            raise DeploymentError(
                "lock", f"Could not create deploy lease {self.path}", result.output
            )
        lines = result.output.strip().splitlines()
        holder = lines[0] if lines else "unknown"
        age_text = lines[-1] if len(lines) > 1 else ""
        age = int(age_text) if age_text.lstrip("-").isdigit() else None
        return False, holder, age

    def acquire(self, force: bool = False) -> None:
        """Take the lease.

        Args:
            force: Break an existing lease regardless of its age

        Raises:
            DeploymentLockedError: If another live deploy holds the lease
        """
        owner = describe_owner()
        acquired, holder, age = self._try_acquire(owner)
        if not acquired:
            stale = age is not None and age > self.timeout
            if not (force or stale):
                raise DeploymentLockedError(self.descriptor.environment, holder)
            reason = "forced" if force else f"stale for {age}s"
            logger.warning("Breaking deploy lease held by %s (%s)", holder, reason)
            self.break_lease()
            acquired, holder, _ = self._try_acquire(owner)
            if not acquired:
                raise DeploymentLockedError(self.descriptor.environment, holder)
        self.held = True
        logger.debug("Acquired deploy lease %s", self.path)

    def break_lease(self) -> None:
        """Remove the lease directory whoever holds it."""
        batch = RemoteCommandBatch(self.endpoint, label="lease break")
        batch.add("break", f"{self.sudo}rm -rf {shlex.quote(self.path)}")
        batch.execute(self.executor)
        if not batch.succeeded("break"):
            raise DeploymentError(
                "lock",
                f"Could not remove deploy lease {self.path}",
                batch.output("break"),
            )

    def release(self) -> None:
        """Give the lease back. Failures are logged, not raised."""
        if not self.held:
            return
        try:
            self.break_lease()
        except Exception as e:  # noqa: BLE001
            logger.warning("Could not release deploy lease %s: %s", self.path, e)
            return
        self.held = False
        logger.debug("Released deploy lease %s", self.path)

    @contextmanager
    def hold(self, force: bool = False) -> Generator[DeployLock, None, None]:
        """Hold the lease for the duration of a ``with`` block."""
        self.acquire(force=force)
        try:
            yield self
        finally:
            self.release()

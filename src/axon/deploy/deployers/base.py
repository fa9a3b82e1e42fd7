"""Base interface for environment deployers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from axon.deploy.lock import DeployLock
from axon.lib.ui.progress import ProgressReporter
from axon.proxy.manager import ProxyConfigManager

if TYPE_CHECKING:
    from axon.deploy.cleanup import CleanupSupervisor
    from axon.models.environment import EnvironmentDescriptor
    from axon.models.release import DeployOutcome, EnvironmentStatus
    from axon.remote.batch import CommandExecutor


class LogKind(str, Enum):
    """Which nginx log of a static site to show."""

    ACCESS = "access"
    ERROR = "error"
    BOTH = "both"


@dataclass(frozen=True)
class LogOptions:
    """What ``logs`` prints.

    Attributes:
        lines: Number of trailing lines
        follow: Keep streaming new lines until interrupted
        since: Only entries newer than this (docker duration or timestamp)
        kind: Log to show for static sites
    """

    lines: int = 50
    follow: bool = False
    since: str | None = None
    kind: LogKind = LogKind.BOTH


class BaseDeployer(ABC):
    """Abstract base class for environment deployers.

    Args:
        descriptor: Resolved environment to act on
        executor: Transport used to reach the remote hosts
        reporter: Receives one line per state transition
        supervisor_factory: Creates the cleanup supervisor for a deploy
    """

    def __init__(
        self,
        descriptor: EnvironmentDescriptor,
        executor: CommandExecutor,
        reporter: ProgressReporter | None = None,
        supervisor_factory: Callable[[], CleanupSupervisor] | None = None,
    ) -> None:
        self.descriptor = descriptor
        self.executor = executor
        self.reporter = reporter or ProgressReporter(quiet=True)
        if supervisor_factory is None:
            from axon.deploy.cleanup import CleanupSupervisor

            supervisor_factory = CleanupSupervisor
        self.supervisor_factory = supervisor_factory

    @property
    def sudo(self) -> str:
        """Command prefix for privileged commands on the system server."""
        return "sudo " if self.descriptor.system_server.uses_sudo else ""

    def lock(self) -> DeployLock:
        """Lease on this deployer's environment."""
        return DeployLock(self.descriptor, self.executor)

    def proxy(self) -> ProxyConfigManager:
        """nginx manager for this deployer's environment."""
        return ProxyConfigManager(self.descriptor, self.executor)

    @abstractmethod
    def deploy(self, *, force_unlock: bool = False) -> DeployOutcome:
        """Release the configured version of the environment.

        Args:
            force_unlock: Break an existing deploy lease

        Returns:
            DeployOutcome describing the live release.

        Raises:
            ConfigError: If the environment or its hosts are not set up
            DeploymentLockedError: If another deploy holds the lease
            DeploymentError: If the deploy fails; the previous release
                stays live.
        """

    @abstractmethod
    def get_status(self) -> EnvironmentStatus:
        """Report what is currently running for the environment.

        Raises:
            DeploymentError: If the remote state cannot be read
        """

    @abstractmethod
    def destroy(self, *, force_unlock: bool = False) -> None:
        """Remove every trace of the environment from the remote hosts.

        Raises:
            DeploymentError: If removal fails
        """

    @abstractmethod
    def logs(self, write: Callable[[str], None], options: LogOptions) -> None:
        """Stream the environment's logs to ``write``.

        Raises:
            DeploymentError: If there is nothing to read or the remote
                command fails
        """

"""Release models produced during a deployment.

These are in-process results rather than configuration, so they are plain
dataclasses like ``BuildResult``.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum

from axon.models.environment import DeployMode


class HealthState(str, Enum):
    """Health of a container as reported by the runtime."""

    UNKNOWN = "unknown"
    STARTING = "starting"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    NONE = "none"  # no health check configured

    @classmethod
    def parse(cls, value: str) -> HealthState:
        """Map a ``docker inspect`` health string to a state."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN


class TrafficState(str, Enum):
    """Whether the proxy routes traffic to a release."""

    STANDBY = "standby"
    LIVE = "live"
    DRAINING = "draining"
    REMOVED = "removed"


@dataclass
class ContainerRelease:
    """A workload container created by one deploy.

    Attributes:
        release_id: Container name, ``{product}-{environment}-{unix_ts}``
        image_uri: Image the container runs
        assigned_port: Host port assigned by the runtime, once known
        health: Last observed health state
        traffic: Whether the proxy routes to this release
    """

    release_id: str
    image_uri: str
    assigned_port: int | None = None
    health: HealthState = HealthState.UNKNOWN
    traffic: TrafficState = TrafficState.STANDBY

    @classmethod
    def create(
        cls, prefix: str, image_uri: str, timestamp: int | None = None
    ) -> ContainerRelease:
        """Create a release with a fresh timestamped name."""
        ts = int(time.time()) if timestamp is None else timestamp
        return cls(release_id=f"{prefix}-{ts}", image_uri=image_uri)

    def mark_live(self) -> None:
        if self.assigned_port is None:
            raise ValueError(f"Release {self.release_id} has no assigned port")
        self.traffic = TrafficState.LIVE

    def mark_removed(self) -> None:
        self.traffic = TrafficState.REMOVED


RELEASE_NAME_PATTERN = re.compile(r"^\d{14}(-[0-9a-f]{8})?$")


@dataclass
class StaticRelease:
    """An immutable directory of static files.

    Attributes:
        release_id: ``YYYYmmddHHMMSS-<sha8>``; the short hash is absent for
            archives produced by other tools
        path: Release directory on the system server
    """

    release_id: str
    path: str

    @staticmethod
    def id_from_archive(filename: str, prefix: str, suffix: str) -> str:
        """Extract the release id from ``{prefix}{id}{suffix}``.

        Raises:
            ValueError: If the file name does not carry a valid release id
        """
        name = filename.rsplit("/", 1)[-1]
        if not (name.startswith(prefix) and name.endswith(suffix)):
            raise ValueError(f"Not a static bundle: {filename}")
        release_id = name[len(prefix) : len(name) - len(suffix)]
        if not RELEASE_NAME_PATTERN.match(release_id):
            raise ValueError(f"Invalid release id in bundle name: {filename}")
        return release_id


@dataclass
class DeployOutcome:
    """Result of a successful deploy.

    Attributes:
        mode: Release mode that was used
        environment: Environment name
        release_id: Identifier of the release now live
        previous_release_id: Identifier of the release it replaced, if any
        image_uri: Deployed image (container mode)
        assigned_port: Host port of the live container (container mode)
        release_path: Directory of the live release (static mode)
        cleanup_errors: Errors from post-switch cleanup; never fatal
    """

    mode: DeployMode
    environment: str
    release_id: str
    previous_release_id: str | None = None
    image_uri: str | None = None
    assigned_port: int | None = None
    release_path: str | None = None
    cleanup_errors: list[str] = field(default_factory=list)


@dataclass
class EnvironmentStatus:
    """Snapshot of what is running for an environment.

    Attributes:
        environment: Environment name
        mode: Release mode
        live_port: Port bound in the upstream document (container mode)
        site_configured: Whether a site document exists on the proxy
        containers: Container name to its docker status for the environment
        current_release: Release id the ``current`` symlink points at
        releases: Release ids on disk, newest first (static mode)
    """

    environment: str
    mode: DeployMode
    live_port: int | None = None
    site_configured: bool = False
    containers: dict[str, str] = field(default_factory=dict)
    current_release: str | None = None
    releases: list[str] = field(default_factory=list)


@dataclass
class SyncOutcome:
    """Result of reconciling the upstream with the running container.

    Attributes:
        environment: Environment name
        container: Newest running container of the environment
        container_port: Host port docker publishes for it
        upstream_port: Port the upstream document pointed at before, if any
        changed: Whether the nginx documents were rewritten and reloaded
    """

    environment: str
    container: str
    container_port: int
    upstream_port: int | None = None
    changed: bool = False

    @property
    def in_sync(self) -> bool:
        return self.upstream_port == self.container_port


@dataclass
class HealthReport:
    """Health of an environment's newest container.

    Attributes:
        environment: Environment name
        container: Container that was checked, if one exists
        running: Whether docker reports the container as up
        state: Health reported by docker
        host_port: Published host port, if any
        http_status: Status of the HTTP probe on the application server;
            None when the probe was not run
    """

    environment: str
    container: str | None = None
    running: bool = False
    state: HealthState = HealthState.UNKNOWN
    host_port: int | None = None
    http_status: int | None = None

    @property
    def healthy(self) -> bool:
        if self.container is None or not self.running:
            return False
        if self.state not in (HealthState.HEALTHY, HealthState.NONE):
            return False
        return self.http_status is None or 200 <= self.http_status < 300

"""Docker CLI commands run on the application server through batches.

``DockerRuntime`` only builds commands and parses their output; executing
them is left to the caller so several runtime operations can share one
remote session.
"""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from typing import TYPE_CHECKING

from axon.models.release import HealthState

if TYPE_CHECKING:
    from axon.remote.batch import RemoteCommandBatch
    from axon.runtime.options import RunOptions

HEALTH_FORMAT = "{{if .State.Health}}{{.State.Health.Status}}{{else}}none{{end}}"
PS_FORMAT = "{{.Names}}\t{{.Status}}\t{{.Ports}}"


@dataclass(frozen=True)
class ContainerInfo:
    """One line of ``docker ps`` output.

    Attributes:
        name: Container name
        status: Human-readable status (e.g. "Up 3 minutes (healthy)")
        ports: Published ports (e.g. "0.0.0.0:32768->3000/tcp")
    """

    name: str
    status: str
    ports: str

    @property
    def running(self) -> bool:
        return self.status.startswith("Up")

    def publishes(self, host_port: int) -> bool:
        """Whether the container publishes the given host port."""
        return f":{host_port}->" in self.ports


class DockerRuntime:
    """Builds docker commands for one host.

    Args:
        use_sudo: Prefix commands with sudo
    """

    def __init__(self, use_sudo: bool = False) -> None:
        self.prefix = "sudo " if use_sudo else ""

    def _docker(self, *args: str) -> str:
        return self.prefix + shlex.join(["docker", *args])

    # Command builders

    def add_pull(
        self, batch: RemoteCommandBatch, image: str, name: str = "pull"
    ) -> None:
        batch.add(name, self._docker("pull", image))

    def add_ensure_network(
        self, batch: RemoteCommandBatch, network: str, name: str = "network"
    ) -> None:
        q = shlex.quote(network)
        batch.add(
            name,
            f"{self.prefix}docker network inspect {q} >/dev/null 2>&1 || "
            f"{self.prefix}docker network create {q}",
        )

    def add_remove_if_exists(
        self, batch: RemoteCommandBatch, container: str, name: str = "remove_stale"
    ) -> None:
        """Remove a leftover container with the same name (from a retry)."""
        command = self._docker("rm", "-f", container)
        batch.add(name, f"{command} >/dev/null 2>&1 || true")

    def add_run(
        self, batch: RemoteCommandBatch, options: RunOptions, name: str = "run"
    ) -> None:
        batch.add(name, self.prefix + options.to_command())

    def add_port(
        self,
        batch: RemoteCommandBatch,
        container: str,
        container_port: int,
        name: str = "port",
    ) -> None:
        batch.add(name, self._docker("port", container, str(container_port)))

    def add_health(
        self, batch: RemoteCommandBatch, container: str, name: str = "health"
    ) -> None:
        batch.add(
            name,
            f"{self._docker('inspect', '--format', HEALTH_FORMAT, container)}"
            " 2>/dev/null || echo unknown",
        )

    def add_list(
        self,
        batch: RemoteCommandBatch,
        prefix: str,
        name: str = "containers",
        all_states: bool = True,
    ) -> None:
        """List containers of an environment; see :meth:`parse_list`."""
        args = ["ps"]
        if all_states:
            args.append("-a")
        args += ["--filter", f"name={prefix}-", "--format", PS_FORMAT]
        batch.add(name, self._docker(*args))

    def add_stop_and_remove(
        self,
        batch: RemoteCommandBatch,
        container: str,
        timeout: int,
        name: str | None = None,
    ) -> None:
        batch.add(
            name or f"retire_{container}",
            f"{self._docker('stop', '--time', str(timeout), container)} >/dev/null; "
            f"{self._docker('rm', '-f', container)} >/dev/null",
        )

    def add_remove(
        self, batch: RemoteCommandBatch, container: str, name: str = "remove"
    ) -> None:
        batch.add(name, self._docker("rm", "-f", container))

    def add_restart(
        self,
        batch: RemoteCommandBatch,
        container: str,
        timeout: int,
        name: str = "restart",
    ) -> None:
        batch.add(name, self._docker("restart", "--time", str(timeout), container))

    def logs_command(
        self,
        container: str,
        lines: int,
        follow: bool = False,
        since: str | None = None,
    ) -> str:
        """Command printing (or following) a container's output."""
        args = ["logs", "--tail", str(lines)]
        if since:
            args += ["--since", since]
        if follow:
            args.append("--follow")
        return self._docker(*args, container)

    def add_remove_images(
        self, batch: RemoteCommandBatch, repository: str, name: str = "remove_images"
    ) -> None:
        q = shlex.quote(repository)
        batch.add(
            name,
            f"ids=$({self.prefix}docker images -q {q} | sort -u); "
            f'[ -z "$ids" ] || {self.prefix}docker rmi -f $ids',
        )

    # Output parsers

    @staticmethod
    def parse_port(output: str) -> int | None:
        """Parse ``docker port`` output into the first host port.

        ``docker port`` prints one mapping per address family, e.g.
        ``0.0.0.0:32768`` and ``[::]:32768``.
        """
        for line in output.splitlines():
            _, sep, port = line.strip().rpartition(":")
            if sep and port.isdigit():
                return int(port)
        return None

    @staticmethod
    def parse_health(output: str) -> HealthState:
        lines = output.strip().splitlines()
        return HealthState.parse(lines[-1]) if lines else HealthState.UNKNOWN

    @staticmethod
    def newest(containers: list[ContainerInfo]) -> ContainerInfo:
        """Container with the latest ``{prefix}-{timestamp}`` name."""

        def timestamp(info: ContainerInfo) -> int:
            suffix = info.name.rsplit("-", 1)[-1]
            return int(suffix) if suffix.isdigit() else -1

        return max(containers, key=timestamp)

    @staticmethod
    def parse_list(output: str, prefix: str | None = None) -> list[ContainerInfo]:
        """Parse ``docker ps`` output.

        The name filter passed to docker is a substring match, so with
        ``prefix`` only names of the form ``{prefix}-{timestamp}`` are kept.
        """
        pattern = re.compile(rf"^{re.escape(prefix)}-\d+$") if prefix else None
        containers: list[ContainerInfo] = []
        for line in output.splitlines():
            if not line.strip():
                continue
            parts = line.split("\t")
            parts += [""] * (3 - len(parts))
            if pattern is not None and not pattern.match(parts[0]):
                continue
            containers.append(ContainerInfo(parts[0], parts[1], parts[2]))
        return containers

"""Typed options for starting a workload container.

``RunOptions`` is built from the environment descriptor and turned directly
into a ``docker run`` argument list; every value is passed as its own
argument, so nothing is interpolated into shell text unquoted.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from axon.models.environment import EnvironmentDescriptor, HealthCheckSettings


@dataclass(frozen=True)
class HealthCheckOptions:
    """Docker HEALTHCHECK settings.

    Attributes:
        command: Shell command run inside the container
        interval: Time between probes (e.g. "30s")
        timeout: Probe timeout
        retries: Consecutive failures before unhealthy
        start_period: Grace period after start
    """

    command: str
    interval: str = "30s"
    timeout: str = "10s"
    retries: int = 3
    start_period: str = "40s"

    @classmethod
    def from_settings(
        cls, settings: HealthCheckSettings, container_port: int
    ) -> HealthCheckOptions | None:
        """Build options from configuration; None when checks are disabled."""
        if not settings.enabled:
            return None
        return cls(
            command=health_command(settings, container_port),
            interval=settings.interval,
            timeout=settings.timeout,
            retries=settings.retries,
            start_period=settings.start_period,
        )


def health_command(settings: HealthCheckSettings, container_port: int) -> str:
    """Return the probe shell command for a container.

    A custom command may be given in docker's list form (``["CMD", ...]`` or
    ``["CMD-SHELL", "..."]``) or as a plain shell string. Without one, the
    endpoint is probed with wget.
    """
    substitutions = {
        "${container_port}": str(container_port),
        "${health_endpoint}": settings.endpoint,
    }

    def _substitute(text: str) -> str:
        for key, value in substitutions.items():
            text = text.replace(key, value)
        return text

    custom = settings.command
    if isinstance(custom, str):
        return _substitute(custom)
    if custom:
        parts = [_substitute(part) for part in custom]
        if parts[0] == "CMD-SHELL":
            return " ".join(parts[1:])
        if parts[0] == "CMD":
            parts = parts[1:]
        return shlex.join(parts)

    url = f"http://127.0.0.1:{container_port}{settings.endpoint}"
    return shlex.join(["wget", "--quiet", "--tries=1", "--spider", url])


@dataclass(frozen=True)
class RunOptions:
    """Everything needed to start one workload container.

    Attributes:
        name: Container name
        image: Image reference
        container_port: Port published to an ephemeral host port
        env_file: Env file path on the application server
        environment: Extra environment variables
        restart_policy: Docker restart policy
        extra_hosts: ``host:ip`` mappings
        health_check: HEALTHCHECK settings, None to disable
        log_driver: Docker log driver
        log_options: Log driver options
        network: Docker network to attach to
        network_alias: Alias on that network
        labels: Container labels
    """

    name: str
    image: str
    container_port: int
    env_file: str | None = None
    environment: dict[str, str] = field(default_factory=dict)
    restart_policy: str = "unless-stopped"
    extra_hosts: list[str] = field(default_factory=list)
    health_check: HealthCheckOptions | None = None
    log_driver: str = "json-file"
    log_options: dict[str, str] = field(default_factory=dict)
    network: str | None = None
    network_alias: str | None = None
    labels: dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_release(
        cls, descriptor: EnvironmentDescriptor, name: str, image: str
    ) -> RunOptions:
        """Build run options for a new release of a container environment."""
        docker = descriptor.docker
        assert docker is not None  # nosec B101
        return cls(
            name=name,
            image=image,
            container_port=docker.container_port,
            env_file=descriptor.env_file,
            environment=dict(docker.env_vars),
            restart_policy=docker.restart_policy,
            extra_hosts=list(docker.extra_hosts),
            health_check=HealthCheckOptions.from_settings(
                descriptor.health_check, docker.container_port
            ),
            log_driver=docker.logging.driver,
            log_options={
                "max-size": docker.logging.max_size,
                "max-file": str(docker.logging.max_file),
            },
            network=docker.network_name,
            network_alias=docker.network_alias,
            labels={
                "com.axon.product": descriptor.product,
                "com.axon.environment": descriptor.environment,
                "com.axon.managed": "true",
            },
        )

    def to_argv(self) -> list[str]:
        """Return the ``docker run`` argument list."""
        argv = ["docker", "run", "-d", "--name", self.name]
        # Publish to an ephemeral host port chosen by docker
        argv += ["-p", str(self.container_port)]
        if self.env_file:
            argv += ["--env-file", self.env_file]
        for key, value in sorted(self.environment.items()):
            argv += ["-e", f"{key}={value}"]
        argv += ["--restart", self.restart_policy]
        for host in self.extra_hosts:
            argv += ["--add-host", host]
        if self.health_check is not None:
            hc = self.health_check
            argv += [
                "--health-cmd",
                hc.command,
                "--health-interval",
                hc.interval,
                "--health-timeout",
                hc.timeout,
                "--health-retries",
                str(hc.retries),
                "--health-start-period",
                hc.start_period,
            ]
        argv += ["--log-driver", self.log_driver]
        for key, value in sorted(self.log_options.items()):
            argv += ["--log-opt", f"{key}={value}"]
        if self.network:
            argv += ["--network", self.network]
            if self.network_alias:
                argv += ["--network-alias", self.network_alias]
        for key, value in sorted(self.labels.items()):
            argv += ["--label", f"{key}={value}"]
        argv.append(self.image)
        return argv

    def to_command(self) -> str:
        """Shell-quoted ``docker run`` command line."""
        return shlex.join(self.to_argv())

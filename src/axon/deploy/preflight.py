"""Pre-flight checks run before a deploy mutates anything.

Everything checked here is a setup problem rather than a deploy failure, so
every failure is reported as a ``ConfigError``.
"""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import TYPE_CHECKING

from axon.lib.errors import ConfigError
from axon.lib.logging_config import get_logger
from axon.models.environment import DeployMode
from axon.remote.batch import RemoteCommandBatch

if TYPE_CHECKING:
    from axon.lib.ui.progress import ProgressReporter
    from axon.models.environment import EnvironmentDescriptor, ServerEndpoint
    from axon.remote.batch import CommandExecutor

logger = get_logger(__name__)


def check_ssh_keys(descriptor: EnvironmentDescriptor) -> None:
    """Verify that configured SSH key files exist on the control machine.

    Raises:
        ConfigError: If a key file is missing
    """
    servers: list[tuple[str, ServerEndpoint | None]] = [
        ("system", descriptor.system_server),
        ("application", descriptor.application_server),
    ]
    for role, endpoint in servers:
        if endpoint is None or not endpoint.ssh_key:
            continue
        key = Path(endpoint.ssh_key).expanduser()
        if not key.is_file():
            raise ConfigError(
                f"servers.{role}.ssh_key",
                f"SSH key for the {role} server not found: {key}",
            )


def add_proxy_checks(
    batch: RemoteCommandBatch, descriptor: EnvironmentDescriptor
) -> None:
    """Add the system server checks to a batch."""
    paths = descriptor.nginx.paths
    sudo = "sudo " if descriptor.system_server.uses_sudo else ""
    main_config = shlex.quote(paths.config)
    batch.add("nginx_installed", "command -v nginx")
    batch.add(
        "axon_dirs",
        f"test -d {shlex.quote(paths.upstreams_dir)} && "
        f"test -d {shlex.quote(paths.sites_dir)}",
    )
    for kind, directory in (
        ("upstreams", paths.upstreams_dir),
        ("sites", paths.sites_dir),
    ):
        include = f"include {directory}/*.conf"
        batch.add(
            f"{kind}_included", f"{sudo}grep -qF {shlex.quote(include)} {main_config}"
        )
    batch.add("nginx_valid", f"{sudo}nginx -t")


def verify_proxy_checks(
    batch: RemoteCommandBatch, descriptor: EnvironmentDescriptor
) -> None:
    """Interpret the results of :func:`add_proxy_checks`.

    Raises:
        ConfigError: If the system server is not prepared for axon
    """
    host = descriptor.system_server.host
    paths = descriptor.nginx.paths
    if not batch.succeeded("nginx_installed"):
        raise ConfigError("servers.system", f"nginx is not installed on {host}")
    if not batch.succeeded("axon_dirs"):
        raise ConfigError(
            "nginx.paths.axon_dir",
            f"{paths.upstreams_dir} and {paths.sites_dir} must exist on {host}",
        )
    missing = [
        kind
        for kind in ("upstreams", "sites")
        # Static sites do not need an upstream include
        if not batch.succeeded(f"{kind}_included")
        and not (kind == "upstreams" and descriptor.mode == DeployMode.STATIC)
    ]
    if missing:
        lines = ", ".join(
            f"include {paths.axon_dir}/{kind}/*.conf;" for kind in missing
        )
        raise ConfigError(
            "nginx.paths.config", f"{paths.config} on {host} must contain: {lines}"
        )
    result = batch.result("nginx_valid")
    if not (result.succeeded and "successful" in result.output):
        raise ConfigError(
            "nginx",
            f"The active nginx configuration on {host} is invalid:\n{result.output}",
        )


def run_preflight(
    descriptor: EnvironmentDescriptor,
    executor: CommandExecutor,
    reporter: ProgressReporter | None = None,
) -> None:
    """Check the control machine and the system server.

    Raises:
        ConfigError: On the first failed check
    """
    check_ssh_keys(descriptor)
    batch = RemoteCommandBatch(descriptor.system_server, label="preflight")
    add_proxy_checks(batch, descriptor)
    batch.execute(executor)
    verify_proxy_checks(batch, descriptor)
    logger.debug("Pre-flight checks passed for %s", descriptor.environment)
    if reporter is not None:
        reporter.success("nginx is installed, configured and valid")

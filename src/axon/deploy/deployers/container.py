"""Zero-downtime deployer for container environments.

A deploy moves through these states::

    DetectCurrent -> Provision -> AwaitHealth
        healthy:   RenderConfig -> ValidateConfig -> Reload -> Drain -> Done
        unhealthy: RollbackNew -> Failed
        invalid:   RevertConfig -> RollbackNew -> Failed

The new container is started next to the live one on a port chosen by
docker. nginx is only pointed at it once docker reports it healthy, and the
old container is retired in the background after the reload.
"""

from __future__ import annotations

import shlex
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING

from axon.deploy.deployers.base import BaseDeployer, LogOptions
from axon.deploy.preflight import run_preflight
from axon.lib.errors import (
    ConfigError,
    DeploymentError,
    HealthCheckError,
    ProvisioningError,
    ProxyConfigError,
)
from axon.lib.logging_config import get_logger
from axon.models.environment import DeployMode
from axon.models.release import (
    ContainerRelease,
    DeployOutcome,
    EnvironmentStatus,
    HealthReport,
    HealthState,
    SyncOutcome,
)
from axon.proxy.nginx import (
    parse_upstream_port,
    render_container_artifact,
    site_path,
    upstream_path,
)
from axon.registry import create_registry_auth
from axon.remote.batch import RemoteCommandBatch, wait_all
from axon.runtime.client import ContainerInfo, DockerRuntime
from axon.runtime.options import RunOptions

if TYPE_CHECKING:
    from axon.deploy.cleanup import CleanupSupervisor
    from axon.lib.ui.progress import ProgressReporter
    from axon.models.environment import EnvironmentDescriptor, ServerEndpoint
    from axon.models.registry import RegistryCredential
    from axon.proxy.manager import ProxyConfigManager, ProxySnapshot
    from axon.registry.base import RegistryAuth
    from axon.remote.batch import CommandExecutor

logger = get_logger(__name__)

# Seconds curl waits for the health endpoint
HTTP_PROBE_TIMEOUT = 5


@dataclass
class CurrentDeployment:
    """What DetectCurrent found before anything changed.

    Attributes:
        live_port: Port bound in the upstream document, if any
        live_container: Container publishing that port, if any
        containers: Every container of the environment
        snapshot: Upstream and site documents as they were
    """

    live_port: int | None
    live_container: str | None
    containers: list[ContainerInfo]
    snapshot: ProxySnapshot


class ContainerDeployer(BaseDeployer):
    """Deploys a product image to the application server behind nginx.

    Args:
        descriptor: Resolved container environment
        executor: Transport used to reach both servers
        reporter: Receives one line per state transition
        registry_auth: Registry provider; created from the descriptor when
            omitted
        sleep: Called between health polls
        supervisor_factory: Creates the cleanup supervisor for a deploy
    """

    def __init__(
        self,
        descriptor: EnvironmentDescriptor,
        executor: CommandExecutor,
        reporter: ProgressReporter | None = None,
        registry_auth: RegistryAuth | None = None,
        sleep: Callable[[float], None] = time.sleep,
        supervisor_factory: Callable[[], CleanupSupervisor] | None = None,
    ) -> None:
        super().__init__(descriptor, executor, reporter, supervisor_factory)
        if descriptor.mode != DeployMode.CONTAINER:
            raise ConfigError(
                "product.type", "ContainerDeployer requires a container environment"
            )
        assert descriptor.registry is not None  # nosec B101
        assert descriptor.docker is not None  # nosec B101
        assert descriptor.application_server is not None  # nosec B101
        self.docker = descriptor.docker
        self.app_server: ServerEndpoint = descriptor.application_server
        self.registry_auth = registry_auth or create_registry_auth(descriptor.registry)
        self.sleep = sleep
        self.runtime = DockerRuntime(use_sudo=self.docker.use_sudo)

    # Public operations

    def deploy(self, *, force_unlock: bool = False) -> DeployOutcome:
        d = self.descriptor
        image_uri = self.registry_auth.build_image_uri(d.image_tag)

        self.reporter.step(f"Pre-flight checks for {d.product} ({d.environment})")
        credential = self.registry_auth.resolve_credential()
        self.reporter.info(f"Registry credential resolved for {credential.server}")
        run_preflight(d, self.executor, self.reporter)

        with self.lock().hold(force=force_unlock):
            supervisor = self.supervisor_factory()
            try:
                outcome = self._release(image_uri, credential, supervisor)
            finally:
                errors = supervisor.join()
            outcome.cleanup_errors.extend(errors)
        for error in outcome.cleanup_errors:
            self.reporter.warning(f"Cleanup failed: {error}")
        return outcome

    def get_status(self) -> EnvironmentStatus:
        d = self.descriptor
        upstream_doc = upstream_path(d)
        system = RemoteCommandBatch(d.system_server, label="status (system)")
        self.proxy().add_snapshot(system, [upstream_doc])
        system.add("site", f"test -f {shlex.quote(site_path(d))}")
        app = RemoteCommandBatch(self.app_server, label="status (application)")
        self.runtime.add_list(app, d.container_prefix)
        self._run_parallel(system, app)

        snapshot = self.proxy().read_snapshot(system, [upstream_doc])
        if not app.succeeded("containers"):
            raise DeploymentError(
                "status", "Could not list containers", app.output("containers")
            )
        containers = DockerRuntime.parse_list(
            app.output("containers"), d.container_prefix
        )
        return EnvironmentStatus(
            environment=d.environment,
            mode=d.mode,
            live_port=parse_upstream_port(snapshot.get(upstream_doc) or ""),
            site_configured=system.succeeded("site"),
            containers={c.name: c.status for c in containers},
        )

    def destroy(self, *, force_unlock: bool = False) -> None:
        d = self.descriptor
        with self.lock().hold(force=force_unlock):
            self.reporter.step("Removing nginx configuration")
            proxy = self.proxy()
            proxy.remove_documents([upstream_path(d), site_path(d)])
            result = proxy.validate_active()
            if not result.passed:
                raise ProxyConfigError(
                    "nginx configuration is invalid after removal", result.diagnostics
                )
            proxy.reload()

            self.reporter.step("Removing containers and images")
            listing = RemoteCommandBatch(self.app_server, label="list containers")
            self.runtime.add_list(listing, d.container_prefix)
            listing.execute(self.executor)
            containers = DockerRuntime.parse_list(
                listing.output("containers"), d.container_prefix
            )
            batch = RemoteCommandBatch(self.app_server, label="destroy")
            for container in containers:
                self.runtime.add_stop_and_remove(
                    batch, container.name, d.deployment.graceful_shutdown_timeout
                )
            self.runtime.add_remove_images(
                batch, self.registry_auth.image_repository()
            )
            batch.execute(self.executor)
            failed = [name for name in batch.names if not batch.succeeded(name)]
            if failed:
                raise DeploymentError(
                    "delete",
                    f"Failed to remove: {', '.join(failed)}",
                    "\n".join(batch.output(name) for name in failed),
                )
            for container in containers:
                self.reporter.info(f"Removed {container.name}")

    # Maintenance

    def sync(self, *, force: bool = False) -> SyncOutcome:
        """Point the upstream at the port of the newest running container.

        Needed when a container was restarted outside a deploy and docker
        published it on a new port. With ``force`` the documents are
        rewritten and nginx reloaded even when the ports already match.

        Raises:
            DeploymentLockedError: If a deploy holds the lease
            DeploymentError: If no running container publishes a port
        """
        with self.lock().hold():
            return self._sync(force=force)

    def restart(self) -> SyncOutcome:
        """Restart the newest container, wait for it, then sync nginx.

        Raises:
            DeploymentLockedError: If a deploy holds the lease
            HealthCheckError: If the container is not healthy afterwards
            DeploymentError: If there is no container or docker fails
        """
        timeout = self.descriptor.deployment.graceful_shutdown_timeout
        with self.lock().hold():
            container = self._newest_container(running_only=False)
            self.reporter.step(f"Restarting {container.name}")
            batch = RemoteCommandBatch(self.app_server, label="restart")
            self.runtime.add_restart(batch, container.name, timeout)
            batch.execute(self.executor)
            if not batch.succeeded("restart"):
                raise DeploymentError(
                    "restart",
                    f"Could not restart {container.name}",
                    batch.output("restart"),
                )
            self.reporter.step("Waiting for the container to become healthy")
            self.await_health(container.name)
            return self._sync(force=False)

    def health(self) -> HealthReport:
        """Check docker health and the HTTP endpoint of the newest container.

        The HTTP probe runs on the application server against the published
        port, so it bypasses nginx.
        """
        d = self.descriptor
        report = HealthReport(environment=d.environment)
        listing = RemoteCommandBatch(self.app_server, label="health (list)")
        self.runtime.add_list(listing, d.container_prefix)
        listing.execute(self.executor)
        containers = self._parse_containers(listing, "health")
        if not containers:
            return report

        newest = DockerRuntime.newest(containers)
        report.container = newest.name
        report.running = newest.running
        batch = RemoteCommandBatch(self.app_server, label="health")
        self.runtime.add_health(batch, newest.name)
        self.runtime.add_port(batch, newest.name, self.docker.container_port)
        batch.execute(self.executor)
        report.state = DockerRuntime.parse_health(batch.output("health"))
        if batch.succeeded("port"):
            report.host_port = DockerRuntime.parse_port(batch.output("port"))

        if report.host_port is not None and d.health_check.enabled:
            url = f"http://localhost:{report.host_port}{d.health_check.endpoint}"
            probe = RemoteCommandBatch(self.app_server, label="http probe")
            probe.add(
                "http",
                "curl -s -o /dev/null -w '%{http_code}' --max-time "
                f"{HTTP_PROBE_TIMEOUT} {shlex.quote(url)}",
            )
            probe.execute(self.executor)
            code = probe.output("http").strip()
            # curl prints 000 when nothing answered
            report.http_status = int(code) if code.isdigit() else 0
        return report

    def logs(self, write: Callable[[str], None], options: LogOptions) -> None:
        container = self._newest_container(running_only=False)
        command = self.runtime.logs_command(
            container.name, options.lines, follow=options.follow, since=options.since
        )
        if options.follow:
            self.reporter.info(f"Following {container.name} (Ctrl+C to stop)")
        exit_code = self.executor.stream(self.app_server, command, write)
        if exit_code != 0:
            raise DeploymentError(
                "logs", f"docker logs for {container.name} exited with {exit_code}"
            )

    # States

    def _release(
        self,
        image_uri: str,
        credential: RegistryCredential,
        supervisor: CleanupSupervisor,
    ) -> DeployOutcome:
        d = self.descriptor
        proxy = self.proxy()

        self.reporter.step("Detecting current deployment")
        current = self.detect_current(proxy)
        if current.live_port is None:
            self.reporter.info("No active deployment (first deploy)")
        else:
            self.reporter.info(
                f"Live port {current.live_port} "
                f"({current.live_container or 'container not found'})"
            )

        release = self._new_release(image_uri, current.containers)
        self.reporter.step(f"Provisioning {release.release_id}")
        self.provision(release, credential)
        self.reporter.info(f"Assigned port {release.assigned_port}")

        self.reporter.step("Waiting for the new container to become healthy")
        try:
            release.health = self.await_health(release.release_id)
        except HealthCheckError:
            self.rollback_new(release)
            raise
        except Exception:
            self.rollback_new(release, keep_allowed=False)
            raise

        self.reporter.step("Switching traffic")
        assert release.assigned_port is not None  # nosec B101
        artifact = render_container_artifact(d, release.assigned_port)
        try:
            proxy.apply(artifact)
        except Exception:
            self.revert_config(proxy, current.snapshot)
            self.rollback_new(release, keep_allowed=False)
            raise
        release.mark_live()
        self.reporter.success(
            f"nginx now routes {d.domain} to port {release.assigned_port}"
        )

        retired = [c.name for c in current.containers if c.name != release.release_id]
        if retired:
            self.reporter.step(f"Draining {len(retired)} old container(s)")
            supervisor.submit("drain", self.drain, retired)

        return DeployOutcome(
            mode=d.mode,
            environment=d.environment,
            release_id=release.release_id,
            previous_release_id=current.live_container,
            image_uri=image_uri,
            assigned_port=release.assigned_port,
        )

    def detect_current(self, proxy: ProxyConfigManager) -> CurrentDeployment:
        """Read the live port and the existing containers in parallel.

        Raises:
            ConfigError: If the env file is missing on the application server
            DeploymentError: If either host cannot be queried
        """
        d = self.descriptor
        documents = [upstream_path(d), site_path(d)]

        system = RemoteCommandBatch(d.system_server, label="detect current (system)")
        proxy.add_snapshot(system, documents)

        app = RemoteCommandBatch(self.app_server, label="detect current (application)")
        app.add("create_dir", f"mkdir -p {shlex.quote(d.app_deploy_dir)}")
        app.add("check_env", f"test -f {shlex.quote(d.env_file or '')}")
        self.runtime.add_list(app, d.container_prefix)

        self._run_parallel(system, app)

        snapshot = proxy.read_snapshot(system, documents)
        if not app.succeeded("check_env"):
            raise ConfigError(
                f"environments.{d.environment}.env_path",
                f"Environment file not found on {self.app_server.host}: "
                f"{d.env_file}",
            )
        for name in ("create_dir", "containers"):
            if not app.succeeded(name):
                raise DeploymentError(
                    "detect_current",
                    f"'{name}' failed on {self.app_server.host}",
                    app.output(name),
                )

        containers = DockerRuntime.parse_list(
            app.output("containers"), d.container_prefix
        )
        live_port = parse_upstream_port(snapshot.get(documents[0]) or "")
        live_container = None
        if live_port is not None:
            live_container = next(
                (c.name for c in containers if c.publishes(live_port)), None
            )
            if live_container is None:
                logger.warning(
                    "No container publishes live port %d; continuing", live_port
                )
        return CurrentDeployment(live_port, live_container, containers, snapshot)

    def provision(
        self, release: ContainerRelease, credential: RegistryCredential
    ) -> None:
        """Pull the image, start the release and record its assigned port.

        Raises:
            ProvisioningError: If the image cannot be pulled, the container
                does not start, or docker assigns no port
        """
        d = self.descriptor

        pull = RemoteCommandBatch(self.app_server, label="pull image")
        self.registry_auth.add_login(pull, credential, prefix=self.runtime.prefix)
        self.runtime.add_pull(pull, release.image_uri)
        if self.docker.network_name:
            self.runtime.add_ensure_network(pull, self.docker.network_name)
        pull.execute(self.executor)
        for name in pull.names:
            if not pull.succeeded(name):
                raise ProvisioningError(
                    f"'{name}' failed on {self.app_server.host}", pull.output(name)
                )
        self.reporter.info(f"Pulled {release.image_uri}")

        start = RemoteCommandBatch(self.app_server, label="start container")
        self.runtime.add_remove_if_exists(start, release.release_id)
        options = RunOptions.for_release(d, release.release_id, release.image_uri)
        self.runtime.add_run(start, options)
        self.runtime.add_port(start, release.release_id, self.docker.container_port)
        start.execute(self.executor)

        if not start.succeeded("run"):
            self._remove_container(release.release_id)
            raise ProvisioningError(
                f"Container {release.release_id} failed to start", start.output("run")
            )
        port = None
        if start.succeeded("port"):
            port = DockerRuntime.parse_port(start.output("port"))
        if port is None:
            self._remove_container(release.release_id)
            raise ProvisioningError(
                f"Docker assigned no host port to {release.release_id}",
                start.output("port"),
            )
        release.assigned_port = port

    def await_health(self, container: str) -> HealthState:
        """Poll docker until the container reports healthy.

        A container without a health check passes with a warning.

        Returns:
            The final state, ``HEALTHY`` or ``NONE``

        Raises:
            HealthCheckError: If the budget of polls is exhausted
        """
        settings = self.descriptor.health_check
        health = HealthState.UNKNOWN
        for attempt in range(1, settings.max_retries + 1):
            batch = RemoteCommandBatch(self.app_server, label="health check")
            self.runtime.add_health(batch, container)
            batch.execute(self.executor)
            health = DockerRuntime.parse_health(batch.output("health"))
            logger.debug(
                "Health of %s (%d/%d): %s",
                container,
                attempt,
                settings.max_retries,
                health.value,
            )
            if health == HealthState.HEALTHY:
                self.reporter.success(f"{container} is healthy")
                return health
            if health == HealthState.NONE:
                self.reporter.warning(
                    f"{container} has no health check; "
                    "continuing without a health verdict"
                )
                return health
            if attempt < settings.max_retries:
                self.sleep(settings.retry_interval)
        raise HealthCheckError(container, settings.max_retries, health.value)

    def revert_config(self, proxy: ProxyConfigManager, snapshot: ProxySnapshot) -> None:
        """Restore the documents captured by DetectCurrent. Never raises."""
        try:
            proxy.revert(snapshot)
        except Exception as e:  # noqa: BLE001
            logger.error("Could not restore nginx documents: %s", e)
            self.reporter.failure(f"Could not restore nginx documents: {e}")

    def rollback_new(
        self, release: ContainerRelease, *, keep_allowed: bool = True
    ) -> None:
        """Remove the new release; the previous one is left untouched.

        With auto rollback disabled an unhealthy release is kept running for
        inspection. ``keep_allowed=False`` removes it regardless, for
        failures after it was already judged healthy.
        """
        if keep_allowed and not self.descriptor.deployment.enable_auto_rollback:
            self.reporter.warning(
                f"Auto rollback is disabled; {release.release_id} was left "
                "running for inspection"
            )
            return
        self.reporter.info(f"Removing {release.release_id}")
        self._remove_container(release.release_id)
        release.mark_removed()

    def drain(self, containers: list[str]) -> None:
        """Stop and remove retired containers.

        Raises:
            DeploymentError: If any container could not be removed
        """
        timeout = self.descriptor.deployment.graceful_shutdown_timeout
        batch = RemoteCommandBatch(self.app_server, label="drain")
        for name in containers:
            self.runtime.add_stop_and_remove(batch, name, timeout)
        batch.execute(self.executor)
        failed = [name for name in batch.names if not batch.succeeded(name)]
        if failed:
            names = [name.removeprefix("retire_") for name in failed]
            raise DeploymentError("drain", f"Could not remove {', '.join(names)}")
        logger.info("Retired containers: %s", ", ".join(containers))

    # Helpers

    def _new_release(
        self, image_uri: str, existing: list[ContainerInfo]
    ) -> ContainerRelease:
        names = {c.name for c in existing}
        timestamp = int(time.time())
        release = ContainerRelease.create(
            self.descriptor.container_prefix, image_uri, timestamp
        )
        # Two deploys in the same second must not share a name
        while release.release_id in names:
            timestamp += 1
            release = ContainerRelease.create(
                self.descriptor.container_prefix, image_uri, timestamp
            )
        return release

    def _sync(self, *, force: bool) -> SyncOutcome:
        d = self.descriptor
        proxy = self.proxy()
        container = self._newest_container(running_only=True)

        ports = RemoteCommandBatch(self.app_server, label="sync (port)")
        self.runtime.add_port(ports, container.name, self.docker.container_port)
        documents = [upstream_path(d), site_path(d)]
        system = RemoteCommandBatch(d.system_server, label="sync (system)")
        proxy.add_snapshot(system, documents)
        self._run_parallel(ports, system)

        port = None
        if ports.succeeded("port"):
            port = DockerRuntime.parse_port(ports.output("port"))
        if port is None:
            raise DeploymentError(
                "sync",
                f"Docker publishes no port for {container.name}",
                ports.output("port"),
            )
        snapshot = proxy.read_snapshot(system, documents)
        outcome = SyncOutcome(
            environment=d.environment,
            container=container.name,
            container_port=port,
            upstream_port=parse_upstream_port(snapshot.get(documents[0]) or ""),
        )
        if outcome.in_sync and not force:
            self.reporter.info(f"nginx already routes to port {port}")
            return outcome

        self.reporter.step(f"Pointing nginx at {container.name} (port {port})")
        try:
            proxy.apply(render_container_artifact(d, port))
        except Exception:
            self.revert_config(proxy, snapshot)
            raise
        outcome.changed = True
        self.reporter.success(f"nginx now routes {d.domain} to port {port}")
        return outcome

    def _newest_container(self, *, running_only: bool) -> ContainerInfo:
        d = self.descriptor
        batch = RemoteCommandBatch(self.app_server, label="list containers")
        self.runtime.add_list(batch, d.container_prefix, all_states=not running_only)
        batch.execute(self.executor)
        containers = self._parse_containers(batch, "find_container")
        if not containers:
            state = "running " if running_only else ""
            raise DeploymentError(
                "find_container",
                f"No {state}container found for {d.environment} "
                f"(looking for {d.container_prefix}-*)",
            )
        return DockerRuntime.newest(containers)

    def _parse_containers(
        self, batch: RemoteCommandBatch, operation: str
    ) -> list[ContainerInfo]:
        if not batch.succeeded("containers"):
            raise DeploymentError(
                operation, "Could not list containers", batch.output("containers")
            )
        return DockerRuntime.parse_list(
            batch.output("containers"), self.descriptor.container_prefix
        )

    def _remove_container(self, name: str) -> None:
        batch = RemoteCommandBatch(self.app_server, label="remove container")
        self.runtime.add_remove(batch, name)
        try:
            batch.execute(self.executor)
        except Exception as e:  # noqa: BLE001
            logger.error("Could not remove container %s: %s", name, e)
            return
        if not batch.succeeded("remove"):
            logger.error(
                "Could not remove container %s: %s", name, batch.output("remove")
            )

    def _run_parallel(self, *batches: RemoteCommandBatch) -> None:
        with ThreadPoolExecutor(
            max_workers=len(batches), thread_name_prefix="axon-batch"
        ) as pool:
            wait_all(*(batch.execute_async(self.executor, pool) for batch in batches))


"""Atomic release switching for static sites served by nginx.

Each upload becomes an immutable directory under ``releases/``; a
``current`` symlink names the live one and nginx serves whatever it points
at::

    {deploy_path}/{environment}/
        current -> releases/20240101120000-1a2b3c4d
        releases/20240101120000-1a2b3c4d/
        shared/

The symlink is switched with ``mv -T`` of a freshly created link, which is a
single rename, so requests never see a half-switched site.
"""

from __future__ import annotations

import posixpath
import shlex
from typing import TYPE_CHECKING

from axon.config.defaults import (
    STATIC_ARCHIVE_DIR,
    STATIC_ARCHIVE_PREFIX,
    STATIC_ARCHIVE_SUFFIX,
)
from axon.deploy.deployers.base import BaseDeployer, LogKind, LogOptions
from axon.deploy.preflight import run_preflight
from axon.lib.errors import ConfigError, DeploymentError, ProxyConfigError
from axon.lib.logging_config import get_logger
from axon.models.environment import DeployMode
from axon.models.release import DeployOutcome, EnvironmentStatus, StaticRelease
from axon.proxy.nginx import (
    access_log_path,
    error_log_path,
    render_static_artifact,
    site_path,
)
from axon.remote.batch import RemoteCommandBatch

if TYPE_CHECKING:
    from collections.abc import Callable

    from axon.deploy.cleanup import CleanupSupervisor
    from axon.lib.ui.progress import ProgressReporter
    from axon.models.environment import EnvironmentDescriptor
    from axon.proxy.manager import ProxyConfigManager, ProxySnapshot
    from axon.remote.batch import CommandExecutor

logger = get_logger(__name__)


def parse_release_listing(output: str) -> list[str]:
    """Parse ``find -printf '%T@ %f\\n'`` output, newest release first."""
    entries: list[tuple[float, str]] = []
    for line in output.splitlines():
        mtime, _, name = line.strip().partition(" ")
        if not name:
            continue
        try:
            entries.append((float(mtime), name))
        except ValueError:
            continue
    entries.sort(key=lambda entry: (entry[0], entry[1]), reverse=True)
    return [name for _, name in entries]


def select_prunable(releases: list[str], keep: int, current: str | None) -> list[str]:
    """Pick releases to delete, keeping the ``keep`` newest and ``current``.

    Args:
        releases: Release ids, newest first
        keep: Number of releases to retain
        current: Release the ``current`` symlink points at
    """
    return [name for name in releases[keep:] if name != current]


class StaticDeployer(BaseDeployer):
    """Releases uploaded static bundles on the system server.

    Args:
        descriptor: Resolved static environment
        executor: Transport used to reach the system server
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
        super().__init__(descriptor, executor, reporter, supervisor_factory)
        if descriptor.mode != DeployMode.STATIC:
            raise ConfigError(
                "product.type", "StaticDeployer requires a static environment"
            )
        assert descriptor.static is not None  # nosec B101
        self.settings = descriptor.static
        self.endpoint = descriptor.system_server
        self.root = descriptor.static_root
        self.releases_dir = posixpath.join(self.root, "releases")
        self.shared_dir = posixpath.join(self.root, "shared")
        self.current_link = posixpath.join(self.root, "current")

    def release_path(self, release_id: str) -> str:
        return posixpath.join(self.releases_dir, release_id)

    def _batch(self, label: str) -> RemoteCommandBatch:
        return RemoteCommandBatch(self.endpoint, label=label)

    def _add_read_current(self, batch: RemoteCommandBatch) -> None:
        q = shlex.quote(self.current_link)
        batch.add("current", f"if [ -L {q} ]; then readlink {q}; fi")

    @staticmethod
    def _current_id(batch: RemoteCommandBatch) -> str | None:
        target = batch.output("current").strip()
        return posixpath.basename(target.rstrip("/")) if target else None

    # Public operations

    def deploy(self, *, force_unlock: bool = False) -> DeployOutcome:
        d = self.descriptor
        self.reporter.step(f"Pre-flight checks for {d.product} ({d.environment})")
        run_preflight(d, self.executor, self.reporter)

        with self.lock().hold(force=force_unlock):
            supervisor = self.supervisor_factory()
            try:
                outcome = self._release(supervisor)
            finally:
                errors = supervisor.join()
            outcome.cleanup_errors.extend(errors)
        for error in outcome.cleanup_errors:
            self.reporter.warning(f"Cleanup failed: {error}")
        return outcome

    def get_status(self) -> EnvironmentStatus:
        d = self.descriptor
        batch = self._batch("status")
        self._add_read_current(batch)
        batch.add("releases", self._listing_command())
        batch.add("site", f"test -f {shlex.quote(site_path(d))}")
        batch.execute(self.executor)
        return EnvironmentStatus(
            environment=d.environment,
            mode=d.mode,
            site_configured=batch.succeeded("site"),
            current_release=self._current_id(batch),
            releases=parse_release_listing(batch.output("releases")),
        )

    def destroy(self, *, force_unlock: bool = False) -> None:
        d = self.descriptor
        with self.lock().hold(force=force_unlock):
            self.reporter.step("Removing nginx configuration")
            proxy = self.proxy()
            proxy.remove_documents([site_path(d)])
            result = proxy.validate_active()
            if not result.passed:
                raise ProxyConfigError(
                    "nginx configuration is invalid after removal", result.diagnostics
                )
            proxy.reload()

            self.reporter.step(f"Removing {self.root}")
            batch = self._batch("destroy")
            batch.add("remove", f"{self.sudo}rm -rf {shlex.quote(self.root)}")
            batch.execute(self.executor)
            if not batch.succeeded("remove"):
                raise DeploymentError(
                    "delete", f"Failed to remove {self.root}", batch.output("remove")
                )

    def logs(self, write: Callable[[str], None], options: LogOptions) -> None:
        """Tail the site's nginx access and/or error log on the system server."""
        d = self.descriptor
        paths = []
        if options.kind in (LogKind.ACCESS, LogKind.BOTH):
            paths.append(access_log_path(d))
        if options.kind in (LogKind.ERROR, LogKind.BOTH):
            paths.append(error_log_path(d))
        if options.since:
            self.reporter.warning("--since only applies to container logs; ignored")
        args = ["-n", str(options.lines)]
        if options.follow:
            args.append("-F")
            self.reporter.info(f"Following {', '.join(paths)} (Ctrl+C to stop)")
        command = f"{self.sudo}tail {shlex.join([*args, *paths])}"
        exit_code = self.executor.stream(d.system_server, command, write)
        if exit_code != 0:
            raise DeploymentError("logs", f"tail exited with {exit_code}")

    # States

    def _release(self, supervisor: CleanupSupervisor) -> DeployOutcome:
        d = self.descriptor
        proxy = self.proxy()
        site_doc = site_path(d)

        self.reporter.step("Locating uploaded bundle")
        archive, snapshot, previous = self.locate_archive(proxy, [site_doc])
        release_id = self._release_id(archive)
        release = StaticRelease(release_id, self.release_path(release_id))
        if previous == release.release_id:
            raise DeploymentError(
                "locate_archive",
                f"Release {release.release_id} is already live; "
                "push a new bundle before deploying",
            )
        self.reporter.info(f"Bundle {archive}")
        self.reporter.info(
            f"Current release: {previous}" if previous else "No current release"
        )

        self.reporter.step(f"Preparing release {release.release_id}")
        self.prepare_release(archive, release)

        self.reporter.step("Switching current release")
        try:
            self.switch_symlink(release.path)
        except Exception:
            self._remove_release(release.path)
            raise
        try:
            proxy.apply(render_static_artifact(d, self.current_link))
        except Exception:
            reverted = self.revert_symlink(previous)
            self._revert_config(proxy, snapshot)
            # Still served through current unless the revert succeeded
            if reverted:
                self._remove_release(release.path)
            raise
        self.reporter.success(f"{self.current_link} -> {release.path}")

        supervisor.submit("prune", self.prune, release.release_id)
        return DeployOutcome(
            mode=d.mode,
            environment=d.environment,
            release_id=release.release_id,
            previous_release_id=previous,
            release_path=release.path,
        )

    def locate_archive(
        self, proxy: ProxyConfigManager, documents: list[str]
    ) -> tuple[str, ProxySnapshot, str | None]:
        """Find the newest uploaded bundle and read the current state.

        Returns:
            Archive path, site document snapshot, current release id

        Raises:
            DeploymentError: If no bundle has been uploaded
        """
        pattern = f"{STATIC_ARCHIVE_PREFIX}*{STATIC_ARCHIVE_SUFFIX}"
        batch = self._batch("locate bundle")
        batch.add(
            "archive",
            f"ls -t {shlex.quote(STATIC_ARCHIVE_DIR)}/{pattern} 2>/dev/null "
            "| head -n 1",
        )
        self._add_read_current(batch)
        proxy.add_snapshot(batch, documents)
        batch.execute(self.executor)

        archive = batch.output("archive").strip()
        if not archive:
            raise DeploymentError(
                "locate_archive",
                f"No bundle found in {STATIC_ARCHIVE_DIR} on {self.endpoint.host}. "
                f"Run 'axon push {self.descriptor.environment}' first.",
            )
        snapshot = proxy.read_snapshot(batch, documents)
        return archive, snapshot, self._current_id(batch)

    def _release_id(self, archive: str) -> str:
        try:
            return StaticRelease.id_from_archive(
                archive, STATIC_ARCHIVE_PREFIX, STATIC_ARCHIVE_SUFFIX
            )
        except ValueError as e:
            raise DeploymentError("locate_archive", str(e)) from e

    def prepare_release(self, archive: str, release: StaticRelease) -> None:
        """Extract the bundle, link shared paths and check required files.

        The release directory is removed again if any step fails.

        Raises:
            DeploymentError: If extraction, linking or validation fails
        """
        s = self.sudo
        q_release = shlex.quote(release.path)
        batch = self._batch("prepare release")
        batch.add(
            "extract",
            f"{s}mkdir -p {q_release} {shlex.quote(self.shared_dir)} && "
            f"{s}tar -xzf {shlex.quote(archive)} -C {q_release}",
        )
        for index, shared in enumerate(self.settings.shared_dirs):
            target = shlex.quote(posixpath.join(self.shared_dir, shared))
            link = shlex.quote(posixpath.join(release.path, shared))
            batch.add(
                f"shared_{index}",
                f"{s}mkdir -p {target} && {s}rm -rf {link} && "
                f"{s}ln -s {target} {link}",
            )
        user = shlex.quote(f"{self.settings.deploy_user}:{self.settings.deploy_user}")
        batch.add(
            "permissions",
            f"{s}chown -R {user} {q_release} && {s}chmod -R 755 {q_release}",
        )
        for index, required in enumerate(self.settings.required_files):
            path = shlex.quote(posixpath.join(release.path, required))
            batch.add(f"required_{index}", f"test -f {path}")
        batch.execute(self.executor)

        failure: tuple[str, str] | None = None
        if not batch.succeeded("extract"):
            failure = ("Failed to extract bundle", batch.output("extract"))
        else:
            for index, shared in enumerate(self.settings.shared_dirs):
                if not batch.succeeded(f"shared_{index}"):
                    failure = (
                        f"Failed to link shared directory {shared}",
                        batch.output(f"shared_{index}"),
                    )
                    break
        if failure is None:
            missing = [
                required
                for index, required in enumerate(self.settings.required_files)
                if not batch.succeeded(f"required_{index}")
            ]
            if missing:
                failure = (f"Required files missing: {', '.join(missing)}", "")
        if failure is not None:
            self._remove_release(release.path)
            raise DeploymentError("prepare_release", failure[0], failure[1] or None)

        if not batch.succeeded("permissions"):
            self.reporter.warning(
                f"Could not set ownership to {self.settings.deploy_user}; continuing"
            )
        self.reporter.info(f"Extracted to {release.path}")

    def switch_symlink(self, target: str) -> None:
        """Point ``current`` at ``target`` with a single rename.

        Raises:
            DeploymentError: If the symlink cannot be switched
        """
        batch = self._batch("switch current")
        batch.add("switch", self._switch_command(target))
        batch.execute(self.executor)
        if not batch.succeeded("switch"):
            raise DeploymentError(
                "switch", "Failed to switch the current symlink", batch.output("switch")
            )

    def _switch_command(self, target: str) -> str:
        s = self.sudo
        q_link = shlex.quote(self.current_link)
        tmp = shlex.quote(f"{self.current_link}.tmp.") + "$$"
        return (
            f"{s}ln -s {shlex.quote(target)} {tmp} && {s}mv -Tf {tmp} {q_link} "
            f"|| {{ {s}rm -f {tmp}; false; }}"
        )

    def revert_symlink(self, previous: str | None) -> bool:
        """Point ``current`` back at the previous release. Never raises.

        Returns:
            Whether ``current`` no longer points at the failed release
        """
        batch = self._batch("revert current")
        if previous:
            batch.add("revert", self._switch_command(self.release_path(previous)))
        else:
            batch.add(
                "revert", f"{self.sudo}rm -f {shlex.quote(self.current_link)}"
            )
        try:
            batch.execute(self.executor)
        except Exception as e:  # noqa: BLE001
            logger.error("Could not restore the current symlink: %s", e)
            self.reporter.failure(f"Could not restore the current symlink: {e}")
            return False
        if not batch.succeeded("revert"):
            self.reporter.failure(
                f"Could not restore the current symlink: {batch.output('revert')}"
            )
            return False
        self.reporter.info(
            f"Restored current release {previous}" if previous else "Removed current"
        )
        return True

    def _revert_config(
        self, proxy: ProxyConfigManager, snapshot: ProxySnapshot
    ) -> None:
        try:
            proxy.revert(snapshot)
        except Exception as e:  # noqa: BLE001
            logger.error("Could not restore nginx documents: %s", e)
            self.reporter.failure(f"Could not restore nginx documents: {e}")

    def _listing_command(self) -> str:
        q = shlex.quote(self.releases_dir)
        return (
            f"[ ! -d {q} ] || "
            f"find {q} -mindepth 1 -maxdepth 1 -type d -printf '%T@ %f\\n'"
        )

    def prune(self, current: str) -> list[str]:
        """Remove old releases, keeping ``keep_releases`` and ``current``.

        Returns:
            Release ids that were removed

        Raises:
            DeploymentError: If the listing or a removal fails
        """
        listing = self._batch("list releases")
        listing.add("releases", self._listing_command())
        listing.execute(self.executor)
        if not listing.succeeded("releases"):
            raise DeploymentError(
                "prune", "Could not list releases", listing.output("releases")
            )
        releases = parse_release_listing(listing.output("releases"))
        doomed = select_prunable(releases, self.settings.keep_releases, current)
        if not doomed:
            return []

        batch = self._batch("prune releases")
        for index, release_id in enumerate(doomed):
            path = shlex.quote(self.release_path(release_id))
            batch.add(f"prune_{index}", f"{self.sudo}rm -rf {path}")
        batch.execute(self.executor)
        failed = [
            release_id
            for index, release_id in enumerate(doomed)
            if not batch.succeeded(f"prune_{index}")
        ]
        if failed:
            raise DeploymentError("prune", f"Could not remove {', '.join(failed)}")
        logger.info("Pruned releases: %s", ", ".join(doomed))
        return doomed

    def _remove_release(self, path: str) -> None:
        batch = self._batch("remove release")
        batch.add("remove", f"{self.sudo}rm -rf {shlex.quote(path)}")
        try:
            batch.execute(self.executor)
        except Exception as e:  # noqa: BLE001
            logger.warning("Could not remove %s: %s", path, e)

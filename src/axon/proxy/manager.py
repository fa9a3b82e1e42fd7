"""Stage, validate, commit and reload nginx documents on the system server.

New documents never touch the active axon directory until nginx has
accepted them. ``stage`` copies the nginx configuration directory and the
axon directory into a scratch directory, writes the new documents there and
points the staged main config at the staged axon directory. ``validate``
runs ``nginx -t -c`` against that copy. Only ``commit`` writes into the
active directory, one rename per document.
"""

from __future__ import annotations

import posixpath
import shlex
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from axon.lib.errors import ProxyConfigError
from axon.lib.logging_config import get_logger
from axon.remote.batch import RemoteCommandBatch

if TYPE_CHECKING:
    from axon.models.environment import EnvironmentDescriptor
    from axon.proxy.nginx import ProxyConfigArtifact
    from axon.remote.batch import CommandExecutor

logger = get_logger(__name__)

STAGE_ROOT = "/tmp"  # nosec B108
COMMIT_SUFFIX = ".axon-tmp"
# Exit code used by snapshot commands for documents that do not exist
ABSENT_EXIT_CODE = 3


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of ``nginx -t``.

    Attributes:
        passed: nginx reported the configuration as successful
        diagnostics: nginx output, shown to the user on failure
    """

    passed: bool
    diagnostics: str


@dataclass
class ProxySnapshot:
    """Active document contents captured before a deploy.

    ``None`` marks a document that did not exist.
    """

    documents: dict[str, str | None] = field(default_factory=dict)

    def get(self, path: str) -> str | None:
        return self.documents.get(path)


@dataclass
class StagedConfig:
    """A complete nginx configuration copy with new documents in place.

    Attributes:
        stage_dir: Scratch directory on the system server
        main_config: Staged copy of the main nginx config
        staged_paths: Active document path to its staged copy
        artifact: The documents being staged
        validation: Result of ``validate``, once run
    """

    stage_dir: str
    main_config: str
    staged_paths: dict[str, str]
    artifact: ProxyConfigArtifact
    validation: ValidationResult | None = None


class ProxyConfigManager:
    """Manages one environment's nginx documents on the system server.

    Args:
        descriptor: Environment whose documents are managed
        executor: Transport used to reach the system server
    """

    def __init__(
        self, descriptor: EnvironmentDescriptor, executor: CommandExecutor
    ) -> None:
        self.descriptor = descriptor
        self.executor = executor
        self.endpoint = descriptor.system_server
        self.paths = descriptor.nginx.paths
        self.sudo = "sudo " if self.endpoint.uses_sudo else ""
        self._committed: set[str] = set()

    def _batch(self, label: str) -> RemoteCommandBatch:
        return RemoteCommandBatch(self.endpoint, label=label)

    # Snapshot

    def add_snapshot(self, batch: RemoteCommandBatch, paths: list[str]) -> None:
        """Add commands reading the given documents to a batch."""
        for index, path in enumerate(paths):
            q = shlex.quote(path)
            batch.add(
                f"snapshot_{index}",
                f"if [ -f {q} ]; then {self.sudo}cat {q}; "
                f"else (exit {ABSENT_EXIT_CODE}); fi",
            )

    def read_snapshot(
        self, batch: RemoteCommandBatch, paths: list[str]
    ) -> ProxySnapshot:
        """Collect the documents read by :meth:`add_snapshot`.

        Raises:
            ProxyConfigError: If an existing document could not be read
        """
        snapshot = ProxySnapshot()
        for index, path in enumerate(paths):
            result = batch.result(f"snapshot_{index}")
            if result.exit_code == ABSENT_EXIT_CODE:
                snapshot.documents[path] = None
            elif result.succeeded:
                snapshot.documents[path] = result.output
            else:
                raise ProxyConfigError(
                    f"Cannot read {path} on {self.endpoint.host}", result.output
                )
        return snapshot

    def snapshot(self, paths: list[str]) -> ProxySnapshot:
        """Read the current contents of the given documents."""
        batch = self._batch("proxy snapshot")
        self.add_snapshot(batch, paths)
        batch.execute(self.executor)
        return self.read_snapshot(batch, paths)

    # Stage / validate / commit

    def stage(self, artifact: ProxyConfigArtifact) -> StagedConfig:
        """Copy the nginx configuration aside and write the new documents.

        Raises:
            ProxyConfigError: If the staging copy cannot be created
        """
        d = self.descriptor
        suffix = uuid.uuid4().hex[:8]
        stage_dir = posixpath.join(
            STAGE_ROOT, f"axon-stage-{d.product}-{d.environment}-{suffix}"
        )
        nginx_copy = posixpath.join(stage_dir, "nginx")
        axon_copy = posixpath.join(stage_dir, "axon")
        main_config = posixpath.join(nginx_copy, posixpath.basename(self.paths.config))
        s = self.sudo
        q_stage, q_nginx, q_axon = (
            shlex.quote(stage_dir),
            shlex.quote(nginx_copy),
            shlex.quote(axon_copy),
        )
        q_active_axon = shlex.quote(self.paths.axon_dir)

        batch = self._batch("proxy stage")
        batch.add(
            "copy",
            f"{s}rm -rf {q_stage} && {s}mkdir -p {q_nginx} {q_axon} && "
            f"{s}cp -a {shlex.quote(self.paths.config_dir)}/. {q_nginx}/ && "
            f"{{ [ ! -d {q_active_axon} ] || {s}cp -a {q_active_axon}/. {q_axon}/; }}",
        )

        staged_paths: dict[str, str] = {}
        for doc in artifact.documents:
            relative = posixpath.relpath(doc.path, self.paths.axon_dir)
            staged = posixpath.join(axon_copy, relative)
            staged_paths[doc.path] = staged
            batch.add(
                f"write_{doc.kind}",
                f"{s}mkdir -p {shlex.quote(posixpath.dirname(staged))} && "
                f"{s}tee {shlex.quote(staged)} >/dev/null",
                stdin=doc.content,
            )

        expression = f"s#{self.paths.axon_dir.rstrip('/')}/#{axon_copy}/#g"
        batch.add(
            "rewrite_includes",
            f"{s}sed -i {shlex.quote(expression)} {shlex.quote(main_config)}",
        )
        batch.execute(self.executor)

        for name in batch.names:
            if not batch.succeeded(name):
                self.discard(stage_dir)
                raise ProxyConfigError(
                    f"Failed to stage nginx configuration ({name})",
                    batch.output(name),
                )

        logger.debug("Staged %d documents in %s", len(staged_paths), stage_dir)
        return StagedConfig(
            stage_dir=stage_dir,
            main_config=main_config,
            staged_paths=staged_paths,
            artifact=artifact,
        )

    def validate(self, staged: StagedConfig) -> ValidationResult:
        """Run ``nginx -t`` against the staged configuration."""
        batch = self._batch("proxy validate")
        main_config = shlex.quote(staged.main_config)
        batch.add("nginx_test", f"{self.sudo}nginx -t -c {main_config}")
        batch.execute(self.executor)
        result = self._validation_result(batch)
        staged.validation = result
        logger.debug("Staged nginx config valid: %s", result.passed)
        return result

    def validate_active(self) -> ValidationResult:
        """Run ``nginx -t`` against the active configuration."""
        batch = self._batch("proxy validate active")
        batch.add("nginx_test", f"{self.sudo}nginx -t")
        batch.execute(self.executor)
        return self._validation_result(batch)

    @staticmethod
    def _validation_result(batch: RemoteCommandBatch) -> ValidationResult:
        result = batch.result("nginx_test")
        passed = result.succeeded and "successful" in result.output
        return ValidationResult(passed=passed, diagnostics=result.output)

    def commit(self, staged: StagedConfig) -> None:
        """Move validated documents into the active axon directory.

        Raises:
            ProxyConfigError: If the staged config was not validated
                successfully, or a document could not be installed
        """
        if staged.validation is None or not staged.validation.passed:
            raise ProxyConfigError(
                "Refusing to commit nginx configuration that has not passed validation"
            )
        s = self.sudo
        batch = self._batch("proxy commit")
        batch.add(
            "ensure_dirs",
            f"{s}mkdir -p {shlex.quote(self.paths.upstreams_dir)} "
            f"{shlex.quote(self.paths.sites_dir)}",
        )
        for doc in staged.artifact.documents:
            tmp = shlex.quote(doc.path + COMMIT_SUFFIX)
            batch.add(
                f"install_{doc.kind}",
                f"{s}cp {shlex.quote(staged.staged_paths[doc.path])} {tmp} && "
                f"{s}mv -f {tmp} {shlex.quote(doc.path)}",
            )
        batch.execute(self.executor)

        for doc in staged.artifact.documents:
            if batch.succeeded(f"install_{doc.kind}"):
                self._committed.add(doc.path)
        for name in batch.names:
            if not batch.succeeded(name):
                raise ProxyConfigError(
                    f"Failed to install nginx configuration ({name})",
                    batch.output(name),
                )

    def reload(self) -> None:
        """Reload nginx so the committed documents take effect.

        Raises:
            ProxyConfigError: If nginx refuses to reload
        """
        batch = self._batch("proxy reload")
        batch.add("reload", f"{self.sudo}nginx -s reload")
        batch.execute(self.executor)
        if not batch.succeeded("reload"):
            raise ProxyConfigError("nginx reload failed", batch.output("reload"))

    def apply(self, artifact: ProxyConfigArtifact) -> None:
        """Stage, validate, commit and reload in order.

        The active configuration is untouched when validation fails.

        Raises:
            ProxyConfigError: On any failure, carrying nginx's diagnostics
        """
        staged = self.stage(artifact)
        try:
            result = self.validate(staged)
            if not result.passed:
                raise ProxyConfigError(
                    "nginx rejected the new configuration", result.diagnostics
                )
            self.commit(staged)
            self.reload()
        finally:
            self.discard(staged.stage_dir)

    # Revert / removal

    def revert(self, snapshot: ProxySnapshot) -> None:
        """Restore committed documents to their snapshot contents.

        Documents that did not exist before the deploy are removed. Only
        documents committed by this manager are touched.

        Raises:
            ProxyConfigError: If a document could not be restored
        """
        if not self._committed:
            return
        s = self.sudo
        batch = self._batch("proxy revert")
        paths = sorted(self._committed)
        for index, path in enumerate(paths):
            q = shlex.quote(path)
            previous = snapshot.get(path)
            if previous is None:
                batch.add(f"revert_{index}", f"{s}rm -f {q}")
            else:
                tmp = shlex.quote(path + COMMIT_SUFFIX)
                batch.add(
                    f"revert_{index}",
                    f"{s}tee {tmp} >/dev/null && {s}mv -f {tmp} {q}",
                    stdin=previous,
                )
        batch.execute(self.executor)

        failed = [
            paths[i] for i in range(len(paths)) if not batch.succeeded(f"revert_{i}")
        ]
        if failed:
            raise ProxyConfigError(f"Failed to restore {', '.join(failed)}")
        self._committed.clear()
        logger.info("Restored previous nginx documents: %s", ", ".join(paths))

    def remove_documents(self, paths: list[str]) -> None:
        """Delete documents from the active axon directory."""
        batch = self._batch("proxy remove")
        batch.add(
            "remove",
            f"{self.sudo}rm -f {' '.join(shlex.quote(p) for p in paths)}",
        )
        batch.execute(self.executor)
        if not batch.succeeded("remove"):
            raise ProxyConfigError(
                "Failed to remove nginx documents", batch.output("remove")
            )

    def discard(self, stage_dir: str) -> None:
        """Remove a staging directory. Failures are only logged."""
        batch = self._batch("proxy discard")
        batch.add("discard", f"{self.sudo}rm -rf {shlex.quote(stage_dir)}")
        try:
            batch.execute(self.executor)
        except Exception as e:  # noqa: BLE001
            logger.warning("Could not remove staging directory %s: %s", stage_dir, e)
            return
        if not batch.succeeded("discard"):
            logger.warning("Could not remove staging directory %s", stage_dir)

"""Static bundle packaging and upload.

A bundle is a gzipped tarball of the build output directory named
``static-build-{YYYYmmddHHMMSS}-{sha8}.tar.gz``; the name doubles as the
release id on the system server.
"""

from __future__ import annotations

import hashlib
import posixpath
import shutil
import subprocess  # nosec B404
import tarfile
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from axon.config.defaults import (
    STATIC_ARCHIVE_DIR,
    STATIC_ARCHIVE_PREFIX,
    STATIC_ARCHIVE_SUFFIX,
)
from axon.lib.errors import ConfigError, DeploymentError
from axon.lib.logging_config import get_logger

if TYPE_CHECKING:
    from axon.models.environment import ServerEndpoint
    from axon.remote.batch import CommandExecutor

logger = get_logger(__name__)


def run_build_command(command: str, cwd: Path) -> None:
    """Run the product's static build command in ``cwd``.

    Raises:
        DeploymentError: If the command exits non-zero
    """
    logger.info("Running build command: %s", command)
    result = subprocess.run(  # noqa: S602  # nosec B602
        command, shell=True, cwd=cwd, check=False
    )
    if result.returncode != 0:
        raise DeploymentError(
            "build", f"Build command failed with exit code {result.returncode}"
        )


def check_build_output(build_dir: Path, required_files: list[str]) -> None:
    """Verify the build output exists and contains the required files.

    Raises:
        ConfigError: If the directory or a required file is missing
    """
    if not build_dir.is_dir():
        raise ConfigError(
            "environments.build_output_dir",
            f"Build output directory not found: {build_dir}",
        )
    missing = [name for name in required_files if not (build_dir / name).is_file()]
    if missing:
        raise ConfigError(
            "static.required_files",
            f"Missing from {build_dir}: {', '.join(missing)}",
        )


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def package_static_bundle(
    build_dir: Path,
    output_dir: Path | None = None,
    required_files: list[str] | None = None,
    now: datetime | None = None,
) -> Path:
    """Create a bundle from the contents of ``build_dir``.

    Args:
        build_dir: Directory whose contents become the release root
        output_dir: Where to write the bundle (default: system temp dir)
        required_files: Files that must exist in ``build_dir``
        now: Timestamp used in the release id

    Returns:
        Path of the bundle

    Raises:
        ConfigError: If the build output is missing or incomplete
    """
    check_build_output(build_dir, required_files or [])
    target_dir = output_dir or Path(tempfile.gettempdir())
    target_dir.mkdir(parents=True, exist_ok=True)
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M%S")

    with tempfile.NamedTemporaryFile(
        dir=target_dir, suffix=STATIC_ARCHIVE_SUFFIX, delete=False
    ) as handle:
        scratch = Path(handle.name)
    try:
        with tarfile.open(scratch, "w:gz") as archive:
            for entry in sorted(build_dir.iterdir()):
                archive.add(entry, arcname=entry.name)
        release_id = f"{stamp}-{_sha256(scratch)[:8]}"
        name = f"{STATIC_ARCHIVE_PREFIX}{release_id}{STATIC_ARCHIVE_SUFFIX}"
        bundle = target_dir / name
        shutil.move(scratch, bundle)
    except BaseException:
        scratch.unlink(missing_ok=True)
        raise
    logger.debug("Packaged %s into %s", build_dir, bundle)
    return bundle


def upload_static_bundle(
    bundle: Path, endpoint: ServerEndpoint, executor: CommandExecutor
) -> str:
    """Upload a bundle to the system server's bundle directory.

    Returns:
        Remote path of the uploaded bundle
    """
    remote_path = posixpath.join(STATIC_ARCHIVE_DIR, bundle.name)
    executor.upload(endpoint, bundle.read_bytes(), remote_path)
    logger.info("Uploaded %s to %s:%s", bundle.name, endpoint.host, remote_path)
    return remote_path

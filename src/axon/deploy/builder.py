"""Local image build and registry push for container products.

Images are built and pushed from the control machine through the Docker
SDK; the application server only ever pulls them.
"""

from __future__ import annotations

import subprocess  # nosec B404
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import docker
from docker.errors import APIError, BuildError, DockerException

from axon.lib.errors import DeploymentError, DockerNotAvailableError
from axon.lib.logging_config import get_logger
from axon.models.project import TagStrategy

if TYPE_CHECKING:
    from docker.models.images import Image

    from axon.models.registry import RegistryCredential

logger = get_logger(__name__)


@dataclass
class BuildResult:
    """Result of an image build.

    Attributes:
        image_id: The SHA256 ID of the built image
        image_name: Repository the image was tagged into
        tags: Tags applied to the image, primary tag first
        log_lines: Build log output lines
    """

    image_id: str
    image_name: str
    tags: list[str]
    log_lines: list[str] = field(default_factory=list)

    @property
    def full_names(self) -> list[str]:
        return [f"{self.image_name}:{tag}" for tag in self.tags]

    @classmethod
    def from_image(
        cls,
        image: Image,
        image_name: str,
        tags: list[str],
        log_lines: list[str] | None = None,
    ) -> BuildResult:
        return cls(
            image_id=image.id or "",
            image_name=image_name,
            tags=tags,
            log_lines=log_lines or [],
        )


def _git(*args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(  # noqa: S603  # nosec B603 B607
        ["git", *args],  # noqa: S607
        capture_output=True,
        text=True,
    )


def generate_tag(strategy: TagStrategy, custom_tag: str | None = None) -> str:
    """Generate an image tag based on the specified strategy.

    Args:
        strategy: Tag generation strategy (git_sha, git_tag, latest, custom)
        custom_tag: Custom tag value when strategy is CUSTOM

    Returns:
        Generated tag string

    Raises:
        ValueError: If custom strategy is used without providing custom_tag
        DeploymentError: If git commands fail (not in repo, no tags, etc.)

    Example:
        >>> generate_tag(TagStrategy.CUSTOM, custom_tag="v1.0.0")
        'v1.0.0'
    """
    if strategy == TagStrategy.LATEST:
        return "latest"

    if strategy == TagStrategy.CUSTOM:
        if not custom_tag:
            raise ValueError("custom_tag is required when using CUSTOM strategy")
        return custom_tag

    if strategy == TagStrategy.GIT_SHA:
        result = _git("rev-parse", "--short", "HEAD")
        if result.returncode != 0:
            raise DeploymentError(
                operation="tag_generation",
                message="Failed to get git SHA: not a git repository",
            )
        return result.stdout.strip()

    if strategy == TagStrategy.GIT_TAG:
        result = _git("describe", "--tags", "--abbrev=0")
        if result.returncode != 0:
            raise DeploymentError(
                operation="tag_generation",
                message="No git tags found. Create a tag first: git tag v1.0.0",
            )
        return result.stdout.strip()

    raise ValueError(f"Unknown tag strategy: {strategy}")


def get_oci_labels(
    product: str,
    version: str,
    source_sha: str | None = None,
) -> dict[str, str]:
    """Generate OCI image labels.

    Example:
        >>> labels = get_oci_labels("shop", "production")
        >>> labels["org.opencontainers.image.title"]
        'shop'
    """
    labels = {
        "org.opencontainers.image.title": product,
        "org.opencontainers.image.version": version,
        "org.opencontainers.image.created": datetime.now(timezone.utc).isoformat(),
        "com.axon.managed": "true",
    }
    if source_sha:
        labels["org.opencontainers.image.revision"] = source_sha[:7]
    return labels


def _connect() -> docker.DockerClient:
    try:
        return docker.from_env()  # type: ignore[attr-defined]
    except DockerException as e:
        raise DockerNotAvailableError(operation="init") from e


class ContainerBuilder:
    """Builds product images with the local Docker daemon.

    Raises:
        DockerNotAvailableError: If the Docker daemon is not available
    """

    def __init__(self) -> None:
        self.client = _connect()

    def build(
        self,
        build_context: str,
        image_name: str,
        tags: list[str],
        labels: dict[str, str] | None = None,
        dockerfile: str = "Dockerfile",
        platform: str = "linux/amd64",
        **build_kwargs: Any,
    ) -> BuildResult:
        """Build an image and apply every tag in ``tags``.

        Raises:
            DeploymentError: If the context is missing or the build fails
        """
        context_path = Path(build_context)
        if not context_path.is_dir():
            raise DeploymentError(
                operation="build",
                message=f"Build context not found: {build_context}",
            )
        if not (context_path / dockerfile).is_file():
            raise DeploymentError(
                operation="build",
                message=f"Dockerfile not found: {context_path / dockerfile}",
            )
        if not tags:
            raise ValueError("At least one tag is required")

        primary = f"{image_name}:{tags[0]}"
        try:
            image, build_logs = self.client.images.build(
                path=str(context_path),
                tag=primary,
                dockerfile=dockerfile,
                labels=labels or {},
                rm=True,
                platform=platform,
                pull=True,
                **build_kwargs,
            )
            log_lines: list[str] = []
            for log_entry in build_logs:
                if isinstance(log_entry, dict):
                    if "stream" in log_entry:
                        stream_val = log_entry["stream"]
                        if isinstance(stream_val, str):
                            log_lines.append(stream_val.rstrip("\n"))
                    elif "error" in log_entry:
                        log_lines.append(f"ERROR: {log_entry['error']}")
            for tag in tags[1:]:
                image.tag(image_name, tag=tag)
        except BuildError as e:
            raise DeploymentError(
                operation="build",
                message=f"Docker build failed: {e.msg}",
            ) from e
        except DockerException as e:
            raise DeploymentError(
                operation="build",
                message=f"Docker error during build: {e}",
            ) from e

        logger.debug("Built %s (%s)", primary, image.id)
        return BuildResult.from_image(image, image_name, tags, log_lines)


class ImagePusher:
    """Pushes built images to the configured registry.

    Raises:
        DockerNotAvailableError: If the Docker daemon is not available
    """

    def __init__(self) -> None:
        self.client = _connect()

    def push(
        self, image_name: str, tag: str, credential: RegistryCredential
    ) -> list[str]:
        """Push ``image_name:tag`` with the resolved registry credential.

        Returns:
            Push status lines reported by the daemon

        Raises:
            DeploymentError: If the image is missing locally or the push fails
        """
        full_name = f"{image_name}:{tag}"
        try:
            self.client.images.get(full_name)
        except DockerException as e:
            raise DeploymentError(
                operation="push",
                message=f"Image {full_name} not found locally. Run 'axon build' first.",
            ) from e

        auth_config = {"username": credential.username, "password": credential.secret}
        lines: list[str] = []
        try:
            for entry in self.client.images.push(
                image_name, tag=tag, auth_config=auth_config, stream=True, decode=True
            ):
                if "error" in entry:
                    raise DeploymentError(
                        operation="push",
                        message=f"Push of {full_name} failed: {entry['error']}",
                    )
                if "status" in entry:
                    lines.append(str(entry["status"]))
        except APIError as e:
            raise DeploymentError(
                operation="push",
                message=f"Docker error during push: {e}",
            ) from e
        logger.debug("Pushed %s", full_name)
        return lines

"""Unit tests for local image builds and pushes."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, Mock, patch

import pytest
from docker.errors import APIError, BuildError, DockerException, ImageNotFound

from axon.deploy.builder import (
    BuildResult,
    ContainerBuilder,
    ImagePusher,
    generate_tag,
    get_oci_labels,
)
from axon.lib.errors import DeploymentError, DockerNotAvailableError
from axon.models.registry import RegistryCredential, RegistryProvider
from axon.models.project import TagStrategy

CREDENTIAL = RegistryCredential(
    provider=RegistryProvider.DOCKER_HUB,
    server="docker.io",
    username="acme",
    secret="tok",
)


@pytest.fixture
def build_context(temp_dir: Path) -> Path:
    (temp_dir / "Dockerfile").write_text("FROM alpine:3.19\n")
    return temp_dir


class TestGenerateTag:
    """Tests for tag generation based on strategy."""

    def test_git_sha(self) -> None:
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = Mock(returncode=0, stdout="abc1234\n")

            tag = generate_tag(TagStrategy.GIT_SHA)

        assert tag == "abc1234"
        assert mock_run.call_args[0][0] == ["git", "rev-parse", "--short", "HEAD"]

    def test_git_tag(self) -> None:
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = Mock(returncode=0, stdout="v1.2.3\n")

            assert generate_tag(TagStrategy.GIT_TAG) == "v1.2.3"
            assert "describe" in mock_run.call_args[0][0]

    def test_git_failure(self) -> None:
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = Mock(returncode=128, stdout="")

            with pytest.raises(DeploymentError, match="not a git repository"):
                generate_tag(TagStrategy.GIT_SHA)

    def test_latest_and_custom(self) -> None:
        assert generate_tag(TagStrategy.LATEST) == "latest"
        assert generate_tag(TagStrategy.CUSTOM, custom_tag="rc1") == "rc1"

    def test_custom_requires_value(self) -> None:
        with pytest.raises(ValueError):
            generate_tag(TagStrategy.CUSTOM)


class TestOciLabels:
    def test_labels(self) -> None:
        labels = get_oci_labels("shop", "v1", source_sha="abcdef123456")

        assert labels["org.opencontainers.image.title"] == "shop"
        assert labels["org.opencontainers.image.version"] == "v1"
        assert labels["org.opencontainers.image.revision"] == "abcdef1"
        assert labels["com.axon.managed"] == "true"


class TestContainerBuilder:
    """Tests for building images with the Docker SDK."""

    def test_docker_unavailable(self) -> None:
        with patch("docker.from_env", side_effect=DockerException("no socket")):
            with pytest.raises(DockerNotAvailableError):
                ContainerBuilder()

    @patch("docker.from_env")
    def test_build_applies_all_tags(
        self, mock_from_env: MagicMock, build_context
    ) -> None:
        image = MagicMock(id="sha256:1234")
        client = mock_from_env.return_value
        client.images.build.return_value = (
            image,
            [{"stream": "Step 1/1 : FROM alpine\n"}, {"aux": {}}],
        )

        result = ContainerBuilder().build(
            build_context=str(build_context),
            image_name="acme/shop",
            tags=["stable", "abc1234"],
            nocache=True,
        )

        kwargs = client.images.build.call_args.kwargs
        assert kwargs["tag"] == "acme/shop:stable"
        assert kwargs["nocache"] is True
        assert kwargs["platform"] == "linux/amd64"
        image.tag.assert_called_once_with("acme/shop", tag="abc1234")
        assert result.full_names == ["acme/shop:stable", "acme/shop:abc1234"]
        assert result.log_lines == ["Step 1/1 : FROM alpine"]

    @patch("docker.from_env")
    def test_missing_dockerfile(self, mock_from_env: MagicMock, temp_dir: Path) -> None:
        with pytest.raises(DeploymentError, match="Dockerfile not found"):
            ContainerBuilder().build(str(temp_dir), "acme/shop", ["v1"])

    @patch("docker.from_env")
    def test_build_error(self, mock_from_env: MagicMock, build_context) -> None:
        mock_from_env.return_value.images.build.side_effect = BuildError(
            "step failed", build_log=[]
        )

        with pytest.raises(DeploymentError, match="step failed"):
            ContainerBuilder().build(str(build_context), "acme/shop", ["v1"])

    def test_build_result_from_image(self) -> None:
        result = BuildResult.from_image(MagicMock(id="sha256:abcd"), "acme/shop", ["v1"])

        assert result.image_id == "sha256:abcd"
        assert result.log_lines == []


class TestImagePusher:
    """Tests for pushing images with resolved credentials."""

    @patch("docker.from_env")
    def test_push_streams_status(self, mock_from_env: MagicMock) -> None:
        client = mock_from_env.return_value
        client.images.push.return_value = iter(
            [{"status": "Preparing"}, {"status": "Pushed"}]
        )

        lines = ImagePusher().push("acme/shop", "v1", CREDENTIAL)

        assert lines == ["Preparing", "Pushed"]
        kwargs = client.images.push.call_args.kwargs
        assert kwargs["auth_config"] == {"username": "acme", "password": "tok"}
        assert kwargs["tag"] == "v1"

    @patch("docker.from_env")
    def test_push_missing_local_image(self, mock_from_env: MagicMock) -> None:
        mock_from_env.return_value.images.get.side_effect = ImageNotFound("missing")

        with pytest.raises(DeploymentError, match="axon build"):
            ImagePusher().push("acme/shop", "v1", CREDENTIAL)

    @patch("docker.from_env")
    def test_push_error_entry(self, mock_from_env: MagicMock) -> None:
        mock_from_env.return_value.images.push.return_value = iter(
            [{"error": "denied: requested access to the resource is denied"}]
        )

        with pytest.raises(DeploymentError, match="denied"):
            ImagePusher().push("acme/shop", "v1", CREDENTIAL)

    @patch("docker.from_env")
    def test_push_api_error(self, mock_from_env: MagicMock) -> None:
        mock_from_env.return_value.images.push.side_effect = APIError("boom")

        with pytest.raises(DeploymentError, match="boom"):
            ImagePusher().push("acme/shop", "v1", CREDENTIAL)

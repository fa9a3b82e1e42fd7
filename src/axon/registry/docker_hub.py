"""Docker Hub registry provider."""

from __future__ import annotations

from axon.models.registry import DockerHubConfig, RegistryCredential, RegistryProvider
from axon.registry.base import RegistryAuth

DOCKER_HUB_SERVER = "docker.io"


class DockerHubAuth(RegistryAuth):
    """Logs in with a username and personal access token."""

    @property
    def settings(self) -> DockerHubConfig:
        assert self.config.docker_hub is not None  # nosec B101
        return self.config.docker_hub

    def registry_url(self) -> str:
        return DOCKER_HUB_SERVER

    def image_repository(self) -> str:
        namespace = self.settings.namespace or self.settings.username
        return f"{namespace}/{self.settings.repository}"

    def resolve_credential(self) -> RegistryCredential:
        token = self._require(self.settings.access_token, "access_token")
        return RegistryCredential(
            provider=RegistryProvider.DOCKER_HUB,
            server=DOCKER_HUB_SERVER,
            username=self.settings.username,
            secret=token,
        )

"""Base interface for container registry providers."""

from __future__ import annotations

import shlex
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from axon.lib.errors import ConfigError
from axon.models.registry import RegistryConfig, RegistryCredential

if TYPE_CHECKING:
    from axon.remote.batch import RemoteCommandBatch


class RegistryAuth(ABC):
    """Authentication and naming for one registry provider.

    Credentials are resolved on the control machine so that a bad or expired
    credential fails the deploy before anything on the remote hosts changes.
    """

    def __init__(self, config: RegistryConfig) -> None:
        self.config = config

    @property
    def field(self) -> str:
        """Configuration path of the provider block, for error messages."""
        return f"registry.{self.config.provider.value}"

    @abstractmethod
    def registry_url(self) -> str:
        """Registry server used for ``docker login``."""

    @abstractmethod
    def image_repository(self) -> str:
        """Fully qualified repository name, without tag."""

    @abstractmethod
    def resolve_credential(self) -> RegistryCredential:
        """Obtain a login credential.

        Raises:
            ConfigError: If required fields are missing or the credential
                cannot be obtained
        """

    def build_image_uri(self, tag: str) -> str:
        """Return the canonical ``repository:tag`` reference."""
        if not tag:
            raise ConfigError("image_tag", "Image tag must not be empty")
        return f"{self.image_repository()}:{tag}"

    def login_command(self, credential: RegistryCredential, prefix: str = "") -> str:
        """Shell command that logs in reading the secret from stdin."""
        return (
            f"{prefix}docker login --username {shlex.quote(credential.username)} "
            f"--password-stdin {shlex.quote(credential.server)}"
        )

    def add_login(
        self,
        batch: RemoteCommandBatch,
        credential: RegistryCredential,
        name: str = "registry_login",
        prefix: str = "",
    ) -> None:
        """Append the login command to a batch; the secret goes over stdin.

        ``prefix`` must match the one used for pulls (e.g. "sudo ") so the
        credential lands in the same docker config.
        """
        batch.add(
            name, self.login_command(credential, prefix), stdin=credential.secret
        )

    def _require(self, value: str | None, name: str) -> str:
        if not value:
            raise ConfigError(f"{self.field}.{name}", f"'{name}' is required")
        return value

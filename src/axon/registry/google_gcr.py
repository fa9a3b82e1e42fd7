"""Google Container Registry and Artifact Registry provider."""

from __future__ import annotations

import os
from pathlib import Path

from axon.lib.errors import CloudSDKNotInstalledError, ConfigError
from axon.models.registry import GoogleGcrConfig, RegistryCredential, RegistryProvider
from axon.registry.base import RegistryAuth

GCR_SERVER = "gcr.io"
JSON_KEY_USERNAME = "_json_key"
ACCESS_TOKEN_USERNAME = "oauth2accesstoken"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class GoogleGcrAuth(RegistryAuth):
    """Logs in with a service account key file or application default
    credentials."""

    @property
    def settings(self) -> GoogleGcrConfig:
        assert self.config.google_gcr is not None  # nosec B101
        return self.config.google_gcr

    def registry_url(self) -> str:
        if self.settings.use_artifact_registry:
            return f"{self.settings.location}-docker.pkg.dev"
        return GCR_SERVER

    def image_repository(self) -> str:
        return (
            f"{self.registry_url()}/{self.settings.project_id}/"
            f"{self.settings.repository}"
        )

    def resolve_credential(self) -> RegistryCredential:
        key_file = self.settings.service_account_key
        if key_file:
            path = Path(os.path.expanduser(key_file))
            try:
                key_json = path.read_text(encoding="utf-8")
            except OSError as e:
                raise ConfigError(
                    f"{self.field}.service_account_key",
                    f"Cannot read service account key {key_file}: {e}",
                ) from e
            return RegistryCredential(
                provider=RegistryProvider.GOOGLE_GCR,
                server=self.registry_url(),
                username=JSON_KEY_USERNAME,
                secret=key_json,
            )

        return RegistryCredential(
            provider=RegistryProvider.GOOGLE_GCR,
            server=self.registry_url(),
            username=ACCESS_TOKEN_USERNAME,
            secret=self._access_token(),
        )

    def _access_token(self) -> str:
        try:
            from google.auth import default as default_credentials
            from google.auth.exceptions import GoogleAuthError
            from google.auth.transport.requests import Request
        except ImportError as exc:
            raise CloudSDKNotInstalledError(
                provider="google_gcr", sdk_name="google-auth"
            ) from exc

        try:
            credentials, _ = default_credentials(scopes=[CLOUD_PLATFORM_SCOPE])
            credentials.refresh(Request())
        except GoogleAuthError as e:
            raise ConfigError(
                self.field, f"Failed to get a Google access token: {e}"
            ) from e
        if not credentials.token:
            raise ConfigError(self.field, "Google returned an empty access token")
        return str(credentials.token)

"""Azure Container Registry provider."""

from __future__ import annotations

import requests

from axon.lib.errors import CloudSDKNotInstalledError, ConfigError
from axon.models.registry import AzureAcrConfig, RegistryCredential, RegistryProvider
from axon.registry.base import RegistryAuth

# Username ACR expects alongside a refresh token from the token exchange
ACR_TOKEN_USERNAME = "00000000-0000-0000-0000-000000000000"
ARM_SCOPE = "https://management.azure.com/.default"
EXCHANGE_TIMEOUT = 30.0


class AzureAcrAuth(RegistryAuth):
    """Logs in with a service principal, the admin user, or an Entra ID
    token exchanged for an ACR refresh token."""

    @property
    def settings(self) -> AzureAcrConfig:
        assert self.config.azure_acr is not None  # nosec B101
        return self.config.azure_acr

    def registry_url(self) -> str:
        return f"{self.settings.registry_name}.azurecr.io"

    def image_repository(self) -> str:
        return f"{self.registry_url()}/{self.settings.repository}"

    def _credential(self, username: str, secret: str) -> RegistryCredential:
        return RegistryCredential(
            provider=RegistryProvider.AZURE_ACR,
            server=self.registry_url(),
            username=username,
            secret=secret,
        )

    def resolve_credential(self) -> RegistryCredential:
        s = self.settings
        if s.service_principal_id:
            secret = self._require(
                s.service_principal_password, "service_principal_password"
            )
            return self._credential(s.service_principal_id, secret)
        if s.admin_username:
            secret = self._require(s.admin_password, "admin_password")
            return self._credential(s.admin_username, secret)
        return self._credential(ACR_TOKEN_USERNAME, self._refresh_token())

    def _refresh_token(self) -> str:
        """Exchange an Entra ID access token for an ACR refresh token.

        Raises:
            CloudSDKNotInstalledError: If azure-identity is not installed
            ConfigError: If no Azure credential is available or the
                registry refuses the exchange
        """
        try:
            from azure.core.exceptions import AzureError
            from azure.identity import DefaultAzureCredential
        except ImportError as exc:
            raise CloudSDKNotInstalledError(
                provider="azure_acr", sdk_name="azure-identity"
            ) from exc

        try:
            access_token = DefaultAzureCredential().get_token(ARM_SCOPE).token
        except AzureError as e:
            raise ConfigError(
                self.field, f"Failed to get an Azure access token: {e}"
            ) from e

        server = self.registry_url()
        try:
            response = requests.post(
                f"https://{server}/oauth2/exchange",
                data={
                    "grant_type": "access_token",
                    "service": server,
                    "access_token": access_token,
                },
                timeout=EXCHANGE_TIMEOUT,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise ConfigError(
                self.field, f"ACR token exchange with {server} failed: {e}"
            ) from e
        try:
            return str(response.json()["refresh_token"])
        except (ValueError, KeyError, TypeError) as e:
            raise ConfigError(
                self.field, f"Unexpected token exchange response from {server}"
            ) from e

"""AWS Elastic Container Registry provider."""

from __future__ import annotations

import base64
import binascii

from axon.lib.errors import CloudSDKNotInstalledError, ConfigError
from axon.models.registry import AwsEcrConfig, RegistryCredential, RegistryProvider
from axon.registry.base import RegistryAuth

ECR_USERNAME = "AWS"


class AwsEcrAuth(RegistryAuth):
    """Fetches a short-lived ECR authorization token through boto3."""

    @property
    def settings(self) -> AwsEcrConfig:
        assert self.config.aws_ecr is not None  # nosec B101
        return self.config.aws_ecr

    def registry_url(self) -> str:
        s = self.settings
        return f"{s.account_id}.dkr.ecr.{s.region}.amazonaws.com"

    def image_repository(self) -> str:
        return f"{self.registry_url()}/{self.settings.repository}"

    def resolve_credential(self) -> RegistryCredential:
        """Exchange the local AWS credentials for an ECR login.

        Raises:
            CloudSDKNotInstalledError: If boto3 is not installed
            ConfigError: If AWS rejects the request or no credentials exist
        """
        try:
            import boto3
            from botocore.exceptions import BotoCoreError, ClientError
        except ImportError as exc:
            raise CloudSDKNotInstalledError(
                provider="aws_ecr", sdk_name="boto3"
            ) from exc

        s = self.settings
        try:
            session = boto3.Session(profile_name=s.profile, region_name=s.region)
            response = session.client("ecr").get_authorization_token()
        except (BotoCoreError, ClientError) as e:
            raise ConfigError(
                self.field, f"Failed to get an ECR authorization token: {e}"
            ) from e

        try:
            encoded = response["authorizationData"][0]["authorizationToken"]
            decoded = base64.b64decode(encoded).decode("utf-8")
        except (KeyError, IndexError, binascii.Error, UnicodeDecodeError) as e:
            raise ConfigError(
                self.field, "Unexpected response from ECR GetAuthorizationToken"
            ) from e
        # Token decodes to "AWS:<password>"
        _, _, password = decoded.partition(":")
        if not password:
            raise ConfigError(self.field, "ECR returned an empty authorization token")
        return RegistryCredential(
            provider=RegistryProvider.AWS_ECR,
            server=self.registry_url(),
            username=ECR_USERNAME,
            secret=password,
        )

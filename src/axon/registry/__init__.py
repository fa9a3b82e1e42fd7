"""Container registry providers for Axon deployments."""

from __future__ import annotations

from axon.lib.errors import ConfigError
from axon.models.registry import RegistryConfig, RegistryProvider
from axon.registry.base import RegistryAuth


def create_registry_auth(config: RegistryConfig) -> RegistryAuth:
    """Create the registry provider matching the configuration."""
    if config.provider == RegistryProvider.DOCKER_HUB:
        from axon.registry.docker_hub import DockerHubAuth

        return DockerHubAuth(config)

    if config.provider == RegistryProvider.AWS_ECR:
        from axon.registry.aws_ecr import AwsEcrAuth

        return AwsEcrAuth(config)

    if config.provider == RegistryProvider.GOOGLE_GCR:
        from axon.registry.google_gcr import GoogleGcrAuth

        return GoogleGcrAuth(config)

    if config.provider == RegistryProvider.AZURE_ACR:
        from axon.registry.azure_acr import AzureAcrAuth

        return AzureAcrAuth(config)

    raise ConfigError(
        "registry.provider",
        f"Unsupported registry provider: {config.provider}",
    )


__all__ = ["RegistryAuth", "create_registry_auth"]

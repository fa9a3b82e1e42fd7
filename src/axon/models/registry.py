"""Pydantic models for container registry configuration.

Each supported registry provider has its own settings model. The
``RegistryConfig`` model selects one of them through ``provider`` and checks
that exactly the matching settings block is present.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RegistryProvider(str, Enum):
    """Supported container registries."""

    DOCKER_HUB = "docker_hub"
    AWS_ECR = "aws_ecr"
    GOOGLE_GCR = "google_gcr"
    AZURE_ACR = "azure_acr"


# Regex patterns for validation
AWS_ACCOUNT_ID_PATTERN = re.compile(r"^\d{12}$")
GCP_PROJECT_ID_PATTERN = re.compile(r"^[a-z][a-z0-9-]{4,28}[a-z0-9]$")
ACR_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9]{5,50}$")
REPOSITORY_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._/-]*[a-z0-9]$|^[a-z0-9]$")


class _RepositoryModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    repository: str = Field(..., description="Image repository name")

    @field_validator("repository")
    @classmethod
    def validate_repository(cls, v: str) -> str:
        """Validate repository name pattern."""
        if not REPOSITORY_PATTERN.match(v):
            raise ValueError(
                f"Invalid repository name: {v}. "
                "Must contain only lowercase letters, numbers, '.', '_', '/', '-'"
            )
        return v


class DockerHubConfig(_RepositoryModel):
    """Docker Hub settings.

    Attributes:
        username: Docker Hub account name
        access_token: Personal access token used as the login password
        namespace: Organization namespace for images (defaults to username)
    """

    username: str = Field(..., description="Docker Hub username")
    access_token: str | None = Field(default=None, description="Access token")
    namespace: str | None = Field(default=None, description="Image namespace")


class AwsEcrConfig(_RepositoryModel):
    """AWS Elastic Container Registry settings.

    Attributes:
        account_id: 12-digit AWS account ID
        region: AWS region of the registry
        profile: Optional AWS profile used to fetch the login token
    """

    account_id: str = Field(..., description="AWS account ID")
    region: str = Field(..., description="AWS region")
    profile: str | None = Field(default=None, description="AWS credentials profile")

    @field_validator("account_id", mode="before")
    @classmethod
    def validate_account_id(cls, v: object) -> str:
        """Validate account ID is 12 digits (YAML may parse it as int)."""
        value = str(v)
        if not AWS_ACCOUNT_ID_PATTERN.match(value):
            raise ValueError(f"Invalid AWS account ID: {value}. Must be 12 digits.")
        return value


class GoogleGcrConfig(_RepositoryModel):
    """Google Container Registry / Artifact Registry settings.

    Attributes:
        project_id: GCP project ID
        service_account_key: Path to a service account JSON key file. When
            unset, the local gcloud session is used.
        use_artifact_registry: Use ``{location}-docker.pkg.dev`` instead of gcr.io
        location: Artifact Registry location
    """

    project_id: str = Field(..., description="GCP project ID")
    service_account_key: str | None = Field(
        default=None, description="Service account JSON key file"
    )
    use_artifact_registry: bool = Field(
        default=False, description="Use Artifact Registry instead of gcr.io"
    )
    location: str = Field(default="us", description="Artifact Registry location")

    @field_validator("project_id")
    @classmethod
    def validate_project_id(cls, v: str) -> str:
        """Validate GCP project ID format."""
        if not GCP_PROJECT_ID_PATTERN.match(v):
            raise ValueError(
                f"Invalid GCP project ID: {v}. "
                "Must be 6-30 lowercase letters, numbers, and hyphens, "
                "starting with a letter and not ending with a hyphen."
            )
        return v


class AzureAcrConfig(_RepositoryModel):
    """Azure Container Registry settings.

    Credentials are tried in order: service principal, admin user, then the
    local ``az`` CLI session.
    """

    registry_name: str = Field(..., description="ACR registry name")
    service_principal_id: str | None = Field(default=None)
    service_principal_password: str | None = Field(default=None)
    admin_username: str | None = Field(default=None)
    admin_password: str | None = Field(default=None)

    @field_validator("registry_name")
    @classmethod
    def validate_registry_name(cls, v: str) -> str:
        """Validate ACR registry name format."""
        if not ACR_NAME_PATTERN.match(v):
            raise ValueError(
                f"Invalid ACR registry name: {v}. Must be 5-50 alphanumeric characters."
            )
        return v


class RegistryConfig(BaseModel):
    """Container registry selection.

    Uses a discriminated union pattern: the block named by ``provider`` must
    be present and no other provider block may be set.
    """

    model_config = ConfigDict(extra="forbid")

    provider: RegistryProvider = Field(..., description="Registry provider")
    docker_hub: DockerHubConfig | None = None
    aws_ecr: AwsEcrConfig | None = None
    google_gcr: GoogleGcrConfig | None = None
    azure_acr: AzureAcrConfig | None = None

    @model_validator(mode="after")
    def validate_provider_config(self) -> RegistryConfig:
        """Validate that the provider block is present and unambiguous."""
        blocks = {p.value: getattr(self, p.value) for p in RegistryProvider}
        if blocks[self.provider.value] is None:
            raise ValueError(
                f"{self.provider.value} configuration is required when provider "
                f"is '{self.provider.value}'"
            )
        extra = [name for name, block in blocks.items() if block is not None]
        if len(extra) > 1:
            raise ValueError(
                f"Only {self.provider.value} configuration should be provided "
                f"when provider is '{self.provider.value}'"
            )
        return self

    @property
    def settings(
        self,
    ) -> DockerHubConfig | AwsEcrConfig | GoogleGcrConfig | AzureAcrConfig:
        """Return the settings block of the selected provider."""
        block = getattr(self, self.provider.value)
        assert block is not None  # nosec B101
        return block  # type: ignore[no-any-return]

    @property
    def repository(self) -> str:
        """Repository name of the selected provider."""
        return self.settings.repository


@dataclass(frozen=True)
class RegistryCredential:
    """Resolved registry login. Never written to disk.

    Attributes:
        provider: Provider the credential belongs to
        server: Registry server passed to ``docker login``
        username: Login user name
        secret: Password or token; hidden from repr
    """

    provider: RegistryProvider
    server: str
    username: str
    secret: str = field(repr=False)

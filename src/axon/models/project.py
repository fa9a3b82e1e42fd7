"""Pydantic models for the ``axon.config.yml`` project file.

The project file describes a product, its servers and all of its
environments. ``ProjectConfig.resolve`` turns it into the per-environment
``EnvironmentDescriptor`` consumed by the deployers.
"""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from axon.config.defaults import BUILD_DEFAULTS, DEFAULT_DOMAIN, STATIC_DEFAULTS
from axon.config.validator import flatten_pydantic_errors
from axon.lib.errors import ConfigError
from axon.models.environment import (
    DeploymentSettings,
    DeployMode,
    DockerSettings,
    EnvironmentDescriptor,
    HealthCheckSettings,
    NginxSettings,
    ServerEndpoint,
    StaticSettings,
)
from axon.models.registry import RegistryConfig

NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


class ProductType(str, Enum):
    """Kind of product; ``docker`` products deploy in container mode."""

    DOCKER = "docker"
    STATIC = "static"


class ProductConfig(BaseModel):
    """Product information."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Product name used in container names")
    type: ProductType = Field(default=ProductType.DOCKER)
    description: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate product name is usable in container and file names."""
        if not NAME_PATTERN.match(v):
            raise ValueError(
                f"Invalid product name: {v}. Use lowercase letters, numbers, "
                "'-' and '_', starting with a letter or number."
            )
        return v


class TagStrategy(str, Enum):
    """Strategy for generating an additional image tag at build time."""

    GIT_SHA = "git_sha"
    GIT_TAG = "git_tag"
    LATEST = "latest"
    CUSTOM = "custom"


class BuildSettings(BaseModel):
    """Local image build settings from the ``build`` section.

    Images are always tagged with the environment's image tag.
    ``tag_strategy`` adds a second tag, for example the git commit.
    """

    model_config = ConfigDict(extra="forbid")

    context: str = Field(default=BUILD_DEFAULTS["context"])
    dockerfile: str = Field(default=BUILD_DEFAULTS["dockerfile"])
    platform: str = Field(default=BUILD_DEFAULTS["platform"])
    tag_strategy: TagStrategy | None = Field(
        default=TagStrategy.GIT_SHA, description="Strategy for the additional tag"
    )
    custom_tag: str | None = Field(
        default=None, description="Custom tag when tag_strategy is CUSTOM"
    )

    @model_validator(mode="after")
    def validate_custom_tag(self) -> BuildSettings:
        """Validate that a custom tag is set for the CUSTOM strategy."""
        if self.tag_strategy == TagStrategy.CUSTOM and not self.custom_tag:
            raise ValueError("custom_tag is required when tag_strategy is 'custom'")
        return self


class ServersConfig(BaseModel):
    """Target hosts."""

    model_config = ConfigDict(extra="forbid")

    system: ServerEndpoint
    application: ServerEndpoint | None = None


class EnvironmentConfig(BaseModel):
    """Per-environment settings from the ``environments`` section.

    Attributes:
        env_path: Env file on the application server (container mode)
        image_tag: Image tag deployed to this environment
        domain: nginx server_name
        deploy_path: Root of the release tree on the system server (static)
        build_command: Shell command run by ``axon build`` (static)
        build_output_dir: Local directory packaged by ``axon push`` (static)
    """

    model_config = ConfigDict(extra="forbid")

    env_path: str | None = None
    image_tag: str | None = None
    domain: str = DEFAULT_DOMAIN
    deploy_path: str | None = None
    build_command: str | None = None
    build_output_dir: str = str(STATIC_DEFAULTS["build_output_dir"])

    @field_validator("image_tag", mode="before")
    @classmethod
    def stringify_tag(cls, v: object) -> object:
        return str(v) if isinstance(v, int | float) else v


class ProjectConfig(BaseModel):
    """Root model of ``axon.config.yml``."""

    model_config = ConfigDict(extra="forbid")

    product: ProductConfig
    servers: ServersConfig
    registry: RegistryConfig | None = None
    docker: DockerSettings | None = None
    build: BuildSettings = Field(default_factory=BuildSettings)
    health_check: HealthCheckSettings = Field(default_factory=HealthCheckSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    nginx: NginxSettings = Field(default_factory=NginxSettings)
    static: StaticSettings | None = None
    environments: dict[str, EnvironmentConfig] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_environments(self) -> ProjectConfig:
        """Validate that at least one environment is defined."""
        if not self.environments:
            raise ValueError("at least one environment must be defined")
        return self

    @property
    def mode(self) -> DeployMode:
        if self.product.type == ProductType.STATIC:
            return DeployMode.STATIC
        return DeployMode.CONTAINER

    def has_environment(self, name: str) -> bool:
        return name in self.environments

    def resolve(self, name: str) -> EnvironmentDescriptor:
        """Build the descriptor for one environment.

        Args:
            name: Environment name as it appears under ``environments``

        Returns:
            Immutable EnvironmentDescriptor

        Raises:
            ConfigError: If the environment does not exist or lacks settings
                required by the product type
        """
        if name not in self.environments:
            available = ", ".join(sorted(self.environments)) or "none"
            raise ConfigError(
                f"environments.{name}",
                f"Environment '{name}' not found (available: {available})",
            )
        env = self.environments[name]
        try:
            return EnvironmentDescriptor(
                product=self.product.name,
                environment=name,
                mode=self.mode,
                system_server=self.servers.system,
                application_server=self.servers.application,
                domain=env.domain,
                nginx=self.nginx,
                tls=self.nginx.ssl.get(name),
                registry=self.registry,
                image_tag=env.image_tag or name,
                env_file=env.env_path,
                docker=self.docker,
                health_check=self.health_check,
                deployment=self.deployment,
                static=(
                    self.static or StaticSettings()
                    if self.mode == DeployMode.STATIC
                    else None
                ),
                deploy_path=env.deploy_path,
            )
        except PydanticValidationError as e:
            error_text = "\n".join(flatten_pydantic_errors(e))
            raise ConfigError(
                f"environments.{name}",
                f"Environment '{name}' is incomplete:\n{error_text}",
            ) from e

"""Pydantic models describing a deployable environment.

The ``EnvironmentDescriptor`` is the fully resolved, immutable view of one
environment of a product. It is produced by ``ProjectConfig.resolve`` and
passed explicitly to every deployer; nothing reads configuration globally.
"""

from __future__ import annotations

import posixpath
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from axon.config.defaults import (
    DEFAULT_DOMAIN,
    DEPLOYMENT_DEFAULTS,
    DOCKER_DEFAULTS,
    HEALTH_CHECK_DEFAULTS,
    NGINX_PATH_DEFAULTS,
    NGINX_PROXY_DEFAULTS,
    STATIC_DEFAULTS,
)
from axon.models.registry import RegistryConfig

Port = Annotated[int, Field(ge=1, le=65535)]


class DeployMode(str, Enum):
    """How an environment is released."""

    CONTAINER = "container"
    STATIC = "static"


class ServerEndpoint(BaseModel):
    """A remote host reachable over SSH.

    Attributes:
        host: Public address used for SSH
        user: Login user
        ssh_key: Path to the private key on the control machine
        port: SSH port
        private_ip: Address the proxy uses to reach workloads on this host
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = Field(..., description="Host address")
    user: str = Field(default="root", description="SSH login user")
    ssh_key: str | None = Field(default=None, description="SSH private key path")
    port: Port = Field(default=22, description="SSH port")
    private_ip: str | None = Field(default=None, description="Private address")

    @property
    def upstream_address(self) -> str:
        """Address nginx should use to reach this host."""
        return self.private_ip or self.host

    @property
    def uses_sudo(self) -> bool:
        """Whether privileged commands need sudo."""
        return self.user != "root"

    @property
    def label(self) -> str:
        return f"{self.user}@{self.host}"


def _coerce_str(v: object) -> object:
    # YAML turns `timeout: 60` into an int
    return str(v) if isinstance(v, int | float) and not isinstance(v, bool) else v


class HealthCheckSettings(BaseModel):
    """Container health check and deploy-time polling settings.

    ``interval``, ``timeout``, ``retries`` and ``start_period`` configure the
    docker HEALTHCHECK. ``max_retries`` and ``retry_interval`` bound how long
    a deploy waits for the new container to report healthy.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = True
    endpoint: str = str(HEALTH_CHECK_DEFAULTS["endpoint"])
    command: list[str] | str | None = Field(
        default=None,
        description="Custom probe in docker HEALTHCHECK form; ${container_port} "
        "and ${health_endpoint} are substituted",
    )
    interval: str = str(HEALTH_CHECK_DEFAULTS["interval"])
    timeout: str = str(HEALTH_CHECK_DEFAULTS["timeout"])
    retries: int = Field(default=int(HEALTH_CHECK_DEFAULTS["retries"]), ge=1)
    start_period: str = str(HEALTH_CHECK_DEFAULTS["start_period"])
    max_retries: int = Field(default=int(HEALTH_CHECK_DEFAULTS["max_retries"]), ge=1)
    retry_interval: float = Field(
        default=float(HEALTH_CHECK_DEFAULTS["retry_interval"]), gt=0
    )

    @field_validator("interval", "timeout", "start_period", mode="before")
    @classmethod
    def coerce_durations(cls, v: object) -> object:
        # bare numbers are seconds
        return f"{v}s" if isinstance(v, int) and not isinstance(v, bool) else v

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Validate endpoint is an absolute path."""
        if not v.startswith("/"):
            raise ValueError(f"Health check endpoint must start with '/': {v}")
        return v


class LoggingSettings(BaseModel):
    """Docker log driver settings."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    driver: str = str(DOCKER_DEFAULTS["log_driver"])
    max_size: str = str(DOCKER_DEFAULTS["log_max_size"])
    max_file: int = Field(default=int(DOCKER_DEFAULTS["log_max_file"]), ge=1)


class DockerSettings(BaseModel):
    """How the workload container is run on the application server."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    container_port: Port = Field(..., description="Port the service listens on")
    network_name: str | None = Field(default=None, description="Docker network")
    network_alias: str | None = Field(default=None, description="Network alias")
    restart_policy: str = str(DOCKER_DEFAULTS["restart_policy"])
    env_vars: dict[str, str] = Field(default_factory=dict)
    extra_hosts: list[str] = Field(default_factory=list)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    use_sudo: bool = Field(
        default=False, description="Run docker through sudo on the application server"
    )

    @field_validator("env_vars", mode="before")
    @classmethod
    def stringify_env_vars(cls, v: object) -> object:
        if isinstance(v, dict):
            return {str(k): str(_coerce_str(val)) for k, val in v.items()}
        return v


class DeploymentSettings(BaseModel):
    """Deploy behaviour shared by all environments."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    graceful_shutdown_timeout: int = Field(
        default=int(DEPLOYMENT_DEFAULTS["graceful_shutdown_timeout"]), ge=0
    )
    enable_auto_rollback: bool = bool(DEPLOYMENT_DEFAULTS["enable_auto_rollback"])
    lock_timeout: int = Field(default=int(DEPLOYMENT_DEFAULTS["lock_timeout"]), ge=1)


class ProxyTuning(BaseModel):
    """nginx proxy timeouts and buffers."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    timeout: str = NGINX_PROXY_DEFAULTS["timeout"]
    buffer_size: str = NGINX_PROXY_DEFAULTS["buffer_size"]
    buffers: str = NGINX_PROXY_DEFAULTS["buffers"]
    busy_buffers_size: str = NGINX_PROXY_DEFAULTS["busy_buffers_size"]

    @field_validator(
        "timeout", "buffer_size", "buffers", "busy_buffers_size", mode="before"
    )
    @classmethod
    def coerce_numbers(cls, v: object) -> object:
        return _coerce_str(v)

    @field_validator("timeout")
    @classmethod
    def add_timeout_unit(cls, v: str) -> str:
        # nginx reads a bare number as seconds, but be explicit
        return f"{v}s" if v.isdigit() else v


class NginxPaths(BaseModel):
    """Filesystem locations on the system server."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    config: str = NGINX_PATH_DEFAULTS["config"]
    axon_dir: str = NGINX_PATH_DEFAULTS["axon_dir"]
    log_dir: str = NGINX_PATH_DEFAULTS["log_dir"]

    @property
    def config_dir(self) -> str:
        return posixpath.dirname(self.config)

    @property
    def upstreams_dir(self) -> str:
        return posixpath.join(self.axon_dir, "upstreams")

    @property
    def sites_dir(self) -> str:
        return posixpath.join(self.axon_dir, "sites")

    @property
    def locks_dir(self) -> str:
        return posixpath.join(self.axon_dir, "locks")


class TLSSettings(BaseModel):
    """Certificate paths on the system server."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    certificate: str | None = None
    certificate_key: str | None = None

    @property
    def enabled(self) -> bool:
        """TLS is only served when both the certificate and key are set."""
        return bool(self.certificate and self.certificate_key)


class NginxSettings(BaseModel):
    """nginx settings from the ``nginx`` configuration section."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    proxy: ProxyTuning = Field(default_factory=ProxyTuning)
    custom_properties: str | None = Field(
        default=None, description="Extra directives appended to the location block"
    )
    paths: NginxPaths = Field(default_factory=NginxPaths)
    ssl: dict[str, TLSSettings] = Field(default_factory=dict)


class StaticSettings(BaseModel):
    """Static release settings from the ``static`` configuration section."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    deploy_user: str = str(STATIC_DEFAULTS["deploy_user"])
    keep_releases: int = Field(default=int(STATIC_DEFAULTS["keep_releases"]), ge=1)
    shared_dirs: list[str] = Field(default_factory=list)
    required_files: list[str] = Field(default_factory=list)

    @field_validator("shared_dirs", "required_files")
    @classmethod
    def validate_relative(cls, v: list[str]) -> list[str]:
        """Validate paths are relative to the release directory."""
        for item in v:
            if item.startswith("/") or ".." in item.split("/"):
                raise ValueError(f"Path must be relative to the release: {item}")
        return v


class EnvironmentDescriptor(BaseModel):
    """Resolved, immutable description of one environment.

    Attributes:
        product: Product name
        environment: Environment name (e.g. production)
        mode: Container or static release mode
        system_server: Host running nginx
        application_server: Host running containers (container mode)
        domain: nginx server_name
        nginx: nginx paths and tuning
        tls: Certificates for this environment, if any
        registry: Registry configuration (container mode)
        image_tag: Tag of the image to deploy
        env_file: Path of the env file on the application server
        docker: Container run settings (container mode)
        health_check: Health check settings
        deployment: Deploy behaviour
        static: Static release settings (static mode)
        deploy_path: Root directory for static releases
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    product: str
    environment: str
    mode: DeployMode
    system_server: ServerEndpoint
    application_server: ServerEndpoint | None = None
    domain: str = DEFAULT_DOMAIN
    nginx: NginxSettings = Field(default_factory=NginxSettings)
    tls: TLSSettings | None = None
    registry: RegistryConfig | None = None
    image_tag: str = "latest"
    env_file: str | None = None
    docker: DockerSettings | None = None
    health_check: HealthCheckSettings = Field(default_factory=HealthCheckSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    static: StaticSettings | None = None
    deploy_path: str | None = None

    @model_validator(mode="after")
    def validate_mode_settings(self) -> EnvironmentDescriptor:
        """Validate that the settings required by the mode are present."""
        if self.mode == DeployMode.CONTAINER:
            missing = [
                name
                for name in ("application_server", "registry", "docker", "env_file")
                if getattr(self, name) is None
            ]
            if missing:
                raise ValueError(
                    f"container mode requires: {', '.join(missing)}"
                )
        else:
            if self.static is None or not self.deploy_path:
                raise ValueError("static mode requires static settings and deploy_path")
        return self

    @property
    def container_prefix(self) -> str:
        """Common prefix of every container name of this environment."""
        return f"{self.product}-{self.environment}"

    @property
    def tls_enabled(self) -> bool:
        return self.tls is not None and self.tls.enabled

    @property
    def app_deploy_dir(self) -> str:
        """Directory on the application server holding the env file."""
        assert self.env_file is not None  # nosec B101
        return posixpath.dirname(self.env_file) or "."

    @property
    def static_root(self) -> str:
        """Per-environment directory holding releases, shared and current."""
        assert self.deploy_path is not None  # nosec B101
        return posixpath.join(self.deploy_path, self.environment)

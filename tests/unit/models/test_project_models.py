"""Tests for project, environment and release models."""

from typing import Any

import pytest
from pydantic import ValidationError

from axon.lib.errors import ConfigError
from axon.models.environment import (
    DeployMode,
    HealthCheckSettings,
    ProxyTuning,
    ServerEndpoint,
    StaticSettings,
    TLSSettings,
)
from axon.models.project import BuildSettings, ProjectConfig, TagStrategy
from axon.models.registry import RegistryConfig, RegistryCredential
from axon.models.release import (
    ContainerRelease,
    HealthState,
    StaticRelease,
    TrafficState,
)


class TestProductConfig:
    """Tests for product validation."""

    @pytest.mark.parametrize("name", ["shop", "my-app", "app_2", "9lives"])
    def test_valid_names(self, container_data: dict[str, Any], name: str) -> None:
        container_data["product"]["name"] = name
        assert ProjectConfig(**container_data).product.name == name

    @pytest.mark.parametrize("name", ["Shop", "-app", "my app", "app/1", ""])
    def test_invalid_names(self, container_data: dict[str, Any], name: str) -> None:
        container_data["product"]["name"] = name
        with pytest.raises(ValidationError):
            ProjectConfig(**container_data)

    def test_requires_an_environment(self, container_data: dict[str, Any]) -> None:
        container_data["environments"] = {}
        with pytest.raises(ValidationError, match="at least one environment"):
            ProjectConfig(**container_data)

    def test_static_product_mode(self, static_data: dict[str, Any]) -> None:
        assert ProjectConfig(**static_data).mode == DeployMode.STATIC


class TestResolve:
    """Tests for resolving an environment descriptor."""

    def test_container_descriptor(self, container_descriptor) -> None:
        """Test a container environment resolves all of its settings."""
        assert container_descriptor.mode == DeployMode.CONTAINER
        assert container_descriptor.image_tag == "stable"
        assert container_descriptor.env_file == "/srv/shop/.env.production"
        assert container_descriptor.app_deploy_dir == "/srv/shop"
        assert container_descriptor.application_server.upstream_address == "10.0.0.5"

    def test_image_tag_defaults_to_environment_name(
        self, container_data: dict[str, Any]
    ) -> None:
        del container_data["environments"]["production"]["image_tag"]
        descriptor = ProjectConfig(**container_data).resolve("production")
        assert descriptor.image_tag == "production"

    def test_numeric_image_tag(self, container_data: dict[str, Any]) -> None:
        container_data["environments"]["production"]["image_tag"] = 2
        assert ProjectConfig(**container_data).resolve("production").image_tag == "2"

    def test_container_mode_requires_app_settings(
        self, container_data: dict[str, Any]
    ) -> None:
        """Test a container environment without an env file is incomplete."""
        del container_data["environments"]["production"]["env_path"]
        project = ProjectConfig(**container_data)

        with pytest.raises(ConfigError, match="env_file"):
            project.resolve("production")

    def test_static_mode_requires_deploy_path(
        self, static_data: dict[str, Any]
    ) -> None:
        del static_data["environments"]["production"]["deploy_path"]
        project = ProjectConfig(**static_data)

        with pytest.raises(ConfigError, match="deploy_path"):
            project.resolve("production")

    def test_static_descriptor(self, static_descriptor) -> None:
        assert static_descriptor.static_root == "/var/www/docs/production"
        assert static_descriptor.static.keep_releases == 3
        assert static_descriptor.docker is None

    def test_tls_per_environment(self, container_data: dict[str, Any]) -> None:
        container_data["nginx"] = {
            "ssl": {
                "production": {
                    "certificate": "/etc/ssl/shop.crt",
                    "certificate_key": "/etc/ssl/shop.key",
                }
            }
        }
        descriptor = ProjectConfig(**container_data).resolve("production")
        assert descriptor.tls_enabled

    def test_descriptor_is_frozen(self, container_descriptor) -> None:
        with pytest.raises(ValidationError):
            container_descriptor.image_tag = "other"


class TestRegistryConfig:
    """Tests for registry provider selection."""

    def test_provider_block_required(self) -> None:
        with pytest.raises(ValidationError, match="aws_ecr configuration is required"):
            RegistryConfig(provider="aws_ecr")

    def test_only_matching_block_allowed(self) -> None:
        with pytest.raises(ValidationError, match="Only docker_hub"):
            RegistryConfig(
                provider="docker_hub",
                docker_hub={"username": "acme", "repository": "shop"},
                aws_ecr={
                    "account_id": "123456789012",
                    "region": "eu-west-1",
                    "repository": "shop",
                },
            )

    def test_account_id_from_yaml_int(self) -> None:
        config = RegistryConfig(
            provider="aws_ecr",
            aws_ecr={
                "account_id": 123456789012,
                "region": "eu-west-1",
                "repository": "shop",
            },
        )
        assert config.settings.account_id == "123456789012"

    @pytest.mark.parametrize("repository", ["Shop", "shop-", "-shop"])
    def test_invalid_repository(self, repository: str) -> None:
        with pytest.raises(ValidationError):
            RegistryConfig(
                provider="docker_hub",
                docker_hub={"username": "acme", "repository": repository},
            )

    def test_credential_secret_not_in_repr(self) -> None:
        credential = RegistryCredential(
            provider="docker_hub", server="docker.io", username="acme", secret="tok"
        )
        assert "tok" not in repr(credential)


class TestSettings:
    """Tests for individual settings sections."""

    def test_health_check_duration_coercion(self) -> None:
        settings = HealthCheckSettings(interval=15, timeout="5s", start_period=0)
        assert settings.interval == "15s"
        assert settings.timeout == "5s"
        assert settings.start_period == "0s"

    def test_health_check_endpoint_absolute(self) -> None:
        with pytest.raises(ValidationError, match="must start with '/'"):
            HealthCheckSettings(endpoint="health")

    def test_proxy_timeout_unit(self) -> None:
        assert ProxyTuning(timeout=90).timeout == "90s"
        assert ProxyTuning(timeout="2m").timeout == "2m"

    @pytest.mark.parametrize("path", ["/etc/passwd", "../up", "a/../../b"])
    def test_static_paths_must_be_relative(self, path: str) -> None:
        with pytest.raises(ValidationError, match="relative"):
            StaticSettings(shared_dirs=[path])

    def test_tls_needs_both_files(self) -> None:
        assert not TLSSettings(certificate="/etc/ssl/a.crt").enabled

    def test_endpoint_sudo(self) -> None:
        assert not ServerEndpoint(host="h").uses_sudo
        assert ServerEndpoint(host="h", user="deploy").uses_sudo

    def test_custom_tag_required(self) -> None:
        with pytest.raises(ValidationError, match="custom_tag"):
            BuildSettings(tag_strategy=TagStrategy.CUSTOM)


class TestReleases:
    """Tests for release models."""

    def test_container_release_name(self) -> None:
        release = ContainerRelease.create("shop-production", "img:v1", 1700000000)
        assert release.release_id == "shop-production-1700000000"
        assert release.traffic == TrafficState.STANDBY

    def test_mark_live_requires_port(self) -> None:
        release = ContainerRelease.create("shop-production", "img:v1", 1)
        with pytest.raises(ValueError):
            release.mark_live()

        release.assigned_port = 32768
        release.mark_live()
        assert release.traffic == TrafficState.LIVE

    @pytest.mark.parametrize(
        ("value", "state"),
        [
            ("healthy\n", HealthState.HEALTHY),
            ("Starting", HealthState.STARTING),
            ("none", HealthState.NONE),
            ("<no value>", HealthState.UNKNOWN),
        ],
    )
    def test_health_state_parse(self, value: str, state: HealthState) -> None:
        assert HealthState.parse(value) == state

    def test_release_id_from_archive(self) -> None:
        release_id = StaticRelease.id_from_archive(
            "/tmp/static-build-20240105120000-1a2b3c4d.tar.gz",
            "static-build-",
            ".tar.gz",
        )
        assert release_id == "20240105120000-1a2b3c4d"

    def test_release_id_without_hash(self) -> None:
        assert (
            StaticRelease.id_from_archive(
                "static-build-20240105120000.tar.gz", "static-build-", ".tar.gz"
            )
            == "20240105120000"
        )

    @pytest.mark.parametrize(
        "name",
        ["other-20240105120000.tar.gz", "static-build-2024.tar.gz"],
    )
    def test_release_id_rejects(self, name: str) -> None:
        with pytest.raises(ValueError):
            StaticRelease.id_from_archive(name, "static-build-", ".tar.gz")

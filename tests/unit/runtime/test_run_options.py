"""Unit tests for container run options."""

from __future__ import annotations

import shlex

from axon.models.environment import HealthCheckSettings
from axon.runtime.options import HealthCheckOptions, RunOptions, health_command


class TestHealthCommand:
    """Tests for the health check command run inside the container."""

    def test_default_health_command_uses_wget(self) -> None:
        command = health_command(HealthCheckSettings(endpoint="/up"), 3000)

        assert command == "wget --quiet --tries=1 --spider http://127.0.0.1:3000/up"

    def test_string_command_substitutes_placeholders(self) -> None:
        settings = HealthCheckSettings(
            command="curl -fs localhost:${container_port}${health_endpoint}"
        )

        assert health_command(settings, 8080) == "curl -fs localhost:8080/health"

    def test_cmd_shell_list(self) -> None:
        settings = HealthCheckSettings(
            command=["CMD-SHELL", "nc -z 127.0.0.1 ${container_port} || exit 1"]
        )

        assert health_command(settings, 5432) == "nc -z 127.0.0.1 5432 || exit 1"

    def test_cmd_list_is_quoted(self) -> None:
        settings = HealthCheckSettings(command=["CMD", "/bin/check", "--path", "/a b"])

        assert health_command(settings, 80) == "/bin/check --path '/a b'"

    def test_disabled_check_has_no_options(self) -> None:
        assert HealthCheckOptions.from_settings(HealthCheckSettings(enabled=False), 80) is None


class TestRunOptions:
    """Tests for the docker run argument list."""

    def test_for_release(self, container_descriptor) -> None:
        options = RunOptions.for_release(
            container_descriptor, "shop-production-1700000000", "acme/shop:stable"
        )

        assert options.container_port == 3000
        assert options.env_file == "/srv/shop/.env.production"
        assert options.labels["com.axon.environment"] == "production"
        assert options.health_check is not None
        assert options.log_options == {"max-size": "10m", "max-file": "3"}

    def test_argv_publishes_ephemeral_port(self, container_descriptor) -> None:
        argv = RunOptions.for_release(
            container_descriptor, "shop-production-1700000000", "acme/shop:stable"
        ).to_argv()

        assert argv[:5] == ["docker", "run", "-d", "--name", "shop-production-1700000000"]
        assert argv[argv.index("-p") + 1] == "3000"
        assert argv[argv.index("--env-file") + 1] == "/srv/shop/.env.production"
        assert argv[argv.index("--restart") + 1] == "unless-stopped"
        assert "--health-cmd" in argv
        assert argv[-1] == "acme/shop:stable"

    def test_network_and_env(self) -> None:
        options = RunOptions(
            name="shop-production-1",
            image="acme/shop:v1",
            container_port=3000,
            environment={"B": "2", "A": "1 2"},
            extra_hosts=["db:10.0.0.9"],
            network="backend",
            network_alias="shop",
        )
        argv = options.to_argv()

        assert argv[argv.index("-e") + 1] == "A=1 2"
        assert ["--add-host", "db:10.0.0.9"] == argv[
            argv.index("--add-host") : argv.index("--add-host") + 2
        ]
        assert argv[argv.index("--network") + 1] == "backend"
        assert argv[argv.index("--network-alias") + 1] == "shop"
        assert "--health-cmd" not in argv

    def test_to_command_round_trips_through_shell_parsing(self) -> None:
        options = RunOptions(
            name="shop-production-1",
            image="acme/shop:v1",
            container_port=3000,
            environment={"GREETING": "hello world; rm -rf /"},
        )

        assert shlex.split(options.to_command()) == options.to_argv()

"""Shared plumbing for Axon CLI commands."""

from __future__ import annotations

import sys
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

import click

from axon.config.loader import ConfigLoader, find_config_file
from axon.lib.errors import (
    AxonError,
    ConfigError,
    DeploymentError,
    DeploymentLockedError,
)
from axon.lib.logging_config import get_logger
from axon.lib.ui.progress import ProgressReporter
from axon.models.environment import DeployMode, EnvironmentDescriptor
from axon.models.project import ProjectConfig

logger = get_logger(__name__)

EXIT_CONFIG_ERROR = 2
EXIT_DEPLOYMENT_ERROR = 3
EXIT_LOCKED = 4


@dataclass
class CliContext:
    """Options shared by every command, stored on ``click.Context.obj``.

    Attributes:
        config_path: Explicit ``--config`` path, if given
        verbose: ``--verbose`` was passed
        quiet: ``--quiet`` was passed
        loader: Configuration loader reused across a command
    """

    config_path: str | None = None
    verbose: bool = False
    quiet: bool = False
    loader: ConfigLoader = field(default_factory=ConfigLoader)

    def config_file(self) -> Path:
        """Resolve the configuration file from --config or the working tree."""
        if self.config_path:
            return Path(self.config_path).resolve()
        return find_config_file()

    def project(self) -> ProjectConfig:
        return self.loader.load(self.config_file())

    def descriptor(
        self, environment: str, image_tag: str | None = None
    ) -> EnvironmentDescriptor:
        return self.loader.load_environment(
            environment, self.config_file(), image_tag=image_tag
        )

    def reporter(self) -> ProgressReporter:
        return ProgressReporter(quiet=self.quiet)


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in CLI commands.

    Catches and handles ConfigError, DeploymentError, and unexpected exceptions
    with appropriate logging, user feedback, and exit codes.

    Exit codes:
        2: Configuration error
        3: Deployment/execution error
        4: Environment locked by another deploy
    """
    try:
        yield
    except ConfigError as e:
        logger.debug("Configuration error: %s", e)
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.field}: {e.message}", err=True)
        sys.exit(EXIT_CONFIG_ERROR)
    except DeploymentLockedError as e:
        logger.debug("Deploy lease held: %s", e)
        click.secho("Error: Environment is locked", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(EXIT_LOCKED)
    except DeploymentError as e:
        logger.error("Deployment error: %s", e)
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        if e.diagnostics:
            click.echo("", err=True)
            for line in e.diagnostics.splitlines():
                click.echo(f"  | {line}", err=True)
        sys.exit(EXIT_DEPLOYMENT_ERROR)
    except AxonError as e:
        logger.error("Error: %s", e)
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(EXIT_DEPLOYMENT_ERROR)
    except Exception as e:
        logger.exception("Unexpected error: %s", e)
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(EXIT_DEPLOYMENT_ERROR)


def require_container(descriptor: EnvironmentDescriptor, command: str) -> None:
    """Reject commands that only make sense for containerized products."""
    if descriptor.mode != DeployMode.CONTAINER:
        raise ConfigError(
            "product.type", f"'axon {command}' only applies to container products"
        )


pass_cli = click.make_pass_decorator(CliContext, ensure=True)

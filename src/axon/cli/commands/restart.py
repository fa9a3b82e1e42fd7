"""The ``axon restart`` command."""

from __future__ import annotations

import click

from axon.cli.commands.common import (
    CliContext,
    handle_deployment_errors,
    pass_cli,
    require_container,
)
from axon.deploy.deployers import create_deployer
from axon.remote.executor import SSHExecutor


@click.command()
@click.argument("environment")
@pass_cli
def restart(cli_ctx: CliContext, environment: str) -> None:
    """Restart the container of ENVIRONMENT and resync nginx.

    Example:

        axon restart production
    """
    with handle_deployment_errors():
        descriptor = cli_ctx.descriptor(environment)
        require_container(descriptor, "restart")
        with SSHExecutor() as executor:
            deployer = create_deployer(descriptor, executor, cli_ctx.reporter())
            outcome = deployer.restart()

    if not cli_ctx.quiet:
        click.secho(
            f"Restarted {outcome.container} (port {outcome.container_port})",
            fg="green",
        )

"""The ``axon delete`` command."""

from __future__ import annotations

import click

from axon.cli.commands.common import CliContext, handle_deployment_errors, pass_cli
from axon.deploy.deployers import create_deployer
from axon.remote.executor import SSHExecutor


@click.command()
@click.argument("environment")
@click.option(
    "--force",
    is_flag=True,
    help="Skip the confirmation prompt",
)
@click.option(
    "--force-unlock",
    is_flag=True,
    help="Break an existing deploy lock before deleting",
)
@pass_cli
def delete(
    cli_ctx: CliContext, environment: str, force: bool, force_unlock: bool
) -> None:
    """Remove ENVIRONMENT from the servers.

    Deletes the nginx configuration, then every container (or release
    directory) of the environment.

    Example:

        axon delete staging

        axon delete staging --force
    """
    with handle_deployment_errors():
        descriptor = cli_ctx.descriptor(environment)

    if not force:
        click.confirm(
            f"Remove {descriptor.product} ({environment}) from "
            f"{descriptor.system_server.host}?",
            abort=True,
        )

    with handle_deployment_errors():
        with SSHExecutor() as executor:
            deployer = create_deployer(descriptor, executor, cli_ctx.reporter())
            deployer.destroy(force_unlock=force_unlock)

    if not cli_ctx.quiet:
        click.secho(f"Environment '{environment}' deleted.", fg="green")

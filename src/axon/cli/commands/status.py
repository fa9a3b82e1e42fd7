"""The ``axon status`` command."""

from __future__ import annotations

import click

from axon.cli.commands.common import CliContext, handle_deployment_errors, pass_cli
from axon.deploy.deployers import create_deployer
from axon.models.environment import DeployMode
from axon.models.release import EnvironmentStatus
from axon.remote.executor import SSHExecutor


def _display_status(status: EnvironmentStatus) -> None:
    click.secho(f"Environment: {status.environment}", bold=True)
    click.echo(f"  Mode:        {status.mode.value}")
    click.echo(f"  Site config: {'present' if status.site_configured else 'absent'}")

    if status.mode == DeployMode.CONTAINER:
        live = str(status.live_port) if status.live_port is not None else "none"
        click.echo(f"  Live port:   {live}")
        if not status.containers:
            click.echo("  Containers:  none")
            return
        click.echo("  Containers:")
        for name, state in sorted(status.containers.items()):
            click.echo(f"    {name:<40} {state}")
        return

    click.echo(f"  Current:     {status.current_release or 'none'}")
    if status.releases:
        click.echo("  Releases:")
        for release_id in status.releases:
            marker = "*" if release_id == status.current_release else " "
            click.echo(f"    {marker} {release_id}")


@click.command()
@click.argument("environment")
@pass_cli
def status(cli_ctx: CliContext, environment: str) -> None:
    """Show what is currently running in ENVIRONMENT.

    Example:

        axon status production
    """
    with handle_deployment_errors():
        descriptor = cli_ctx.descriptor(environment)
        with SSHExecutor() as executor:
            deployer = create_deployer(descriptor, executor, cli_ctx.reporter())
            result = deployer.get_status()
        _display_status(result)

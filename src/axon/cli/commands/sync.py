"""The ``axon sync`` command."""

from __future__ import annotations

import click

from axon.cli.commands.common import (
    CliContext,
    handle_deployment_errors,
    pass_cli,
    require_container,
)
from axon.deploy.deployers import create_deployer
from axon.models.environment import DeployMode
from axon.models.release import SyncOutcome
from axon.remote.executor import SSHExecutor


def _display_outcome(outcome: SyncOutcome) -> None:
    if outcome.changed:
        previous = outcome.upstream_port or "none"
        click.secho(
            f"{outcome.environment}: upstream {previous} -> "
            f"{outcome.container_port} ({outcome.container})",
            fg="green",
        )
    else:
        click.echo(
            f"{outcome.environment}: in sync on port {outcome.container_port} "
            f"({outcome.container})"
        )


@click.command()
@click.argument("environment", required=False)
@click.option(
    "--all",
    "all_environments",
    is_flag=True,
    help="Sync every environment in the configuration",
)
@click.option(
    "--force",
    is_flag=True,
    help="Rewrite the nginx configuration even when the port matches",
)
@pass_cli
def sync(
    cli_ctx: CliContext,
    environment: str | None,
    all_environments: bool,
    force: bool,
) -> None:
    """Point nginx at the port of the running container.

    Use after a container was restarted outside of axon and docker
    published it on a different port.

    Example:

        axon sync production

        axon sync --all
    """
    if all_environments == (environment is not None):
        raise click.UsageError("Give either an ENVIRONMENT or --all")

    with handle_deployment_errors():
        if all_environments:
            descriptors = [
                cli_ctx.descriptor(name)
                for name in sorted(cli_ctx.project().environments)
            ]
            descriptors = [d for d in descriptors if d.mode == DeployMode.CONTAINER]
        else:
            descriptors = [cli_ctx.descriptor(environment)]
            require_container(descriptors[0], "sync")

        with SSHExecutor() as executor:
            for descriptor in descriptors:
                deployer = create_deployer(descriptor, executor, cli_ctx.reporter())
                _display_outcome(deployer.sync(force=force))

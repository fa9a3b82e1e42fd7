"""The ``axon health`` command."""

from __future__ import annotations

import sys

import click

from axon.cli.commands.common import (
    CliContext,
    handle_deployment_errors,
    pass_cli,
    require_container,
)
from axon.deploy.deployers import create_deployer
from axon.models.environment import DeployMode
from axon.models.release import HealthReport
from axon.remote.executor import SSHExecutor


def _display_report(report: HealthReport) -> None:
    verdict = "healthy" if report.healthy else "unhealthy"
    click.secho(
        f"Environment: {report.environment} ({verdict})",
        bold=True,
        fg="green" if report.healthy else "red",
    )
    if report.container is None:
        click.echo("  Container:   none")
        return
    click.echo(f"  Container:   {report.container}")
    click.echo(f"  Running:     {'yes' if report.running else 'no'}")
    click.echo(f"  Docker:      {report.state.value}")
    port = str(report.host_port) if report.host_port is not None else "none"
    click.echo(f"  Port:        {port}")
    if report.http_status is not None:
        status = str(report.http_status) if report.http_status else "no response"
        click.echo(f"  HTTP:        {status}")


@click.command()
@click.argument("environment", required=False)
@click.option(
    "--all",
    "all_environments",
    is_flag=True,
    help="Check every container environment in the configuration",
)
@pass_cli
def health(
    cli_ctx: CliContext, environment: str | None, all_environments: bool
) -> None:
    """Check the container and HTTP health of ENVIRONMENT.

    Exits with status 1 when any checked environment is unhealthy.

    Example:

        axon health production

        axon health --all
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
            require_container(descriptors[0], "health")

        reports = []
        with SSHExecutor() as executor:
            for descriptor in descriptors:
                deployer = create_deployer(descriptor, executor, cli_ctx.reporter())
                reports.append(deployer.health())

    for report in reports:
        _display_report(report)
    if not all(report.healthy for report in reports):
        sys.exit(1)

"""The ``axon logs`` command."""

from __future__ import annotations

import click

from axon.cli.commands.common import CliContext, handle_deployment_errors, pass_cli
from axon.deploy.deployers import LogKind, LogOptions, create_deployer
from axon.remote.executor import SSHExecutor


def _write(chunk: str) -> None:
    click.echo(chunk, nl=False)


@click.command()
@click.argument("environment")
@click.option(
    "--lines",
    "-n",
    "--tail",
    "lines",
    type=click.IntRange(min=0),
    default=50,
    show_default=True,
    help="Number of trailing lines to show",
)
@click.option("--follow", "-f", is_flag=True, help="Keep streaming new lines")
@click.option(
    "--since",
    default=None,
    help="Only entries newer than this, e.g. 10m or 2024-01-01 (containers)",
)
@click.option(
    "--type",
    "kind",
    type=click.Choice([k.value for k in LogKind]),
    default=LogKind.BOTH.value,
    show_default=True,
    help="nginx log to show (static sites)",
)
@pass_cli
def logs(
    cli_ctx: CliContext,
    environment: str,
    lines: int,
    follow: bool,
    since: str | None,
    kind: str,
) -> None:
    """Show the logs of ENVIRONMENT.

    Container products show the newest container's output; static sites
    show their nginx access and error logs.

    Example:

        axon logs production -n 200

        axon logs production --follow
    """
    options = LogOptions(lines=lines, follow=follow, since=since, kind=LogKind(kind))
    with handle_deployment_errors():
        descriptor = cli_ctx.descriptor(environment)
        with SSHExecutor() as executor:
            deployer = create_deployer(descriptor, executor, cli_ctx.reporter())
            try:
                deployer.logs(_write, options)
            except KeyboardInterrupt:
                click.echo()

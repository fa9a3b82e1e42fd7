"""Entry point for the ``axon`` command line."""

from __future__ import annotations

import click

from axon import __version__
from axon.cli.commands.build import build, push
from axon.cli.commands.common import CliContext
from axon.cli.commands.delete import delete
from axon.cli.commands.deploy import deploy
from axon.cli.commands.health import health
from axon.cli.commands.logs import logs
from axon.cli.commands.restart import restart
from axon.cli.commands.status import status
from axon.cli.commands.sync import sync
from axon.lib.logging_config import setup_logging


@click.group()
@click.version_option(__version__, prog_name="axon")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to axon.config.yml (default: search from the current directory)",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose debug logging",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress progress output",
)
@click.pass_context
def cli(
    ctx: click.Context, config_path: str | None, verbose: bool, quiet: bool
) -> None:
    """Zero-downtime releases of containers and static sites behind nginx.

    Example:

        axon build production

        axon push production

        axon deploy production
    """
    setup_logging(verbose=verbose, quiet=quiet)
    ctx.obj = CliContext(config_path=config_path, verbose=verbose, quiet=quiet)


cli.add_command(build)
cli.add_command(push)
cli.add_command(deploy)
cli.add_command(status)
cli.add_command(delete)
cli.add_command(sync)
cli.add_command(restart)
cli.add_command(health)
cli.add_command(logs)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

"""The ``axon deploy`` command."""

from __future__ import annotations

import sys

import click

from axon.cli.commands.common import CliContext, handle_deployment_errors, pass_cli
from axon.deploy.deployers import create_deployer
from axon.lib.logging_config import get_logger
from axon.models.environment import DeployMode, EnvironmentDescriptor
from axon.models.release import DeployOutcome
from axon.proxy.nginx import site_path, upstream_path
from axon.registry import create_registry_auth
from axon.remote.executor import SSHExecutor
from axon.runtime.options import RunOptions

logger = get_logger(__name__)


def _show_plan(descriptor: EnvironmentDescriptor) -> None:
    click.secho("[DRY RUN] Would deploy:", fg="yellow")
    click.echo(f"  Product:     {descriptor.product}")
    click.echo(f"  Environment: {descriptor.environment}")
    click.echo(f"  Mode:        {descriptor.mode.value}")
    click.echo(f"  Proxy host:  {descriptor.system_server.label}")
    click.echo(f"  Site config: {site_path(descriptor)}")

    if descriptor.mode == DeployMode.CONTAINER:
        assert descriptor.registry is not None  # nosec B101
        assert descriptor.application_server is not None  # nosec B101
        image_uri = create_registry_auth(descriptor.registry).build_image_uri(
            descriptor.image_tag
        )
        options = RunOptions.for_release(
            descriptor, f"{descriptor.container_prefix}-<timestamp>", image_uri
        )
        click.echo(f"  App host:    {descriptor.application_server.label}")
        click.echo(f"  Upstream:    {upstream_path(descriptor)}")
        click.echo(f"  Image:       {image_uri}")
        click.echo()
        click.secho("Container command:", bold=True)
        click.echo(f"  {options.to_command()}")
    else:
        click.echo(f"  Release dir: {descriptor.static_root}")

    click.echo()
    click.secho("[DRY RUN] Nothing was changed", fg="yellow")


def _show_outcome(outcome: DeployOutcome) -> None:
    click.echo()
    click.secho("Deployment Successful!", fg="green", bold=True)
    click.echo(f"  Environment: {outcome.environment}")
    click.echo(f"  Release:     {outcome.release_id}")
    if outcome.previous_release_id:
        click.echo(f"  Replaced:    {outcome.previous_release_id}")
    if outcome.image_uri:
        click.echo(f"  Image:       {outcome.image_uri}")
    if outcome.assigned_port is not None:
        click.echo(f"  Port:        {outcome.assigned_port}")
    if outcome.release_path:
        click.echo(f"  Path:        {outcome.release_path}")
    if outcome.cleanup_errors:
        click.secho(
            f"  Cleanup finished with {len(outcome.cleanup_errors)} warning(s)",
            fg="yellow",
        )


@click.command()
@click.argument("environment")
@click.option(
    "--tag",
    type=str,
    default=None,
    help="Image tag to deploy (overrides the environment's image_tag)",
)
@click.option(
    "--force-unlock",
    is_flag=True,
    help="Break an existing deploy lock before deploying",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show what would be done without executing",
)
@pass_cli
def deploy(
    cli_ctx: CliContext,
    environment: str,
    tag: str | None,
    force_unlock: bool,
    dry_run: bool,
) -> None:
    """Release the product to ENVIRONMENT without downtime.

    Container products start a new container, wait for it to become healthy,
    switch nginx to it and retire the previous containers. Static products
    extract the uploaded bundle into a new release and switch the current
    symlink.

    Example:

        axon deploy production

        axon deploy staging --tag v1.4.0

        axon deploy production --dry-run
    """
    with handle_deployment_errors():
        descriptor = cli_ctx.descriptor(environment, image_tag=tag)

        if dry_run:
            _show_plan(descriptor)
            sys.exit(0)

        logger.info(
            "Deploying %s to %s (%s)",
            descriptor.product,
            descriptor.environment,
            descriptor.mode.value,
        )
        with SSHExecutor() as executor:
            deployer = create_deployer(descriptor, executor, cli_ctx.reporter())
            outcome = deployer.deploy(force_unlock=force_unlock)

        if cli_ctx.quiet:
            click.echo(outcome.release_id)
            return
        _show_outcome(outcome)

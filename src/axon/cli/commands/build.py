"""The ``axon build`` and ``axon push`` commands.

Both run on the control machine. Container products are built into a local
image and pushed to the registry; static products run their build command
and upload a bundle to the system server.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click

from axon.cli.commands.common import CliContext, handle_deployment_errors, pass_cli
from axon.deploy.builder import (
    BuildResult,
    ContainerBuilder,
    ImagePusher,
    generate_tag,
    get_oci_labels,
)
from axon.deploy.bundle import (
    check_build_output,
    package_static_bundle,
    run_build_command,
    upload_static_bundle,
)
from axon.lib.errors import ConfigError, DeploymentError
from axon.lib.logging_config import get_logger
from axon.models.environment import DeployMode, EnvironmentDescriptor
from axon.models.project import ProjectConfig
from axon.registry import create_registry_auth
from axon.remote.executor import SSHExecutor

logger = get_logger(__name__)


def _build_tags(project: ProjectConfig, image_tag: str, quiet: bool) -> list[str]:
    """Return the environment tag followed by the strategy tag, if any."""
    tags = [image_tag]
    strategy = project.build.tag_strategy
    if strategy is None:
        return tags
    try:
        extra = generate_tag(strategy, project.build.custom_tag)
    except DeploymentError as e:
        logger.warning("Skipping %s tag: %s", strategy.value, e.message)
        if not quiet:
            click.secho(f"Warning: {e.message}", fg="yellow", err=True)
        return tags
    if extra not in tags:
        tags.append(extra)
    return tags


def _static_build_dir(
    cli_ctx: CliContext, project: ProjectConfig, environment: str
) -> Path:
    env = project.environments[environment]
    return cli_ctx.config_file().parent / env.build_output_dir


def _display_build_success(result: BuildResult, quiet: bool) -> None:
    if quiet:
        click.echo(result.full_names[0])
        return
    click.echo()
    click.secho("Build Successful!", fg="green", bold=True)
    click.echo(f"  Image ID: {result.image_id[:19]}")
    for name in result.full_names:
        click.echo(f"  Tagged:   {name}")
    click.echo()
    click.echo("Next: axon push <environment>")


def _build_container(
    cli_ctx: CliContext,
    project: ProjectConfig,
    descriptor: EnvironmentDescriptor,
    no_cache: bool,
) -> None:
    assert descriptor.registry is not None  # nosec B101
    image_name = create_registry_auth(descriptor.registry).image_repository()
    tags = _build_tags(project, descriptor.image_tag, cli_ctx.quiet)
    context = cli_ctx.config_file().parent / project.build.context

    if not cli_ctx.quiet:
        click.secho("Build Configuration:", bold=True)
        click.echo(f"  Product:   {descriptor.product}")
        click.echo(f"  Image:     {image_name}:{tags[0]}")
        click.echo(f"  Platform:  {project.build.platform}")
        click.echo(f"  Context:   {context}")
        click.echo()

    build_kwargs: dict[str, Any] = {}
    if no_cache:
        build_kwargs["nocache"] = True

    builder = ContainerBuilder()
    result = builder.build(
        build_context=str(context),
        image_name=image_name,
        tags=tags,
        labels=get_oci_labels(descriptor.product, descriptor.image_tag),
        dockerfile=project.build.dockerfile,
        platform=project.build.platform,
        **build_kwargs,
    )
    if cli_ctx.verbose and result.log_lines:
        click.secho("Build Output:", bold=True)
        for line in result.log_lines:
            if line.strip():
                click.echo(f"  {line}")
        click.echo()
    _display_build_success(result, cli_ctx.quiet)


def _build_static(
    cli_ctx: CliContext, project: ProjectConfig, descriptor: EnvironmentDescriptor
) -> None:
    env = project.environments[descriptor.environment]
    if not env.build_command:
        raise ConfigError(
            f"environments.{descriptor.environment}.build_command",
            "A build command is required to build a static product",
        )
    build_dir = _static_build_dir(cli_ctx, project, descriptor.environment)
    run_build_command(env.build_command, cwd=cli_ctx.config_file().parent)
    assert descriptor.static is not None  # nosec B101
    check_build_output(build_dir, descriptor.static.required_files)
    if not cli_ctx.quiet:
        click.secho("Build Successful!", fg="green", bold=True)
        click.echo(f"  Output: {build_dir}")
        click.echo()
        click.echo("Next: axon push <environment>")


@click.command()
@click.argument("environment")
@click.option(
    "--tag",
    type=str,
    default=None,
    help="Image tag to build (overrides the environment's image_tag)",
)
@click.option(
    "--no-cache",
    is_flag=True,
    help="Build without using cache",
)
@pass_cli
def build(
    cli_ctx: CliContext, environment: str, tag: str | None, no_cache: bool
) -> None:
    """Build the product for ENVIRONMENT on this machine.

    Example:

        axon build production

        axon build staging --tag v1.4.0 --no-cache
    """
    with handle_deployment_errors():
        project = cli_ctx.project()
        descriptor = cli_ctx.descriptor(environment, image_tag=tag)
        if descriptor.mode == DeployMode.CONTAINER:
            _build_container(cli_ctx, project, descriptor, no_cache)
        else:
            _build_static(cli_ctx, project, descriptor)


@click.command()
@click.argument("environment")
@click.option(
    "--tag",
    type=str,
    default=None,
    help="Image tag to push (overrides the environment's image_tag)",
)
@pass_cli
def push(cli_ctx: CliContext, environment: str, tag: str | None) -> None:
    """Publish the build of ENVIRONMENT where deploy can find it.

    Container images are pushed to the registry. Static builds are packaged
    and uploaded to the system server.

    Example:

        axon push production
    """
    with handle_deployment_errors():
        project = cli_ctx.project()
        descriptor = cli_ctx.descriptor(environment, image_tag=tag)

        if descriptor.mode == DeployMode.CONTAINER:
            assert descriptor.registry is not None  # nosec B101
            auth = create_registry_auth(descriptor.registry)
            credential = auth.resolve_credential()
            image_name = auth.image_repository()
            if not cli_ctx.quiet:
                click.echo(f"Pushing {image_name}:{descriptor.image_tag}...")
            ImagePusher().push(image_name, descriptor.image_tag, credential)
            if not cli_ctx.quiet:
                click.secho("Push Successful!", fg="green", bold=True)
            return

        assert descriptor.static is not None  # nosec B101
        bundle = package_static_bundle(
            _static_build_dir(cli_ctx, project, environment),
            required_files=descriptor.static.required_files,
        )
        try:
            with SSHExecutor() as executor:
                remote_path = upload_static_bundle(
                    bundle, descriptor.system_server, executor
                )
        finally:
            bundle.unlink(missing_ok=True)
        if not cli_ctx.quiet:
            click.secho("Upload Successful!", fg="green", bold=True)
            click.echo(f"  Bundle: {descriptor.system_server.label}:{remote_path}")

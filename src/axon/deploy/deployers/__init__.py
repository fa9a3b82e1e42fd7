"""Environment deployers for Axon."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from axon.deploy.deployers.base import BaseDeployer, LogKind, LogOptions
from axon.lib.errors import DeploymentError
from axon.models.environment import DeployMode

if TYPE_CHECKING:
    from axon.lib.ui.progress import ProgressReporter
    from axon.models.environment import EnvironmentDescriptor
    from axon.remote.batch import CommandExecutor


def create_deployer(
    descriptor: EnvironmentDescriptor,
    executor: CommandExecutor,
    reporter: ProgressReporter | None = None,
    **kwargs: Any,
) -> BaseDeployer:
    """Create the deployer matching the environment's release mode."""
    if descriptor.mode == DeployMode.CONTAINER:
        from axon.deploy.deployers.container import ContainerDeployer

        return ContainerDeployer(descriptor, executor, reporter, **kwargs)

    if descriptor.mode == DeployMode.STATIC:
        from axon.deploy.deployers.static import StaticDeployer

        return StaticDeployer(descriptor, executor, reporter, **kwargs)

    raise DeploymentError(
        operation="deploy",
        message=f"Unsupported deploy mode: {descriptor.mode}",
    )


__all__ = ["BaseDeployer", "LogKind", "LogOptions", "create_deployer"]

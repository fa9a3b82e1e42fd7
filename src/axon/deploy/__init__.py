"""Axon deployment engine.

This package provides the release state machines for container and static
environments, the deploy lease, supervised cleanup, and the local build,
push and bundle steps that feed them.
"""

from axon.deploy.cleanup import CleanupSupervisor
from axon.deploy.deployers import BaseDeployer, create_deployer
from axon.deploy.lock import DeployLock

__all__ = [
    "BaseDeployer",
    "CleanupSupervisor",
    "DeployLock",
    "create_deployer",
]

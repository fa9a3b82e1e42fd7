"""Axon - zero-downtime releases of containers and static sites behind nginx.

Axon deploys a product to a pair of hosts: a system server running nginx and
an application server running Docker containers. New containers are started
on an ephemeral port, proven healthy, and only then put behind nginx; old
containers are drained afterwards. Static sites are released into immutable
directories and switched with an atomic symlink swap.
"""

from axon.config.loader import ConfigLoader
from axon.lib.errors import AxonError, ConfigError, DeploymentError

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "AxonError",
    "ConfigLoader",
    "ConfigError",
    "DeploymentError",
]

"""Docker runtime commands for the application server."""

from axon.runtime.client import ContainerInfo, DockerRuntime
from axon.runtime.options import HealthCheckOptions, RunOptions

__all__ = ["ContainerInfo", "DockerRuntime", "HealthCheckOptions", "RunOptions"]

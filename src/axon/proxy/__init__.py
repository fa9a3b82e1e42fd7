"""nginx configuration rendering and safe rollout on the system server."""

from axon.proxy.manager import (
    ProxyConfigManager,
    ProxySnapshot,
    StagedConfig,
    ValidationResult,
)
from axon.proxy.nginx import ProxyConfigArtifact, ProxyDocument

__all__ = [
    "ProxyConfigArtifact",
    "ProxyConfigManager",
    "ProxyDocument",
    "ProxySnapshot",
    "StagedConfig",
    "ValidationResult",
]

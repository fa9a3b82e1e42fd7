"""Custom exception hierarchy for Axon configuration and deployments."""


class AxonError(Exception):
    """Base exception for all Axon errors.

    All Axon-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI.
    """

    pass


class ConfigError(AxonError):
    """Exception raised for configuration errors.

    Raised when the project configuration is missing, malformed, or refers to
    credentials that cannot be resolved. Configuration errors are always
    raised before any remote host is modified.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class DeploymentError(AxonError):
    """Exception raised when a deployment step fails terminally.

    Attributes:
        operation: The deployment step that failed (e.g. "provision")
        message: Human-readable error message
        diagnostics: Raw output from the remote tool, if any
    """

    def __init__(
        self, operation: str, message: str, diagnostics: str | None = None
    ) -> None:
        """Initialize DeploymentError.

        Args:
            operation: Name of the failed operation
            message: Descriptive error message
            diagnostics: Optional remote output explaining the failure
        """
        self.operation = operation
        self.message = message
        self.diagnostics = diagnostics
        super().__init__(f"Deployment error during '{operation}': {message}")


class ProvisioningError(DeploymentError):
    """Raised when a new workload instance cannot be started."""

    def __init__(self, message: str, diagnostics: str | None = None) -> None:
        super().__init__("provision", message, diagnostics)


class HealthCheckError(DeploymentError):
    """Raised when a new instance does not become healthy within its budget.

    Attributes:
        release_id: Identifier of the instance that failed
        attempts: Number of health polls performed
    """

    def __init__(self, release_id: str, attempts: int, last_status: str) -> None:
        self.release_id = release_id
        self.attempts = attempts
        self.last_status = last_status
        super().__init__(
            "health_check",
            f"Container '{release_id}' did not become healthy after "
            f"{attempts} checks (last status: {last_status})",
        )


class ProxyConfigError(DeploymentError):
    """Raised when nginx rejects a configuration or cannot be reloaded."""

    def __init__(self, message: str, diagnostics: str | None = None) -> None:
        super().__init__("proxy_config", message, diagnostics)


class DeploymentLockedError(DeploymentError):
    """Raised when another deploy holds the environment lease.

    Attributes:
        owner: Description of the lease holder as recorded on the proxy host
    """

    def __init__(self, environment: str, owner: str) -> None:
        self.owner = owner
        super().__init__(
            "lock",
            f"Environment '{environment}' is locked by another deploy ({owner}). "
            "Use --force-unlock if the previous deploy is no longer running.",
        )


class DockerNotAvailableError(DeploymentError):
    """Raised when the local Docker daemon cannot be reached."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            operation,
            "Docker is not available. Make sure the Docker daemon is running "
            "and accessible to the current user.",
        )


class RemoteExecutionError(AxonError):
    """Raised when a remote host cannot be reached or a session breaks.

    Attributes:
        host: Host address the failure relates to
        message: Transport-level error message
    """

    def __init__(self, host: str, message: str) -> None:
        self.host = host
        self.message = message
        super().__init__(f"Remote execution failed on '{host}': {message}")


class BatchNotExecutedError(AxonError):
    """Raised when batch results are read before the batch has completed."""


class UnknownCommandError(AxonError):
    """Raised when a batch result is requested for a name never added."""

    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        self.available = available
        super().__init__(
            f"No command named '{name}' in batch "
            f"(available: {', '.join(available) or 'none'})"
        )


# Optional dependency group per registry provider
SDK_EXTRAS = {"aws_ecr": "aws", "google_gcr": "gcp", "azure_acr": "azure"}


class CloudSDKNotInstalledError(ConfigError):
    """Raised when a registry provider's SDK is not installed.

    Attributes:
        provider: Registry provider that needs the SDK
        sdk_name: Distribution name of the missing package
    """

    def __init__(self, provider: str, sdk_name: str) -> None:
        self.provider = provider
        self.sdk_name = sdk_name
        super().__init__(
            f"registry.{provider}",
            f"'{sdk_name}' is required for {provider}. "
            f"Install it with: pip install 'axon-deploy[{SDK_EXTRAS[provider]}]'",
        )
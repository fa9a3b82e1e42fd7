"""Default configuration values for Axon deployments."""

# Reverse proxy tuning applied to every proxy site
NGINX_PROXY_DEFAULTS: dict[str, str] = {
    "timeout": "60",
    "buffer_size": "128k",
    "buffers": "4 256k",
    "busy_buffers_size": "256k",
}

# Locations of the nginx main config and the directory Axon manages
NGINX_PATH_DEFAULTS: dict[str, str] = {
    "config": "/etc/nginx/nginx.conf",
    "axon_dir": "/etc/nginx/axon.d",
    "log_dir": "/var/log/nginx",
}

DEFAULT_DOMAIN = "_"

# Container runtime defaults
DOCKER_DEFAULTS: dict[str, str | int] = {
    "restart_policy": "unless-stopped",
    "log_driver": "json-file",
    "log_max_size": "10m",
    "log_max_file": 3,
}

# Health check defaults (docker HEALTHCHECK and the deploy poll loop)
HEALTH_CHECK_DEFAULTS: dict[str, str | int | float] = {
    "endpoint": "/health",
    "interval": "30s",
    "timeout": "10s",
    "retries": 3,
    "start_period": "40s",
    "max_retries": 30,
    "retry_interval": 2.0,
}

DEPLOYMENT_DEFAULTS: dict[str, int | bool] = {
    "graceful_shutdown_timeout": 30,  # seconds
    "enable_auto_rollback": True,
    "lock_timeout": 1800,  # seconds
}

STATIC_DEFAULTS: dict[str, str | int] = {
    "deploy_user": "www-data",
    "keep_releases": 5,
    "build_output_dir": "dist",
}

# Where `axon push` uploads static bundles and where deploy looks for them
STATIC_ARCHIVE_DIR = "/tmp"  # nosec B108
STATIC_ARCHIVE_PREFIX = "static-build-"
STATIC_ARCHIVE_SUFFIX = ".tar.gz"

DEFAULT_CONFIG_FILE = "axon.config.yml"

# Local image builds
BUILD_DEFAULTS: dict[str, str] = {
    "context": ".",
    "dockerfile": "Dockerfile",
    "platform": "linux/amd64",
}

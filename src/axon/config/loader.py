"""Configuration loader for Axon projects.

This module provides the ConfigLoader class for loading, parsing, and
validating ``axon.config.yml`` and resolving environment descriptors.
"""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from axon.config.defaults import DEFAULT_CONFIG_FILE
from axon.config.env_loader import substitute_env_vars
from axon.config.validator import flatten_pydantic_errors
from axon.lib.errors import ConfigError
from axon.models.environment import EnvironmentDescriptor
from axon.models.project import ProjectConfig

logger = logging.getLogger(__name__)


def _read_yaml_with_env_substitution(path: Path) -> dict[str, Any] | None:
    """Read a YAML file with environment variable substitution.

    Args:
        path: Path to YAML file

    Returns:
        Parsed dictionary or None if empty

    Raises:
        OSError: If file cannot be read
        yaml.YAMLError: If YAML parsing fails
        ConfigError: If env var substitution fails
    """
    raw_text = path.read_text(encoding="utf-8")
    substituted = substitute_env_vars(raw_text)
    content = yaml.safe_load(substituted)
    return content if content else None


def find_config_file(start: Path | None = None) -> Path:
    """Locate ``axon.config.yml`` in ``start`` or one of its parents.

    Raises:
        ConfigError: If no configuration file is found
    """
    directory = (start or Path.cwd()).resolve()
    for candidate_dir in (directory, *directory.parents):
        candidate = candidate_dir / DEFAULT_CONFIG_FILE
        if candidate.is_file():
            return candidate
    raise ConfigError(
        "config",
        f"{DEFAULT_CONFIG_FILE} not found in {directory} or any parent directory. "
        "Pass --config to point at the project configuration.",
    )


class ConfigLoader:
    """Loads and validates Axon project configuration.

    Parsed projects are cached per path so that several commands in one
    process read the file once.
    """

    def __init__(self) -> None:
        self._projects: dict[Path, ProjectConfig] = {}

    def load(self, file_path: str | Path | None = None) -> ProjectConfig:
        """Load and validate a project configuration file.

        Args:
            file_path: Path to the configuration file. When omitted the file is
                searched for from the current directory upwards.

        Returns:
            Validated ProjectConfig

        Raises:
            ConfigError: If the file is missing, unparsable, or invalid
        """
        path = Path(file_path) if file_path else find_config_file()
        path = path.resolve()
        if path in self._projects:
            return self._projects[path]

        try:
            content = _read_yaml_with_env_substitution(path)
        except OSError as e:
            raise ConfigError(
                "config",
                f"Configuration file not found at {path}. "
                f"Please ensure the file exists at this path.",
            ) from e
        except yaml.YAMLError as e:
            raise ConfigError(
                "yaml_parse",
                f"Failed to parse YAML file {path}: {str(e)}",
            ) from e

        if not content:
            raise ConfigError("config", f"Configuration file {path} is empty")

        try:
            project = ProjectConfig(**content)
        except PydanticValidationError as e:
            error_text = "\n".join(flatten_pydantic_errors(e))
            raise ConfigError(
                "project_validation",
                f"Invalid configuration in {path}:\n{error_text}",
            ) from e

        logger.debug(
            "Loaded project %s with environments: %s",
            project.product.name,
            ", ".join(project.environments),
        )
        self._projects[path] = project
        return project

    def load_environment(
        self,
        environment: str,
        file_path: str | Path | None = None,
        image_tag: str | None = None,
    ) -> EnvironmentDescriptor:
        """Load the project and resolve one environment.

        Args:
            environment: Environment name
            file_path: Path to the configuration file
            image_tag: Overrides the environment's configured image tag

        Returns:
            EnvironmentDescriptor for the environment

        Raises:
            ConfigError: If loading fails or the environment is unknown
        """
        project = self.load(file_path)
        descriptor = project.resolve(environment)
        if image_tag:
            descriptor = descriptor.model_copy(update={"image_tag": image_tag})
        return descriptor

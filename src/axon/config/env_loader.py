"""Environment variable substitution for configuration files."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping

from axon.lib.errors import ConfigError

# ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def substitute_env_vars(text: str, env: Mapping[str, str] | None = None) -> str:
    """Replace ``${VAR}`` references in text with environment values.

    ``${VAR:-default}`` falls back to ``default`` when VAR is unset or empty.

    Args:
        text: Raw configuration text
        env: Environment mapping (defaults to ``os.environ``)

    Returns:
        Text with all references substituted

    Raises:
        ConfigError: If a referenced variable is unset and has no default
    """
    environ = os.environ if env is None else env

    def _replace(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        value = environ.get(name)
        if value:
            return value
        if default is not None:
            return default
        raise ConfigError(
            name,
            f"Environment variable '{name}' is not set. "
            f"Export it or use ${{{name}:-default}} in the configuration.",
        )

    return ENV_VAR_PATTERN.sub(_replace, text)

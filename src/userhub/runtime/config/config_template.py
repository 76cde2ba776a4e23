"""Configuration template substitution utilities."""

import os
import re
from pathlib import Path

import yaml
from loguru import logger
from pydantic_core import ValidationError

from src.userhub.runtime.config.config_data import ConfigData
from src.userhub.runtime.config.settings import EnvironmentVariables


def substitute_env_vars(text: str) -> str:
    """
    Substitute environment variable placeholders in text.

    Supports formats:
    - ${VAR_NAME} - required variable (raises error if missing)
    - ${VAR_NAME:-default} - optional with default value
    - ${VAR_NAME:?error_message} - required with custom error message
    """
    def replacer(match):
        var_expr = match.group(1)

        # ${VAR:-default}
        if ":-" in var_expr:
            var_name, default = var_expr.split(":-", 1)
            return os.getenv(var_name, default)

        # ${VAR:?message}
        elif ":?" in var_expr:
            var_name, error_msg = var_expr.split(":?", 1)
            value = os.getenv(var_name)
            if value is None:
                raise ValueError(f"Required environment variable {var_name}: {error_msg}")
            return value

        # ${VAR}
        else:
            var_name = var_expr
            value = os.getenv(var_name)
            if value is None:
                raise ValueError(f"Required environment variable {var_name} not set")
            return value

    pattern = r'\$\{([^}]+)\}'
    return re.sub(pattern, replacer, text)


def load_templated_yaml(file_path: Path) -> ConfigData:
    """
    Load a YAML file with environment variable substitution.

    Args:
        file_path: Path to the YAML file

    Returns:
        Parsed configuration with environment variables substituted

    Raises:
        ValueError: If required environment variables are missing
        FileNotFoundError: If the YAML file doesn't exist
    """
    with open(file_path) as f:
        content = f.read()

    env_mode = EnvironmentVariables().environment
    logger.info(f"Loading configuration for environment: {env_mode}")

    # Promote <ENV>_FOO variables to FOO for the active environment
    env_variables = [(var, value) for var, value in os.environ.items() if var.startswith(f"{env_mode.upper()}_")]
    logger.info(f"Applying environment-specific overrides: {[name for name, _ in env_variables]}")

    for var_name, var_value in env_variables:
        new_var_name = var_name[len(f"{env_mode.upper()}_"):]

        os.environ[new_var_name] = var_value
        logger.debug(f"Set environment variable {new_var_name} from {var_name}")

    substituted_content = substitute_env_vars(content)

    try:
        loaded = yaml.safe_load(substituted_content)
        if not loaded:
            raise ValueError("Failed to parse YAML")
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML: {e}") from e

    try:
        config_data = loaded.get('config', {})
        config = ConfigData(**config_data)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e

    if config.store.backend == "memory" and config.app.environment == "production":
        logger.warning("In-memory user store configured in production; data will not survive a restart")

    return config


def load_config_or_default(file_path: Path) -> ConfigData:
    """Load config.yaml if present, otherwise fall back to built-in defaults."""
    if not file_path.exists():
        logger.warning(f"{file_path} not found, using default configuration")
        return ConfigData()
    return load_templated_yaml(file_path)

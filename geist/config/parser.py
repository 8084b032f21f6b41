"""Configuration loading for Geist.

Settings are resolved in order: environment variables, then an optional
YAML config file, then the defaults on SupervisorConfig.
"""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from geist.config.schemas import DEFAULT_DATA_SUBDIR, ReleaseManifest, SupervisorConfig
from geist.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.yaml"

# Environment variable -> SupervisorConfig field
ENV_FIELDS: dict[str, str] = {
    "GEIST_REGISTRY_BACKEND": "backend",
    "GEIST_REGISTRY_URL": "registry_url",
    "GEIST_GITHUB_API_URL": "github_api_url",
    "GEIST_GITHUB_REPO": "github_repo",
    "GEIST_REGISTRY_TOKEN": "token",
    "GEIST_HTTP_TIMEOUT": "timeout",
    "GEIST_CURRENT_VERSION": "current_version_override",
    "GEIST_BINARY_NAME": "binary_name",
    "GEIST_ASSETS_DIR": "assets_dir_name",
    "GEIST_SUPERVISOR_BINARY": "supervisor_binary_name",
    "GEIST_BIN_DIR": "bin_dir",
    "GEIST_APP_DIR": "app_dir",
}


def load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Parsed YAML as a dictionary

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    if not path.exists():
        raise ConfigError(f"File not found: {path}", path)

    try:
        with open(path, encoding="utf-8") as f:
            result = yaml.safe_load(f)
            if result is None:
                return {}
            if not isinstance(result, dict):
                raise ConfigError(f"YAML file must contain a mapping: {path}", path)
            return result
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}", path) from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}", path) from e


def resolve_data_dir(env: Mapping[str, str]) -> Path:
    """Determine the data directory from the environment.

    GEIST_DATA_DIR wins; otherwise $HOME/.local/share/roc-supervisor.

    Raises:
        ConfigError: If neither variable is set
    """
    explicit = env.get("GEIST_DATA_DIR", "").strip()
    if explicit:
        return Path(explicit).expanduser()

    home = env.get("HOME", "").strip()
    if not home:
        raise ConfigError("Cannot determine data directory: neither GEIST_DATA_DIR nor HOME is set")
    return Path(home) / DEFAULT_DATA_SUBDIR


def load_config(env: Mapping[str, str] | None = None) -> SupervisorConfig:
    """Build the supervisor configuration.

    Args:
        env: Environment mapping (defaults to os.environ)

    Returns:
        Validated SupervisorConfig

    Raises:
        ConfigError: If the data directory cannot be determined, the config
            file is unreadable, or a value fails validation
    """
    if env is None:
        env = os.environ

    data_dir = resolve_data_dir(env)
    logger.debug("Using data directory %s", data_dir)

    values: dict[str, Any] = {}

    config_path: Path | None = None
    explicit_config = env.get("GEIST_CONFIG", "").strip()
    if explicit_config:
        config_path = Path(explicit_config).expanduser()
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}", config_path)
    elif (data_dir / CONFIG_FILE_NAME).exists():
        config_path = data_dir / CONFIG_FILE_NAME

    if config_path is not None:
        logger.info("Loading configuration from %s", config_path)
        values.update(load_yaml(config_path))

    for var, field_name in ENV_FIELDS.items():
        value = env.get(var)
        if value is not None and value.strip():
            values[field_name] = value.strip()

    # GITHUB_TOKEN is accepted as a fallback for the registry token
    if "token" not in values and env.get("GITHUB_TOKEN", "").strip():
        values["token"] = env["GITHUB_TOKEN"].strip()

    values["data_dir"] = data_dir

    try:
        return SupervisorConfig.model_validate(values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}", config_path) from e


def load_release_manifest(path: Path) -> ReleaseManifest:
    """Load a release manifest.yaml.

    Args:
        path: Path to manifest.yaml

    Returns:
        Parsed ReleaseManifest

    Raises:
        ConfigError: If the file is missing or invalid
    """
    data = load_yaml(path)
    try:
        return ReleaseManifest.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid release manifest: {e}", path) from e

"""Registry client factory."""

import logging

from geist.config.schemas import SupervisorConfig
from geist.errors import ConfigError
from geist.registry.base import RegistryClient
from geist.registry.http import HttpClient

logger = logging.getLogger(__name__)


def create_registry_client(config: SupervisorConfig, http: HttpClient | None = None) -> RegistryClient:
    """Create the registry client selected by the configuration.

    Args:
        config: Supervisor configuration
        http: Optional shared HTTP transport

    Returns:
        Appropriate RegistryClient instance

    Raises:
        ConfigError: If the backend is unknown or misconfigured
    """
    http = http or HttpClient(config.timeout)

    if config.backend == "gcs":
        from geist.registry.gcs import ObjectStorageRegistryClient

        logger.debug("Creating object-storage registry client for %s", config.registry_url)
        return ObjectStorageRegistryClient(config.registry_url, token=config.token, http=http)
    elif config.backend == "github":
        from geist.registry.github import GitHubReleasesClient

        logger.debug("Creating GitHub releases client for %s", config.github_repo)
        return GitHubReleasesClient(
            config.github_repo,
            token=config.token,
            api_url=config.github_api_url,
            http=http,
        )
    else:
        logger.error("Unsupported registry backend: %s", config.backend)
        raise ConfigError(f"Unsupported registry backend: {config.backend}")

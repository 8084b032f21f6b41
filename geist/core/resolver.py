"""Version resolution against a registry."""

import logging

from geist.errors import VersionNotFoundError
from geist.registry.base import RegistryClient, ReleaseVersion

logger = logging.getLogger(__name__)


class VersionResolver:
    """Turns a user-supplied version token into a verified ReleaseVersion.

    An empty token or the alias (normally "latest") is replaced by the
    registry's latest release before anything else happens, so nothing
    literally named "latest" is ever installed.
    """

    def __init__(self, registry: RegistryClient, alias: str = "latest"):
        """Initialize the resolver.

        Args:
            registry: Registry to query
            alias: Token that stands for the latest release
        """
        self.registry = registry
        self.alias = alias

    def expand(self, token: str | None) -> ReleaseVersion:
        """Resolve the alias without probing for existence.

        Args:
            token: Version token, empty/None for the alias

        Returns:
            ReleaseVersion with display and normalized forms
        """
        token = (token or "").strip() or self.alias
        if token == self.alias:
            logger.info("Resolving '%s' against the %s registry", token, self.registry.protocol)
            token = self.registry.get_latest_version()
        return ReleaseVersion.from_token(token)

    def resolve(self, token: str | None) -> ReleaseVersion:
        """Resolve a token and confirm the registry has that version.

        Args:
            token: Version token ("1.2.3", "v1.2.3", "latest", or empty)

        Returns:
            Verified ReleaseVersion

        Raises:
            VersionNotFoundError: If the registry does not have the version
            NetworkError: If the registry cannot be reached
        """
        version = self.expand(token)
        logger.info("Verifying version %s (registry version %s)", version.display, version.normalized)
        if not self.registry.verify_version(version):
            raise VersionNotFoundError(version.display, self.registry.describe_probe(version))
        return version

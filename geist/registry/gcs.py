"""Object-storage registry client (Google Cloud Storage over HTTPS)."""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import urlparse

from geist.config.schemas import CHECKSUM_FILE_NAME, bundle_filename
from geist.errors import ConfigError, NetworkError
from geist.registry.base import RegistryClient, ReleaseVersion
from geist.registry.http import HttpClient

logger = logging.getLogger(__name__)


class ObjectStorageRegistryClient(RegistryClient):
    """Registry client for releases published to an object-storage bucket.

    Layout under the base URL:
        <base>/releases/latest                                  (text: latest version)
        <base>/releases/<normalized>/checksums.txt              (existence probe)
        <base>/releases/<normalized>/release_bundle-<display>.tar.gz

    A bearer token is sent only when one is configured.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: int | None = None,
        http: HttpClient | None = None,
    ):
        """Initialize the object-storage registry client.

        Args:
            base_url: Bucket base URL (https://storage.googleapis.com/<bucket>)
            token: Optional bearer token
            timeout: Request timeout in seconds
            http: HTTP transport (created if not given)
        """
        parsed = urlparse(base_url)
        if parsed.scheme != "https":
            raise ConfigError(f"Invalid registry URL scheme: {parsed.scheme or '(none)'} (expected https)")

        self._base_url = base_url.rstrip("/")
        self._token = token
        self._http = http or HttpClient(timeout)
        logger.info("Initializing object-storage registry client for %s", self._base_url)

    @property
    def protocol(self) -> str:
        return "gcs"

    @property
    def base_url(self) -> str:
        """Get the base URL."""
        return self._base_url

    def _headers(self) -> dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    def checksum_url(self, version: ReleaseVersion) -> str:
        """URL of the checksum manifest used as the existence probe."""
        return f"{self._base_url}/releases/{version.normalized}/{CHECKSUM_FILE_NAME}"

    def bundle_url(self, version: ReleaseVersion) -> str:
        """URL of the release bundle for a version."""
        return f"{self._base_url}/releases/{version.normalized}/{bundle_filename(version.display)}"

    def get_latest_version(self) -> str:
        url = f"{self._base_url}/releases/latest"
        content = self._http.get(url, headers=self._headers())
        try:
            latest = content.decode("utf-8").strip()
        except UnicodeDecodeError as e:
            raise NetworkError(f"Latest version at {url} is not text", url=url) from e
        if not latest:
            raise NetworkError(f"Latest version at {url} is empty", url=url)
        logger.info("Registry reports latest version %s", latest)
        return latest

    def verify_version(self, version: ReleaseVersion) -> bool:
        url = self.checksum_url(version)
        found = self._http.exists(url, headers=self._headers())
        logger.debug("Version %s %s at %s", version.display, "found" if found else "not found", url)
        return found

    def fetch_bundle(self, version: ReleaseVersion, dest: Path) -> Path:
        url = self.bundle_url(version)
        logger.info("Downloading release bundle %s", url)
        return self._http.download(url, dest, headers=self._headers())

    def describe_probe(self, version: ReleaseVersion) -> str:
        return self.checksum_url(version)

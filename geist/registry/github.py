"""GitHub Releases registry client."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from geist.config.schemas import bundle_filename
from geist.errors import ConfigError, NetworkError
from geist.registry.base import RegistryClient, ReleaseVersion
from geist.registry.http import HttpClient
from geist.utils.version import tag_version

logger = logging.getLogger(__name__)

JSON_ACCEPT = "application/vnd.github.v3+json"
BINARY_ACCEPT = "application/octet-stream"


class GitHubReleasesClient(RegistryClient):
    """Registry client for bundles attached to tagged GitHub releases.

    Releases are tagged "v<normalized>" and carry an asset named
    "release_bundle-v<normalized>.tar.gz". Assets are downloaded through the
    API by asset id so private repositories work with a token.
    """

    def __init__(
        self,
        repo: str,
        token: str | None,
        api_url: str = "https://api.github.com",
        timeout: int | None = None,
        http: HttpClient | None = None,
    ):
        """Initialize the GitHub releases client.

        Args:
            repo: Repository in "org/repo" form
            token: Bearer token (required)
            api_url: API base URL
            timeout: Request timeout in seconds
            http: HTTP transport (created if not given)
        """
        if not token:
            raise ConfigError("The github registry backend requires a token (GEIST_REGISTRY_TOKEN or GITHUB_TOKEN)")

        self._repo = repo
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._http = http or HttpClient(timeout)
        logger.info("Initializing GitHub releases client for %s", repo)

    @property
    def protocol(self) -> str:
        return "github"

    @property
    def repo(self) -> str:
        return self._repo

    def _headers(self, accept: str) -> dict[str, str]:
        return {
            "Accept": accept,
            "Authorization": f"Bearer {self._token}",
        }

    def release_url(self, version: ReleaseVersion) -> str:
        """API URL of the release tagged for a version."""
        return f"{self._api_url}/repos/{self._repo}/releases/tags/{tag_version(version.normalized)}"

    def asset_url(self, asset_id: int) -> str:
        """API URL for downloading an asset by id."""
        return f"{self._api_url}/repos/{self._repo}/releases/assets/{asset_id}"

    def _get_json(self, url: str) -> dict[str, Any]:
        content = self._http.get(url, headers=self._headers(JSON_ACCEPT))
        try:
            data = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise NetworkError(f"Invalid JSON from {url}: {e}", url=url) from e
        if not isinstance(data, dict):
            raise NetworkError(f"Unexpected response from {url}: expected an object", url=url)
        return data

    def get_latest_version(self) -> str:
        url = f"{self._api_url}/repos/{self._repo}/releases/latest"
        release = self._get_json(url)
        tag = release.get("tag_name")
        if not isinstance(tag, str) or not tag:
            raise NetworkError(f"Latest release at {url} has no tag_name", url=url)
        logger.info("Latest GitHub release is %s", tag)
        return tag

    def verify_version(self, version: ReleaseVersion) -> bool:
        url = self.release_url(version)
        return self._http.exists(url, headers=self._headers(JSON_ACCEPT), method="GET")

    def find_bundle_asset(self, version: ReleaseVersion) -> dict[str, Any]:
        """Look up the bundle asset record of a release.

        Raises:
            NetworkError: If the release cannot be read or has no bundle asset
        """
        url = self.release_url(version)
        release = self._get_json(url)
        expected = bundle_filename(tag_version(version.normalized))

        assets = release.get("assets")
        if not isinstance(assets, list):
            raise NetworkError(f"No assets found in release at {url}", url=url)

        for asset in assets:
            if isinstance(asset, dict) and asset.get("name") == expected:
                if not isinstance(asset.get("id"), int):
                    raise NetworkError(f"Asset {expected} has an invalid id", url=url)
                return asset

        raise NetworkError(f"Release bundle {expected} not found in assets of {url}", url=url)

    def fetch_bundle(self, version: ReleaseVersion, dest: Path) -> Path:
        asset = self.find_bundle_asset(version)
        url = self.asset_url(asset["id"])
        logger.info("Downloading release asset %s (id %d)", asset["name"], asset["id"])
        try:
            return self._http.download(url, dest, headers=self._headers(BINARY_ACCEPT))
        except NetworkError as e:
            raise NetworkError(
                f"Failed to download asset {asset['name']}: {e}",
                url=e.url,
                status_code=e.status_code,
            ) from e

    def describe_probe(self, version: ReleaseVersion) -> str:
        return self.release_url(version)

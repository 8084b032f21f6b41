"""HTTP transport shared by the registry clients."""

from __future__ import annotations

import logging
import shutil
import ssl
from http.client import HTTPException
from pathlib import Path
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from geist.errors import NetworkError
from geist.utils.filesystem import atomic_open

logger = logging.getLogger(__name__)

USER_AGENT = "geist-supervisor"


class HttpClient:
    """Thin wrapper around urllib with the error handling registries need.

    Every failure is reported as NetworkError carrying the attempted URL.
    """

    DEFAULT_TIMEOUT = 60  # seconds

    def __init__(self, timeout: int | None = None):
        """Initialize the HTTP client.

        Args:
            timeout: Per-request socket timeout in seconds (default: 60)
        """
        self._timeout = timeout or self.DEFAULT_TIMEOUT
        self._ssl_context = ssl.create_default_context()

    @property
    def timeout(self) -> int:
        return self._timeout

    def _open(self, url: str, method: str, headers: dict[str, str] | None):
        request = Request(url, method=method)
        request.add_header("User-Agent", USER_AGENT)
        for key, value in (headers or {}).items():
            if key.lower() == "authorization":
                # Not forwarded on redirect (asset downloads redirect to a CDN)
                request.add_unredirected_header(key, value)
            else:
                request.add_header(key, value)
        return urlopen(request, timeout=self._timeout, context=self._ssl_context)

    def get(self, url: str, headers: dict[str, str] | None = None) -> bytes:
        """Make a GET request.

        Args:
            url: URL to request
            headers: Optional extra headers

        Returns:
            Response body as bytes

        Raises:
            NetworkError: If the request fails or the response is not 2xx
        """
        logger.debug("GET %s", url)
        try:
            with self._open(url, "GET", headers) as response:
                result: bytes = response.read()
                logger.debug("Request successful, received %d bytes", len(result))
                return result
        except HTTPError as e:
            logger.error("HTTP error %d: %s for %s", e.code, e.reason, url)
            raise NetworkError(f"HTTP {e.code}: {e.reason} for {url}", url=url, status_code=e.code) from e
        except URLError as e:
            logger.error("Failed to connect to %s: %s", url, e.reason)
            raise NetworkError(f"Failed to connect to {url}: {e.reason}", url=url) from e
        except (TimeoutError, OSError, HTTPException) as e:
            logger.error("Request failed for %s: %s", url, e)
            raise NetworkError(f"Request failed for {url}: {e}", url=url) from e

    def exists(self, url: str, headers: dict[str, str] | None = None, method: str = "HEAD") -> bool:
        """Probe whether a resource exists.

        A 2xx response means present and a 4xx response means absent. Server
        errors and transport failures are not answers about existence and
        raise instead.

        Args:
            url: URL to probe
            headers: Optional extra headers
            method: HTTP method used for the probe (default: HEAD)

        Returns:
            True if the resource exists, False otherwise

        Raises:
            NetworkError: On 5xx responses or transport failure
        """
        logger.debug("%s %s", method, url)
        try:
            with self._open(url, method, headers) as response:
                status: int = response.status
                return 200 <= status < 300
        except HTTPError as e:
            if 400 <= e.code < 500:
                logger.debug("Probe of %s returned HTTP %d", url, e.code)
                return False
            logger.error("HTTP error %d: %s for %s", e.code, e.reason, url)
            raise NetworkError(f"HTTP {e.code}: {e.reason} for {url}", url=url, status_code=e.code) from e
        except URLError as e:
            logger.error("Failed to connect to %s: %s", url, e.reason)
            raise NetworkError(f"Failed to connect to {url}: {e.reason}", url=url) from e
        except (TimeoutError, OSError, HTTPException) as e:
            logger.error("Request failed for %s: %s", url, e)
            raise NetworkError(f"Request failed for {url}: {e}", url=url) from e

    def download(self, url: str, dest: Path, headers: dict[str, str] | None = None) -> Path:
        """Stream a URL into dest.

        The body is written to a temporary file next to dest and renamed into
        place once complete, so dest is either absent, its previous content,
        or the full new body.

        Args:
            url: URL to download
            dest: Destination file path
            headers: Optional extra headers

        Returns:
            Path to the downloaded file

        Raises:
            NetworkError: If the download fails
        """
        logger.debug("Downloading %s to %s", url, dest)
        try:
            with self._open(url, "GET", headers) as response, atomic_open(dest, "wb") as f:
                shutil.copyfileobj(response, f)
        except HTTPError as e:
            logger.error("HTTP error %d: %s for %s", e.code, e.reason, url)
            raise NetworkError(f"HTTP {e.code}: {e.reason} for {url}", url=url, status_code=e.code) from e
        except URLError as e:
            logger.error("Failed to connect to %s: %s", url, e.reason)
            raise NetworkError(f"Failed to connect to {url}: {e.reason}", url=url) from e
        except (TimeoutError, OSError, HTTPException) as e:
            logger.error("Download failed for %s: %s", url, e)
            raise NetworkError(f"Download failed for {url}: {e}", url=url) from e

        logger.debug("Downloaded %d bytes to %s", dest.stat().st_size, dest)
        return dest

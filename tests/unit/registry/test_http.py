"""Tests for geist.registry.http module."""

import io
from http.client import BadStatusLine, IncompleteRead
from pathlib import Path
from unittest.mock import patch
from urllib.error import URLError

import pytest

from geist.errors import NetworkError
from geist.registry.http import USER_AGENT, HttpClient

URL = "https://example.com/releases/1.0.0/checksums.txt"


class TruncatedResponse(io.BytesIO):
    """Response whose body ends before its declared length."""

    status = 200

    def read(self, *args):
        raise IncompleteRead(b"partial", 100)

    readinto = read


class TestHttpClientGet:
    """Tests for HttpClient.get()."""

    def test_returns_body(self, fake_urlopen):
        fake_urlopen.add("GET", URL, b"content")

        assert HttpClient().get(URL) == b"content"

    def test_sends_user_agent(self, fake_urlopen):
        fake_urlopen.add("GET", URL, b"")

        HttpClient().get(URL)

        assert fake_urlopen.requests[0].get_header("User-agent") == USER_AGENT

    def test_authorization_not_redirected(self, fake_urlopen):
        """The bearer token is kept off redirected requests."""
        fake_urlopen.add("GET", URL, b"")

        HttpClient().get(URL, headers={"Authorization": "Bearer secret", "Accept": "text/plain"})

        request = fake_urlopen.requests[0]
        assert request.unredirected_hdrs["Authorization"] == "Bearer secret"
        assert "Authorization" not in request.headers
        assert request.headers["Accept"] == "text/plain"

    def test_http_error_raises_network_error(self, fake_urlopen):
        fake_urlopen.add("GET", URL, 500)

        with pytest.raises(NetworkError) as exc_info:
            HttpClient().get(URL)

        assert exc_info.value.status_code == 500
        assert exc_info.value.url == URL

    def test_connection_error_raises_network_error(self, fake_urlopen):
        fake_urlopen.add("GET", URL, URLError("Connection refused"))

        with pytest.raises(NetworkError, match="Failed to connect") as exc_info:
            HttpClient().get(URL)

        assert exc_info.value.status_code is None

    def test_timeout_raises_network_error(self, fake_urlopen):
        fake_urlopen.add("GET", URL, TimeoutError("timed out"))

        with pytest.raises(NetworkError, match="timed out"):
            HttpClient().get(URL)

    def test_truncated_body_raises_network_error(self):
        with patch("geist.registry.http.urlopen", return_value=TruncatedResponse()):
            with pytest.raises(NetworkError, match="Request failed") as exc_info:
                HttpClient().get(URL)

        assert exc_info.value.url == URL
        assert isinstance(exc_info.value.__cause__, IncompleteRead)

    def test_default_timeout(self):
        assert HttpClient().timeout == 60
        assert HttpClient(5).timeout == 5


class TestHttpClientExists:
    """Tests for HttpClient.exists()."""

    def test_2xx_exists(self, fake_urlopen):
        fake_urlopen.add("HEAD", URL, 200)

        assert HttpClient().exists(URL) is True
        assert fake_urlopen.requests[0].get_method() == "HEAD"

    @pytest.mark.parametrize("status", [401, 403, 404])
    def test_4xx_absent(self, fake_urlopen, status: int):
        fake_urlopen.add("HEAD", URL, status)

        assert HttpClient().exists(URL) is False

    def test_5xx_raises(self, fake_urlopen):
        """A server error is not an answer about existence."""
        fake_urlopen.add("HEAD", URL, 503)

        with pytest.raises(NetworkError) as exc_info:
            HttpClient().exists(URL)

        assert exc_info.value.status_code == 503

    def test_transport_failure_raises(self, fake_urlopen):
        fake_urlopen.add("HEAD", URL, URLError("Name or service not known"))

        with pytest.raises(NetworkError):
            HttpClient().exists(URL)

    def test_malformed_status_line_raises(self, fake_urlopen):
        fake_urlopen.add("HEAD", URL, BadStatusLine("garbage"))

        with pytest.raises(NetworkError) as exc_info:
            HttpClient().exists(URL)

        assert exc_info.value.url == URL
        assert exc_info.value.status_code is None

    def test_custom_method(self, fake_urlopen):
        fake_urlopen.add("GET", URL, b"{}")

        assert HttpClient().exists(URL, method="GET") is True


class TestHttpClientDownload:
    """Tests for HttpClient.download()."""

    def test_writes_body(self, fake_urlopen, temp_dir: Path):
        fake_urlopen.add("GET", URL, b"bundle bytes")
        dest = temp_dir / "sub" / "bundle.tar.gz"

        result = HttpClient().download(URL, dest)

        assert result == dest
        assert dest.read_bytes() == b"bundle bytes"

    def test_overwrites_existing(self, fake_urlopen, temp_dir: Path):
        fake_urlopen.add("GET", URL, b"new")
        dest = temp_dir / "bundle.tar.gz"
        dest.write_bytes(b"old")

        HttpClient().download(URL, dest)

        assert dest.read_bytes() == b"new"

    def test_failure_leaves_no_file(self, fake_urlopen, temp_dir: Path):
        fake_urlopen.add("GET", URL, 404)
        dest = temp_dir / "bundle.tar.gz"

        with pytest.raises(NetworkError) as exc_info:
            HttpClient().download(URL, dest)

        assert exc_info.value.status_code == 404
        assert list(temp_dir.iterdir()) == []

    def test_truncated_body_leaves_no_file(self, temp_dir: Path):
        dest = temp_dir / "bundle.tar.gz"

        with patch("geist.registry.http.urlopen", return_value=TruncatedResponse()):
            with pytest.raises(NetworkError, match="Download failed"):
                HttpClient().download(URL, dest)

        assert list(temp_dir.iterdir()) == []

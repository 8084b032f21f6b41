"""Shared fixtures for Geist tests."""

import io
import shutil
import tarfile
import tempfile
from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from pathlib import Path
from unittest.mock import patch
from urllib.error import HTTPError
from urllib.request import Request

import pytest

from geist.config.schemas import SupervisorConfig
from geist.registry.base import RegistryClient, ReleaseVersion

BundleFactory = Callable[..., Path]


def build_bundle(
    path: Path,
    members: dict[str, bytes | None],
    prefix: str = "",
) -> Path:
    """Write a .tar.gz containing the given members.

    A value of None creates a directory entry instead of a file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tar:
        for name, content in members.items():
            arcname = f"{prefix}{name}"
            info = tarfile.TarInfo(arcname)
            if content is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            else:
                info.size = len(content)
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(content))
    return path


def default_members(binary: str = "app", assets: str = "assets", tag: str = "1") -> dict[str, bytes | None]:
    return {
        binary: f"#!/bin/sh\necho release {tag}\n".encode(),
        "manifest.yaml": f"name: roc_camera\nversion: '{tag}'\n".encode(),
        f"{assets}/": None,
        f"{assets}/icon.png": f"png-{tag}".encode(),
        f"{assets}/web/index.html": f"<html>{tag}</html>".encode(),
    }


class FakeRegistry(RegistryClient):
    """In-memory registry serving prebuilt bundles, with call counters."""

    def __init__(self, bundles: dict[str, Path] | None = None, latest: str | None = None):
        self.bundles = dict(bundles or {})
        self.latest = latest
        self.calls: list[tuple[str, str]] = []

    @property
    def protocol(self) -> str:
        return "fake"

    def get_latest_version(self) -> str:
        self.calls.append(("latest", ""))
        if self.latest is None:
            raise AssertionError("latest not configured")
        return self.latest

    def verify_version(self, version: ReleaseVersion) -> bool:
        self.calls.append(("verify", version.normalized))
        return version.normalized in self.bundles

    def fetch_bundle(self, version: ReleaseVersion, dest: Path) -> Path:
        self.calls.append(("fetch", version.normalized))
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self.bundles[version.normalized], dest)
        return dest


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory."""
    path = Path(tempfile.mkdtemp(prefix="geist_test_"))
    yield path
    if path.exists():
        shutil.rmtree(path)


@pytest.fixture
def data_dir(temp_dir: Path) -> Path:
    """Data directory for installed versions (not created)."""
    return temp_dir / "data"


@pytest.fixture
def config(data_dir: Path) -> SupervisorConfig:
    """Configuration using the 'app' binary and 'assets' directory layout."""
    return SupervisorConfig(
        data_dir=data_dir,
        binary_name="app",
        assets_dir_name="assets",
        default_version="v0.0.0",
    )


@pytest.fixture
def make_bundle(temp_dir: Path) -> BundleFactory:
    """Factory building release bundles under temp_dir/bundles."""

    def _make(
        name: str = "release_bundle.tar.gz",
        members: dict[str, bytes | None] | None = None,
        prefix: str = "",
        tag: str = "1",
    ) -> Path:
        return build_bundle(
            temp_dir / "bundles" / name,
            default_members(tag=tag) if members is None else members,
            prefix=prefix,
        )

    return _make


@pytest.fixture
def fake_registry(make_bundle: BundleFactory) -> FakeRegistry:
    """Registry with versions 1.0.0, 2.0.0 and 10.0.0; latest is 2.0.0."""
    return FakeRegistry(
        bundles={
            "1.0.0": make_bundle("b1.tar.gz", tag="1.0.0"),
            "2.0.0": make_bundle("b2.tar.gz", tag="2.0.0", prefix="release_bundle/"),
            "10.0.0": make_bundle("b10.tar.gz", tag="10.0.0"),
        },
        latest="2.0.0",
    )


class FakeResponse(io.BytesIO):
    """Minimal stand-in for the object urlopen returns."""

    def __init__(self, body: bytes = b"", status: int = 200):
        super().__init__(body)
        self.status = status


@dataclass
class FakeUrlopen:
    """Routes requests by (method, url) and records every request made.

    Unrouted URLs answer 404.
    """

    routes: dict[tuple[str, str], bytes | int | Exception] = field(default_factory=dict)
    requests: list[Request] = field(default_factory=list)

    def add(self, method: str, url: str, response: bytes | int | Exception) -> None:
        """Register a response: bytes for 200, an int status, or an exception."""
        self.routes[(method, url)] = response

    def __call__(self, request: Request, timeout=None, context=None) -> FakeResponse:
        self.requests.append(request)
        key = (request.get_method(), request.full_url)
        if key not in self.routes:
            raise HTTPError(request.full_url, 404, "Not Found", {}, None)
        response = self.routes[key]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, int):
            if response >= 400:
                raise HTTPError(request.full_url, response, "Error", {}, None)
            return FakeResponse(b"", status=response)
        return FakeResponse(response)

    @property
    def urls(self) -> list[str]:
        return [r.full_url for r in self.requests]


@pytest.fixture
def fake_urlopen() -> Generator[FakeUrlopen, None, None]:
    """Patch urlopen in the HTTP transport; doubles as a network-call counter."""
    fake = FakeUrlopen()
    with patch("geist.registry.http.urlopen", fake):
        yield fake

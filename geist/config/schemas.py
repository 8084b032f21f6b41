"""Pydantic schemas for Geist configuration.

This module defines the data models for:
- supervisor configuration (environment + config.yaml)
- manifest.yaml shipped inside each release bundle
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from geist import __version__

# =============================================================================
# Common Types
# =============================================================================

RegistryBackend = Literal["gcs", "github"]

DEFAULT_REGISTRY_URL = "https://storage.googleapis.com/roc-camera-releases"
DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_GITHUB_REPO = "faust-machines/roc_camera"
DEFAULT_DATA_SUBDIR = ".local/share/roc-supervisor"

CURRENT_VERSION_FILE = "current_version"
CHECKSUM_FILE_NAME = "checksums.txt"
MANIFEST_FILE_NAME = "manifest.yaml"
LATEST_ALIAS = "latest"


def bundle_filename(version: str) -> str:
    """Name of the release bundle archive for a version."""
    return f"release_bundle-{version}.tar.gz"


# =============================================================================
# Supervisor Configuration
# =============================================================================


class SupervisorConfig(BaseModel):
    """Resolved supervisor configuration.

    Built by geist.config.parser.load_config from the environment and an
    optional YAML file; constructed directly in tests.
    """

    model_config = ConfigDict(extra="forbid")

    data_dir: Path
    backend: RegistryBackend = "gcs"
    registry_url: str = DEFAULT_REGISTRY_URL
    github_api_url: str = DEFAULT_GITHUB_API_URL
    github_repo: str = DEFAULT_GITHUB_REPO
    token: str | None = None
    timeout: int = Field(default=60, gt=0)

    # Ordered resolution chain for the current version:
    # override -> current_version file -> default_version
    current_version_override: str | None = None
    default_version: str = f"v{__version__}"
    latest_alias: str = LATEST_ALIAS

    # Bundle layout
    binary_name: str = "roc_camera"
    manifest_name: str = MANIFEST_FILE_NAME
    assets_dir_name: str = "roc_camera_app"
    # Optional member that replaces the supervisor itself when present
    supervisor_binary_name: str | None = "geist-supervisor"

    # Fixed-location install variant
    bin_dir: Path | None = None
    app_dir: Path | None = None

    @field_validator("registry_url", "github_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Registry base URLs are joined with '/', so drop a trailing one."""
        return v.rstrip("/")

    @field_validator("github_repo")
    @classmethod
    def validate_repo(cls, v: str) -> str:
        """Repository must look like 'org/repo'."""
        parts = v.split("/")
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"github_repo must be in 'org/repo' form, got '{v}'")
        return v

    @field_validator("binary_name", "manifest_name", "assets_dir_name", "supervisor_binary_name")
    @classmethod
    def validate_member_name(cls, v: str | None) -> str | None:
        """Bundle member names are plain file names."""
        if v is None:
            return v
        if not v or "/" in v or v in (".", ".."):
            raise ValueError(f"Invalid bundle member name: '{v}'")
        return v

    @field_validator("token", "current_version_override", "supervisor_binary_name", mode="before")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        """Treat empty strings from the environment as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def check_fixed_locations(self) -> "SupervisorConfig":
        """bin_dir and app_dir must not point into the data directory."""
        data_dir = self.data_dir.resolve()
        for name in ("bin_dir", "app_dir"):
            location = getattr(self, name)
            if location is None:
                continue
            resolved = location.resolve()
            if resolved == data_dir or data_dir in resolved.parents:
                raise ValueError(f"{name} must be outside data_dir ({location})")
        return self

    @model_validator(mode="after")
    def check_supervisor_binary(self) -> "SupervisorConfig":
        """The supervisor binary must not collide with another bundle member."""
        if self.supervisor_binary_name in (self.binary_name, self.manifest_name, self.assets_dir_name):
            raise ValueError(f"supervisor_binary_name '{self.supervisor_binary_name}' names another bundle member")
        return self

    @property
    def publishes_fixed_locations(self) -> bool:
        """Whether installs are mirrored into bin_dir/app_dir."""
        return self.bin_dir is not None or self.app_dir is not None


# =============================================================================
# Release Manifest
# =============================================================================


class ReleaseManifest(BaseModel):
    """The manifest.yaml shipped in a release bundle.

    Only a few keys are interpreted (for display); the rest are preserved.
    """

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    version: str | None = None
    description: str | None = None

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: object) -> object:
        """YAML reads bare 1.2 as a float; keep versions as text."""
        if isinstance(v, int | float):
            return str(v)
        return v

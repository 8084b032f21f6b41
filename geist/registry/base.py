"""Abstract base class for registry clients."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from geist.utils.version import normalize_version


@dataclass(frozen=True)
class ReleaseVersion:
    """A version identifier in both of its forms.

    display: as supplied by the user or reported by the registry; names the
        on-disk version directory
    normalized: without a leading 'v'; used to address the registry
    """

    display: str
    normalized: str

    @classmethod
    def from_token(cls, token: str) -> "ReleaseVersion":
        """Build both forms from a concrete version string."""
        return cls(display=token, normalized=normalize_version(token))

    def __str__(self) -> str:
        return self.display


class RegistryClient(ABC):
    """Abstract base class for registry clients.

    A registry answers three questions for the supervisor: what is the latest
    release, does a release exist, and what are the bytes of its bundle.
    """

    @property
    @abstractmethod
    def protocol(self) -> str:
        """Get the backend this client talks to (e.g., "gcs", "github")."""
        ...

    @abstractmethod
    def get_latest_version(self) -> str:
        """Get the identifier of the latest published release.

        Returns:
            Version string as published by the registry

        Raises:
            NetworkError: If the registry cannot be queried
        """
        ...

    @abstractmethod
    def verify_version(self, version: ReleaseVersion) -> bool:
        """Probe the registry for a release.

        Must not create any local files.

        Args:
            version: Version to probe

        Returns:
            True if the release exists, False otherwise

        Raises:
            NetworkError: If the probe itself fails
        """
        ...

    @abstractmethod
    def fetch_bundle(self, version: ReleaseVersion, dest: Path) -> Path:
        """Download the release bundle for a version to dest.

        dest is written atomically; calling again overwrites it with the same
        content.

        Args:
            version: Version to download
            dest: Destination file path

        Returns:
            Path to the downloaded bundle

        Raises:
            NetworkError: If the bundle cannot be downloaded
        """
        ...

    def describe_probe(self, version: ReleaseVersion) -> str:
        """Human-readable location of the existence probe, for error messages."""
        return self.protocol

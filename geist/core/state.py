"""Current-version pointer and installed version bookkeeping."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from geist.config.schemas import CURRENT_VERSION_FILE, SupervisorConfig
from geist.errors import StateError
from geist.utils.filesystem import read_text_file, remove_directory, write_text_file
from geist.utils.version import is_valid_directory_name, sort_versions

logger = logging.getLogger(__name__)

VersionSource = Literal["override", "pointer", "default"]


@dataclass(frozen=True)
class CurrentVersion:
    """The current version together with the link of the chain it came from."""

    version: str
    source: VersionSource


class VersionStateStore:
    """Owns the current_version pointer file and the set of version directories.

    The current version is resolved through an explicit chain given at
    construction: runtime override, then the pointer file, then a default.
    """

    def __init__(
        self,
        data_dir: Path,
        binary_name: str = "roc_camera",
        manifest_name: str = "manifest.yaml",
        assets_dir_name: str = "roc_camera_app",
        override: str | None = None,
        default: str = "latest",
    ):
        """Initialize the state store.

        Args:
            data_dir: Directory holding the pointer file and version directories
            binary_name: File a version directory must contain
            manifest_name: Manifest a version directory must contain
            assets_dir_name: Assets directory a version directory must contain
            override: Runtime override for the current version
            default: Version reported when neither override nor pointer exist
        """
        self.data_dir = data_dir
        self.binary_name = binary_name
        self.manifest_name = manifest_name
        self.assets_dir_name = assets_dir_name
        self.override = override
        self.default = default

    @classmethod
    def from_config(cls, config: SupervisorConfig) -> "VersionStateStore":
        return cls(
            config.data_dir,
            binary_name=config.binary_name,
            manifest_name=config.manifest_name,
            assets_dir_name=config.assets_dir_name,
            override=config.current_version_override,
            default=config.default_version,
        )

    @property
    def pointer_path(self) -> Path:
        """Path of the persisted pointer file."""
        return self.data_dir / CURRENT_VERSION_FILE

    def version_dir(self, version: str) -> Path:
        """Path of the directory for a version.

        Raises:
            StateError: If the version cannot be used as a directory name
        """
        if not is_valid_directory_name(version):
            raise StateError(f"Invalid version name: '{version}'", version)
        return self.data_dir / version

    def read_pointer(self) -> str | None:
        """Read the persisted pointer, or None if there is none.

        Raises:
            StateError: If the pointer file exists but cannot be read
        """
        if not self.pointer_path.exists():
            return None
        try:
            version = read_text_file(self.pointer_path).strip()
        except (OSError, UnicodeDecodeError) as e:
            raise StateError(f"Cannot read {self.pointer_path}: {e}") from e
        return version or None

    def get_current_with_source(self) -> CurrentVersion:
        """Resolve the current version and report which link supplied it."""
        if self.override:
            return CurrentVersion(self.override, "override")
        pointer = self.read_pointer()
        if pointer:
            return CurrentVersion(pointer, "pointer")
        return CurrentVersion(self.default, "default")

    def get_current(self) -> str:
        """Get the current version: override, then pointer file, then default."""
        return self.get_current_with_source().version

    def set_current(self, version: str) -> None:
        """Persist version as the current one.

        Args:
            version: Display version of an installed version directory

        Raises:
            StateError: If the version is not installed or the pointer
                cannot be written
        """
        if not self.is_installed(version):
            raise StateError(f"Cannot point at version {version}: it is not installed", version)
        try:
            write_text_file(self.pointer_path, version)
        except OSError as e:
            raise StateError(f"Failed to write {self.pointer_path}: {e}", version) from e
        logger.info("Current version set to %s", version)

    def current_version_dir(self) -> Path:
        """Directory of the current version.

        Raises:
            StateError: If the current version is not installed (a dangling
                pointer is an error, not a reason to fall back)
        """
        current = self.get_current_with_source()
        path = self.version_dir(current.version)
        if not self.is_installed(current.version):
            raise StateError(
                f"Current version {current.version} (from {current.source}) is not installed at {path}",
                current.version,
            )
        return path

    def is_installed(self, version: str) -> bool:
        """Check whether a complete version directory exists."""
        if not is_valid_directory_name(version):
            return False
        path = self.data_dir / version
        return (
            path.is_dir()
            and not path.is_symlink()
            and (path / self.binary_name).is_file()
            and (path / self.manifest_name).is_file()
            and (path / self.assets_dir_name).is_dir()
        )

    def list_installed(self) -> list[str]:
        """List installed versions, oldest first.

        A version directory is a non-hidden subdirectory of data_dir holding
        the binary, the manifest and the assets directory. Ordering is
        semantic-version order with non-semver names after, lexicographically
        (see sort_versions).
        """
        if not self.data_dir.is_dir():
            return []
        names = [entry.name for entry in self.data_dir.iterdir() if self.is_installed(entry.name)]
        return sort_versions(names)

    def remove(self, version: str) -> Path:
        """Delete one installed version directory.

        Args:
            version: Version to remove

        Returns:
            Path of the removed directory

        Raises:
            StateError: If the version is current or not installed
        """
        path = self.version_dir(version)
        # The pointer is checked even under an override, it must never dangle
        if version in (self.get_current(), self.read_pointer()):
            raise StateError(f"Refusing to remove the current version {version}", version)
        if not self.is_installed(version):
            raise StateError(f"Version {version} is not installed", version)

        try:
            remove_directory(path)
        except OSError as e:
            raise StateError(f"Failed to remove {path}: {e}", version) from e
        logger.info("Removed version %s", version)
        return path

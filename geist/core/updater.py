"""Update and rollback orchestration.

This module contains the ReleaseUpdater, which runs the install pipeline:

    permission check -> lock -> recover -> resolve -> fetch -> extract
    -> install -> publish -> pointer update

Every stage fails closed. The only error that does not abort the operation
is a failed pointer write after the version directory was installed, which
is logged as a warning and reported on the result.
"""

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from geist.config.parser import load_release_manifest
from geist.config.schemas import ReleaseManifest, SupervisorConfig
from geist.core.installer import OPERATION_PREFIX, BundleInstaller, InstalledVersion
from geist.core.lock import InstallLock
from geist.core.permissions import verify_writable
from geist.core.resolver import VersionResolver
from geist.core.state import VersionSource, VersionStateStore
from geist.errors import (
    BundleValidationError,
    ConfigError,
    ExtractError,
    NetworkError,
    RollbackError,
    StateError,
    VersionNotFoundError,
)
from geist.registry.base import RegistryClient, ReleaseVersion
from geist.registry.factory import create_registry_client
from geist.utils.version import normalize_version

logger = logging.getLogger(__name__)


@dataclass
class UpdateResult:
    """Result of an update or rollback."""

    version: str
    path: Path
    pointer_updated: bool = True
    restaged_locally: bool = False
    warnings: list[str] = field(default_factory=list)


@dataclass
class StatusReport:
    """Snapshot of the on-device version state."""

    current: str
    source: VersionSource
    installed: list[str]
    current_installed: bool
    manifest: ReleaseManifest | None = None


class ReleaseUpdater:
    """Runs update, verify and rollback against one data directory."""

    def __init__(
        self,
        config: SupervisorConfig,
        registry: RegistryClient | None = None,
    ):
        """Initialize the updater.

        Args:
            config: Supervisor configuration
            registry: Registry client (created from config on first use)
        """
        self.config = config
        self._registry = registry
        self.installer = BundleInstaller.from_config(config)
        self.state = VersionStateStore.from_config(config)

    @property
    def registry(self) -> RegistryClient:
        """Registry client, created lazily so local-only commands never need one."""
        if self._registry is None:
            self._registry = create_registry_client(self.config)
        return self._registry

    @property
    def resolver(self) -> VersionResolver:
        return VersionResolver(self.registry, alias=self.config.latest_alias)

    def _writable_targets(self) -> list[Path]:
        targets = [self.config.data_dir]
        if self.config.bin_dir is not None:
            targets.append(self.config.bin_dir)
        if self.config.app_dir is not None:
            targets.append(self.config.app_dir.parent)
        return targets

    def _recover(self) -> None:
        extra = [self.config.app_dir.parent] if self.config.app_dir is not None else []
        recovered = self.installer.recover(*extra)
        if recovered:
            logger.warning("Recovered %d leftover(s) from an interrupted run", len(recovered))

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def verify(self, token: str | None) -> ReleaseVersion:
        """Confirm a version exists in the registry without touching disk.

        Raises:
            VersionNotFoundError: If the registry does not have it
            NetworkError: If the registry cannot be reached
        """
        return self.resolver.resolve(token)

    def update(self, token: str | None = None) -> UpdateResult:
        """Install a version from the registry and make it current.

        Args:
            token: Version to install; empty means the latest release

        Returns:
            UpdateResult for the installed version

        Raises:
            SupervisorError: On any failed stage
        """
        logger.info("Updating to version: %s", token or self.config.latest_alias)
        verify_writable(*self._writable_targets())

        with InstallLock(self.config.data_dir):
            self._recover()
            version = self.resolver.resolve(token)
            installed = self._fetch_and_install(version)
            return self._activate(installed)

    def rollback(self, version: str) -> UpdateResult:
        """Reinstall a version and make it current.

        A version still installed locally is restaged from its own directory;
        otherwise it is fetched from the registry. Either way it goes through
        the same install path as an update.

        Args:
            version: Version to roll back to

        Returns:
            UpdateResult for the reinstalled version

        Raises:
            RollbackError: If the version is neither installed nor obtainable
            SupervisorError: On any other failed stage
        """
        version = version.strip()
        if not version:
            raise RollbackError("A version is required for rollback", version)
        logger.info("Rolling back to version: %s", version)
        verify_writable(*self._writable_targets())

        with InstallLock(self.config.data_dir):
            self._recover()

            local = self._local_match(version)
            if local is not None:
                try:
                    staged = self.installer.inspect(local)
                except BundleValidationError as e:
                    logger.warning("Local copy of %s is incomplete (%s); fetching from registry", local, e)
                else:
                    logger.info("Restaging locally installed version %s", local)
                    installed = self.installer.install(staged, local)
                    result = self._activate(installed)
                    result.restaged_locally = True
                    return result

            try:
                resolved = self.resolver.resolve(version)
                installed = self._fetch_and_install(resolved)
            except (VersionNotFoundError, NetworkError, ExtractError, BundleValidationError, ConfigError) as e:
                raise RollbackError(f"Cannot roll back to {version}: {e}", version) from e
            return self._activate(installed)

    def status(self) -> StatusReport:
        """Report the current version and what is installed."""
        current = self.state.get_current_with_source()
        installed = self.state.list_installed()

        current_dir: Path | None = None
        try:
            current_dir = self.state.current_version_dir()
        except StateError as e:
            logger.warning("%s", e)

        manifest: ReleaseManifest | None = None
        if current_dir is not None:
            try:
                manifest = load_release_manifest(current_dir / self.config.manifest_name)
            except ConfigError as e:
                logger.warning("Cannot read manifest of %s: %s", current.version, e)

        return StatusReport(
            current=current.version,
            source=current.source,
            installed=installed,
            current_installed=current_dir is not None,
            manifest=manifest,
        )

    def prune(self, version: str) -> Path:
        """Remove one installed, non-current version directory."""
        with InstallLock(self.config.data_dir):
            return self.state.remove(version)

    # -------------------------------------------------------------------------
    # Pipeline stages
    # -------------------------------------------------------------------------

    def _local_match(self, version: str) -> str | None:
        """Find an installed directory for version, with or without a 'v'."""
        normalized = normalize_version(version)
        for candidate in (version, normalized, f"v{normalized}"):
            if self.state.is_installed(candidate):
                return candidate
        return None

    def _fetch_and_install(self, version: ReleaseVersion) -> InstalledVersion:
        # The operation directory shares a filesystem with the version
        # directories and is removed on every exit path.
        with tempfile.TemporaryDirectory(prefix=OPERATION_PREFIX, dir=self.config.data_dir) as tmp:
            op_dir = Path(tmp)
            bundle_path = op_dir / "release_bundle.tar.gz"

            logger.info("Downloading release bundle to: %s", bundle_path)
            self.registry.fetch_bundle(version, bundle_path)

            staged = self.installer.extract(bundle_path, op_dir / "release_bundle")
            return self.installer.install(staged, version.display)

    def _activate(self, installed: InstalledVersion) -> UpdateResult:
        if self.config.publishes_fixed_locations:
            self.installer.publish(installed, self.config.bin_dir, self.config.app_dir)

        result = UpdateResult(version=installed.version, path=installed.path)
        try:
            self.state.set_current(installed.version)
        except StateError as e:
            # The installed directory is valid; only the pointer is stale
            logger.warning("Installed %s but could not update current version: %s", installed.version, e)
            result.pointer_updated = False
            result.warnings.append(str(e))

        if self.state.override and self.state.override != installed.version:
            message = f"GEIST_CURRENT_VERSION={self.state.override} overrides the installed version {installed.version}"
            logger.warning(message)
            result.warnings.append(message)

        return result

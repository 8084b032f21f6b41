"""Release bundle extraction and installation.

A version directory is assembled under a hidden sibling name and renamed
into place only once it is complete:

    <data_dir>/.<version>.incoming-<id>/     being assembled
    <data_dir>/.<version>.displaced-<id>/    previous copy, renamed aside
    <data_dir>/<version>/                    promoted

Readers therefore see either the previous complete directory, the new
complete directory, or (for an instant during a reinstall) nothing, never a
partially copied tree. recover() cleans up after a process that died between
those steps.
"""

import logging
import os
import shutil
import tarfile
import uuid
from dataclasses import dataclass
from pathlib import Path

from geist.config.schemas import SupervisorConfig
from geist.errors import BundleValidationError, ExtractError, InstallError
from geist.utils.filesystem import (
    atomic_open,
    copy_file,
    copy_tree,
    ensure_directory,
    extract_tarball,
    make_executable,
    remove_directory,
    sync_tree,
)
from geist.utils.version import is_valid_directory_name

logger = logging.getLogger(__name__)

INCOMING_MARKER = ".incoming-"
DISPLACED_MARKER = ".displaced-"
OPERATION_PREFIX = ".geist-op-"


@dataclass(frozen=True)
class StagedContents:
    """The members of a release, located on disk.

    binary, manifest and assets are required; supervisor is only present
    when the release also ships a new supervisor binary.
    """

    root: Path
    binary: Path
    manifest: Path
    assets: Path
    supervisor: Path | None = None


@dataclass(frozen=True)
class InstalledVersion:
    """A complete version directory."""

    version: str
    path: Path
    binary: Path
    manifest: Path
    assets: Path
    supervisor: Path | None = None

class BundleInstaller:
    """Extracts release bundles and promotes them into version directories."""

    def __init__(
        self,
        data_dir: Path,
        binary_name: str = "roc_camera",
        manifest_name: str = "manifest.yaml",
        assets_dir_name: str = "roc_camera_app",
        supervisor_binary_name: str | None = "geist-supervisor",
    ):
        """Initialize the installer.

        Args:
            data_dir: Directory holding the version directories
            binary_name: File name of the application binary
            manifest_name: File name of the release manifest
            assets_dir_name: Directory name of the assets tree
            supervisor_binary_name: File name of the optional supervisor binary
        """
        self.data_dir = data_dir
        self.binary_name = binary_name
        self.manifest_name = manifest_name
        self.assets_dir_name = assets_dir_name
        self.supervisor_binary_name = supervisor_binary_name

    @classmethod
    def from_config(cls, config: SupervisorConfig) -> "BundleInstaller":
        return cls(
            config.data_dir,
            binary_name=config.binary_name,
            manifest_name=config.manifest_name,
            assets_dir_name=config.assets_dir_name,
            supervisor_binary_name=config.supervisor_binary_name,
        )

    def version_dir(self, version: str) -> Path:
        """Path of the directory for a version.

        Raises:
            InstallError: If the version cannot be used as a directory name
        """
        if not is_valid_directory_name(version):
            raise InstallError(f"Invalid version name for a directory: '{version}'", version)
        return self.data_dir / version

    # -------------------------------------------------------------------------
    # Extraction and validation
    # -------------------------------------------------------------------------

    def extract(self, bundle_path: Path, staging_dir: Path) -> StagedContents:
        """Extract a bundle into a fresh staging directory and validate it.

        Args:
            bundle_path: Downloaded .tar.gz bundle
            staging_dir: Empty or non-existent directory to extract into

        Returns:
            Located and validated StagedContents

        Raises:
            ExtractError: If the archive is missing, malformed or unsafe
            BundleValidationError: If a required member is missing or empty
        """
        if not bundle_path.is_file():
            raise ExtractError(f"Bundle file does not exist: {bundle_path}", bundle_path)
        if staging_dir.exists() and any(staging_dir.iterdir()):
            raise ExtractError(f"Staging directory is not empty: {staging_dir}", staging_dir)

        logger.info("Extracting release bundle %s (%d bytes)", bundle_path, bundle_path.stat().st_size)
        try:
            extract_tarball(bundle_path, staging_dir)
        except (tarfile.TarError, EOFError, ValueError, OSError) as e:
            logger.error("Failed to extract %s: %s", bundle_path, e)
            raise ExtractError(f"Failed to extract release bundle {bundle_path.name}: {e}", bundle_path) from e

        return self.locate(staging_dir)

    def locate(self, root: Path) -> StagedContents:
        """Find the bundle members anywhere under root.

        Bundles differ in nesting (some wrap everything in a release_bundle/
        directory), so the whole tree is searched and the shallowest match of
        each member wins.

        Raises:
            BundleValidationError: If a required member is missing or empty
        """
        binary: Path | None = None
        manifest: Path | None = None
        assets: Path | None = None
        supervisor: Path | None = None

        entries = sorted(root.rglob("*"), key=lambda p: (len(p.relative_to(root).parts), str(p)))
        for path in entries:
            if path.is_symlink():
                continue
            logger.debug("  %s", path.relative_to(root))
            if binary is None and path.name == self.binary_name and path.is_file():
                binary = path
            elif manifest is None and path.name == self.manifest_name and path.is_file():
                manifest = path
            elif assets is None and path.name == self.assets_dir_name and path.is_dir():
                assets = path
            elif supervisor is None and path.name == self.supervisor_binary_name and path.is_file():
                supervisor = path

        staged = self._validate(root, binary, manifest, assets, supervisor)
        logger.info(
            "Located bundle members: binary=%s manifest=%s assets=%s",
            staged.binary.relative_to(root),
            staged.manifest.relative_to(root),
            staged.assets.relative_to(root),
        )
        if staged.supervisor is not None:
            logger.info("Bundle ships a supervisor binary: %s", staged.supervisor.relative_to(root))
        return staged

    def inspect(self, version: str) -> StagedContents:
        """Validate an installed version directory and return its members.

        Used to restage a locally installed version for rollback.

        Raises:
            BundleValidationError: If the directory is incomplete
        """
        path = self.version_dir(version)
        supervisor = path / self.supervisor_binary_name if self.supervisor_binary_name else None
        return self._validate(
            path,
            path / self.binary_name,
            path / self.manifest_name,
            path / self.assets_dir_name,
            supervisor if supervisor is not None and supervisor.is_file() else None,
        )

    def _validate(
        self,
        root: Path,
        binary: Path | None,
        manifest: Path | None,
        assets: Path | None,
        supervisor: Path | None = None,
    ) -> StagedContents:
        if binary is None or not binary.is_file():
            raise BundleValidationError("binary", self.binary_name)
        if binary.stat().st_size == 0:
            raise BundleValidationError("binary", self.binary_name, "is empty")

        if manifest is None or not manifest.is_file():
            raise BundleValidationError("manifest", self.manifest_name)
        if manifest.stat().st_size == 0:
            raise BundleValidationError("manifest", self.manifest_name, "is empty")

        if assets is None or not assets.is_dir():
            raise BundleValidationError("assets directory", self.assets_dir_name)
        if not any(assets.iterdir()):
            raise BundleValidationError("assets directory", self.assets_dir_name, "is empty")

        if supervisor is not None and supervisor.stat().st_size == 0:
            raise BundleValidationError("supervisor binary", self.supervisor_binary_name, "is empty")

        return StagedContents(root=root, binary=binary, manifest=manifest, assets=assets, supervisor=supervisor)

    # -------------------------------------------------------------------------
    # Installation
    # -------------------------------------------------------------------------

    def install(self, staged: StagedContents, version: str) -> InstalledVersion:
        """Materialize staged contents as <data_dir>/<version>.

        Args:
            staged: Validated bundle members
            version: Display version naming the directory

        Returns:
            The promoted InstalledVersion

        Raises:
            InstallError: If copying or promotion fails; any previous
                directory for this version is left intact
        """
        dest = self.version_dir(version)
        ensure_directory(self.data_dir)
        incoming = self.data_dir / f".{version}{INCOMING_MARKER}{uuid.uuid4().hex[:12]}"
        logger.info("Installing version %s to %s", version, dest)

        try:
            incoming.mkdir()
            logger.debug("Copying binary to %s", incoming / self.binary_name)
            copy_file(staged.binary, incoming / self.binary_name)
            make_executable(incoming / self.binary_name)

            logger.debug("Copying manifest to %s", incoming / self.manifest_name)
            copy_file(staged.manifest, incoming / self.manifest_name)

            logger.debug("Copying assets to %s", incoming / self.assets_dir_name)
            copy_tree(staged.assets, incoming / self.assets_dir_name)

            if staged.supervisor is not None:
                logger.debug("Copying supervisor binary to %s", incoming / self.supervisor_binary_name)
                copy_file(staged.supervisor, incoming / self.supervisor_binary_name)
                make_executable(incoming / self.supervisor_binary_name)

            sync_tree(incoming)
        except OSError as e:
            logger.error("Failed to stage version %s: %s", version, e)
            shutil.rmtree(incoming, ignore_errors=True)
            raise InstallError(f"Failed to stage version {version}: {e}", version) from e

        self._swap_into_place(incoming, dest, version)
        logger.info("Successfully installed version %s", version)

        return InstalledVersion(
            version=version,
            path=dest,
            binary=dest / self.binary_name,
            manifest=dest / self.manifest_name,
            assets=dest / self.assets_dir_name,
            supervisor=dest / self.supervisor_binary_name if staged.supervisor is not None else None,
        )

    def _swap_into_place(self, incoming: Path, dest: Path, version: str | None = None) -> None:
        """Rename a complete tree onto dest, superseding any existing tree.

        An existing dest is renamed aside first (directories cannot be renamed
        over non-empty directories) and only deleted after the new tree is in
        place. If the second rename fails the old tree is renamed back.
        """
        displaced: Path | None = None
        try:
            if dest.exists() or dest.is_symlink():
                displaced = dest.parent / f".{dest.name}{DISPLACED_MARKER}{uuid.uuid4().hex[:12]}"
                logger.debug("Moving existing %s aside to %s", dest, displaced)
                os.rename(dest, displaced)
            os.rename(incoming, dest)
        except OSError as e:
            logger.error("Failed to promote %s to %s: %s", incoming, dest, e)
            if displaced is not None and displaced.exists() and not dest.exists():
                os.rename(displaced, dest)
            shutil.rmtree(incoming, ignore_errors=True)
            raise InstallError(f"Failed to move {incoming.name} into place at {dest}: {e}", version) from e

        if displaced is not None:
            try:
                remove_directory(displaced)
            except OSError as e:
                # Harmless: recover() removes it on the next run
                logger.warning("Could not remove superseded tree %s: %s", displaced, e)

    def publish(self, installed: InstalledVersion, bin_dir: Path | None, app_dir: Path | None) -> None:
        """Mirror an installed version into fixed bin/app locations.

        The binary replaces bin_dir/<binary_name> through a temp file rename,
        and so does the supervisor binary when the version ships one. The
        assets tree replaces app_dir through the same stage-then-rename used
        for version directories.

        Raises:
            InstallError: If any location cannot be updated
        """
        if bin_dir is not None:
            self._publish_executable(installed.binary, bin_dir / self.binary_name, installed.version)
            if installed.supervisor is not None:
                self._publish_executable(installed.supervisor, bin_dir / installed.supervisor.name, installed.version)

        if app_dir is not None:
            logger.info("Publishing assets to %s", app_dir)
            ensure_directory(app_dir.parent)
            incoming = app_dir.parent / f".{app_dir.name}{INCOMING_MARKER}{uuid.uuid4().hex[:12]}"
            try:
                copy_tree(installed.assets, incoming)
                sync_tree(incoming)
            except OSError as e:
                logger.error("Failed to stage assets for %s: %s", app_dir, e)
                shutil.rmtree(incoming, ignore_errors=True)
                raise InstallError(f"Failed to update application files at {app_dir}: {e}", installed.version) from e
            self._swap_into_place(incoming, app_dir, installed.version)

    def _publish_executable(self, source: Path, target: Path, version: str) -> None:
        logger.info("Publishing %s to %s", source.name, target)
        try:
            with open(source, "rb") as src, atomic_open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
                os.fchmod(dst.fileno(), 0o755)
        except OSError as e:
            logger.error("Failed to publish %s to %s: %s", source.name, target, e)
            raise InstallError(f"Failed to update binary at {target}: {e}", version) from e

    # -------------------------------------------------------------------------
    # Crash recovery
    # -------------------------------------------------------------------------

    def recover(self, *extra_dirs: Path) -> list[str]:
        """Clean up after an interrupted install.

        In data_dir (and any extra directories): incoming trees and operation
        directories are removed; a displaced tree is renamed back if its
        target is missing, otherwise removed.

        Returns:
            Names of the entries that were removed or restored
        """
        actions: list[str] = []
        for directory in (self.data_dir, *extra_dirs):
            if not directory.is_dir():
                continue
            for entry in sorted(directory.iterdir()):
                name = entry.name
                if not name.startswith("."):
                    continue

                if name.startswith(OPERATION_PREFIX) or INCOMING_MARKER in name:
                    logger.warning("Removing leftover staging directory %s", entry)
                    shutil.rmtree(entry, ignore_errors=True)
                    actions.append(name)
                elif DISPLACED_MARKER in name:
                    target = directory / name[1:].rsplit(DISPLACED_MARKER, 1)[0]
                    if target.exists():
                        logger.warning("Removing leftover superseded directory %s", entry)
                        shutil.rmtree(entry, ignore_errors=True)
                    else:
                        logger.warning("Restoring %s from interrupted install", target)
                        os.rename(entry, target)
                    actions.append(name)
        return actions

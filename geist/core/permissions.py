"""Write-permission checks run before any network or install work."""

import logging
import os
import tempfile
from pathlib import Path

from geist.errors import DirectoryPermissionError

logger = logging.getLogger(__name__)

SENTINEL_PREFIX = ".write_test-"


def verify_writable(*directories: Path) -> None:
    """Ensure every directory exists and accepts a write.

    Each directory is created if absent, then a uniquely named sentinel file
    is written and deleted in it, so concurrent checks never collide.
    Directories are checked in the order given and the first failure stops
    the check.

    Args:
        directories: Directories the operation will write to

    Raises:
        DirectoryPermissionError: Naming the first directory that could not
            be created or written
    """
    for directory in directories:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create directory %s: %s", directory, e)
            raise DirectoryPermissionError(f"Cannot create directory {directory}: {e}", directory) from e

        try:
            fd, sentinel = tempfile.mkstemp(prefix=SENTINEL_PREFIX, dir=directory)
            try:
                os.write(fd, b"test")
            finally:
                os.close(fd)
                os.unlink(sentinel)
        except OSError as e:
            logger.error("No write permission in %s: %s", directory, e)
            raise DirectoryPermissionError(f"No write permission in directory {directory}: {e}", directory) from e

        logger.debug("Verified write access to %s", directory)

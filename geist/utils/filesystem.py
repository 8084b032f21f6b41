"""Filesystem utilities for Geist."""

import os
import shutil
import tarfile
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO

EXECUTABLE_MODE = 0o755


def ensure_directory(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists

    Returns:
        The directory path
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def copy_file(src: Path, dest: Path) -> Path:
    """Copy a file to a destination.

    Args:
        src: Source file path
        dest: Destination path (file or directory)

    Returns:
        Path to the copied file
    """
    if dest.is_dir():
        dest = dest / src.name
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(src, dest)
    return dest


def copy_tree(src: Path, dest: Path) -> Path:
    """Copy the directory tree rooted at src to dest.

    The destination must not exist yet. Symlinks are copied as links so a
    bundle cannot pull files from outside its own tree.

    Args:
        src: Source directory
        dest: Destination directory (created)

    Returns:
        Path to the copied directory
    """
    shutil.copytree(src, dest, symlinks=True)
    return dest


def sync_tree(root: Path) -> None:
    """Flush every file and directory under root to disk.

    Called before a staged tree is renamed into place so a power loss after
    the rename cannot expose empty files.
    """
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            path = Path(dirpath) / name
            if path.is_symlink():
                continue
            fd = os.open(path, os.O_RDONLY)
            try:
                os.fsync(fd)
            finally:
                os.close(fd)
        fd = os.open(dirpath, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)


def remove_directory(path: Path) -> bool:
    """Remove a directory and its contents.

    Args:
        path: Directory path to remove

    Returns:
        True if the directory was removed, False if it didn't exist
    """
    if not path.exists():
        return False
    shutil.rmtree(path)
    return True


def make_executable(path: Path) -> None:
    """Set rwxr-xr-x on a file."""
    path.chmod(EXECUTABLE_MODE)


def extract_tarball(tarball_path: Path, dest_dir: Path) -> Path:
    """Extract a gzip-compressed tarball into a destination directory.

    Args:
        tarball_path: Path to the .tar.gz file
        dest_dir: Destination directory

    Returns:
        The destination directory

    Raises:
        ValueError: If a member would be written outside dest_dir
        tarfile.TarError: If the archive is malformed
    """
    dest_dir.mkdir(parents=True, exist_ok=True)

    with tarfile.open(tarball_path, "r:gz") as tar:
        # Security: prevent path traversal
        for member in tar.getmembers():
            member_path = Path(member.name)
            if member_path.is_absolute() or ".." in member_path.parts:
                raise ValueError(f"Unsafe path in tarball: {member.name}")
        tar.extractall(dest_dir, filter="data")

    return dest_dir


@contextmanager
def atomic_open(path: Path, mode: str = "wb") -> Iterator[IO]:
    """Open a temporary sibling of path for writing and rename it into place.

    The rename only happens when the block exits without an exception, so
    readers never observe a half-written file at path. On failure the
    temporary file is removed and path is left untouched.

    Args:
        path: Final file path
        mode: "wb" or "w"

    Yields:
        File object for the temporary file
    """
    if mode not in ("wb", "w"):
        raise ValueError(f"Unsupported mode for atomic_open: {mode}")

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".part", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        encoding = None if "b" in mode else "utf-8"
        with open(fd, mode, encoding=encoding) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def read_text_file(path: Path) -> str:
    """Read a text file.

    Args:
        path: Path to the file

    Returns:
        File contents as a string
    """
    return path.read_text(encoding="utf-8")


def write_text_file(path: Path, content: str) -> None:
    """Atomically write content to a text file.

    Args:
        path: Path to the file
        content: Content to write
    """
    with atomic_open(path, "w") as f:
        f.write(content)

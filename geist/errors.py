"""Error types raised by the Geist Supervisor.

Every error derives from SupervisorError so the CLI can report any failure
as a single line on stderr with a non-zero exit code.
"""

from pathlib import Path


class SupervisorError(Exception):
    """Base class for all supervisor errors."""


class ConfigError(SupervisorError):
    """Configuration could not be determined or is invalid."""

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        super().__init__(message)


class DirectoryPermissionError(SupervisorError, PermissionError):
    """A target directory could not be created or written to."""

    def __init__(self, message: str, path: Path):
        self.path = path
        super().__init__(message)

    def __str__(self) -> str:
        return str(self.args[0])


class VersionNotFoundError(SupervisorError):
    """The registry reported that a version does not exist."""

    def __init__(self, version: str, location: str | None = None):
        self.version = version
        self.location = location
        message = f"Version {version} not found"
        if location:
            message += f" (probed {location})"
        super().__init__(message)


class NetworkError(SupervisorError):
    """Transport failure or non-success HTTP response."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class ExtractError(SupervisorError):
    """The release bundle could not be extracted."""

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        super().__init__(message)


class BundleValidationError(SupervisorError):
    """A required member is missing from an extracted bundle."""

    def __init__(self, member: str, expected: str, reason: str = "is missing"):
        self.member = member
        self.expected = expected
        self.reason = reason
        super().__init__(f"Release bundle {member} '{expected}' {reason}")


class InstallError(SupervisorError):
    """Copying or renaming into the installed layout failed."""

    def __init__(self, message: str, version: str | None = None):
        self.version = version
        super().__init__(message)


class RollbackError(SupervisorError):
    """The rollback target version could not be obtained."""

    def __init__(self, message: str, version: str):
        self.version = version
        super().__init__(message)


class StateError(SupervisorError):
    """The persisted version state is unusable or cannot be changed."""

    def __init__(self, message: str, version: str | None = None):
        self.version = version
        super().__init__(message)


class LockError(SupervisorError):
    """Another supervisor process holds the install lock."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Another update is in progress (lock held on {path})")

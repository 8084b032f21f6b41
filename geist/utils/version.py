"""Version identifiers and ordering.

Release versions are opaque strings to the registry, but the device needs
two things from them: a registry-facing normalized form and a stable order
for listing installed versions.
"""

import re
from dataclasses import dataclass
from functools import total_ordering


def normalize_version(version: str) -> str:
    """Strip a single leading 'v' from a version string.

    "v1.2.3" -> "1.2.3", "1.2.3" -> "1.2.3", "vv1" -> "v1".
    """
    return version[1:] if version.startswith("v") else version


def tag_version(version: str) -> str:
    """Return the 'v'-prefixed tag form of a version ("1.2.3" -> "v1.2.3")."""
    return f"v{normalize_version(version)}"


def is_valid_directory_name(version: str) -> bool:
    """Check whether a version can name a directory under the data directory.

    Hidden names are reserved for staging and lock files.
    """
    return bool(version) and "/" not in version and "\\" not in version and not version.startswith(".")


@total_ordering
@dataclass
class SemVer:
    """Semantic version representation."""

    major: int
    minor: int
    patch: int
    prerelease: str | None = None
    build: str | None = None

    _SEMVER_PATTERN = re.compile(
        r"^(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
        r"(?:-(?P<prerelease>(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
        r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
        r"(?:\+(?P<build>[0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
    )

    @classmethod
    def parse(cls, version_str: str) -> "SemVer":
        """Parse a semver string, ignoring one leading 'v'.

        Args:
            version_str: Version string (e.g., "1.2.3", "v2.0.0-beta.1+build.123")

        Returns:
            SemVer instance

        Raises:
            ValueError: If the string is not valid semver
        """
        match = cls._SEMVER_PATTERN.match(normalize_version(version_str))
        if not match:
            raise ValueError(f"Invalid semver: {version_str}")

        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(match.group("patch")),
            prerelease=match.group("prerelease"),
            build=match.group("build"),
        )

    def __str__(self) -> str:
        version = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            version += f"-{self.prerelease}"
        if self.build:
            version += f"+{self.build}"
        return version

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return (
            self.major == other.major
            and self.minor == other.minor
            and self.patch == other.patch
            and self.prerelease == other.prerelease
        )

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented

        if (self.major, self.minor, self.patch) != (other.major, other.minor, other.patch):
            return (self.major, self.minor, self.patch) < (other.major, other.minor, other.patch)

        # Prerelease versions have lower precedence
        if self.prerelease and not other.prerelease:
            return True
        if not self.prerelease and other.prerelease:
            return False
        if self.prerelease and other.prerelease:
            return self._compare_prerelease(self.prerelease, other.prerelease) < 0

        return False

    @staticmethod
    def _compare_prerelease(a: str, b: str) -> int:
        """Compare two prerelease strings."""
        parts_a = a.split(".")
        parts_b = b.split(".")

        for pa, pb in zip(parts_a, parts_b, strict=False):
            try:
                na, nb = int(pa), int(pb)
                if na != nb:
                    return na - nb
            except ValueError:
                if pa != pb:
                    return -1 if pa < pb else 1

        return len(parts_a) - len(parts_b)

    def __hash__(self) -> int:
        return hash((self.major, self.minor, self.patch, self.prerelease))


def sort_versions(versions: list[str]) -> list[str]:
    """Sort version strings oldest first.

    Semver names come first in semantic order ("v2.0.0" before "v10.0.0");
    names that are not semver follow in lexicographic order. Two spellings of
    the same semver ("1.0.0", "v1.0.0") are ordered by their raw string.

    Args:
        versions: Version strings, typically version directory names

    Returns:
        New sorted list
    """
    semver: list[tuple[SemVer, str]] = []
    other: list[str] = []
    for v in versions:
        try:
            semver.append((SemVer.parse(v), v))
        except ValueError:
            other.append(v)

    semver.sort(key=lambda pair: (pair[0], pair[1]))
    return [v for _, v in semver] + sorted(other)

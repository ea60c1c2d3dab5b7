"""Version parsing and bumping utilities.

Thin wrapper around semver.Version. Parsing is strict
(MAJOR.MINOR.PATCH[-prerelease][+build], no leading zeros) and every
derived operation returns a new immutable Version.
"""

from __future__ import annotations

import semver

from .errors import ParseError
from .models import ChangeType


def parse_version(text: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Raises:
        ParseError: If the text is not a valid semantic version.

    Examples:
        "1.2.3" → Version(1, 2, 3)
        "1.0.0-alpha.1+build.5" → Version(1, 0, 0, "alpha.1", "build.5")
        "01.2.3" → ParseError
    """
    if not isinstance(text, str):
        raise ParseError(repr(text), "expected a string")
    try:
        return semver.Version.parse(text.strip())
    except (ValueError, TypeError) as exc:
        raise ParseError(text, "expected MAJOR.MINOR.PATCH[-prerelease][+build]") from exc


def format_version(version: semver.Version) -> str:
    return str(version)


def compare_versions(a: semver.Version, b: semver.Version) -> int:
    """Compare two versions by semver precedence, returning -1, 0 or 1.

    Build metadata is ignored; a release outranks its pre-releases.
    """
    return a.compare(b)


def bump_version(version: semver.Version, change_type: ChangeType) -> semver.Version:
    """Apply a change type to a version, dropping any pre-release and build.

    Examples:
        ("1.2.3", major) → "2.0.0"
        ("1.2.3", minor) → "1.3.0"
        ("1.2.3", patch) → "1.2.4"
    """
    change_type = ChangeType(change_type)
    if change_type is ChangeType.MAJOR:
        return version.bump_major()
    if change_type is ChangeType.MINOR:
        return version.bump_minor()
    return version.bump_patch()


def with_prerelease(version: semver.Version, identifier: str | None) -> semver.Version:
    """Replace the pre-release field, keeping release numbers and build.

    An empty identifier strips the pre-release.

    Raises:
        ParseError: If the identifier is not a valid semver pre-release.
    """
    text = f"{version.major}.{version.minor}.{version.patch}"
    if identifier:
        text += f"-{identifier}"
    if version.build:
        text += f"+{version.build}"
    return parse_version(text)


def base_version(version: semver.Version) -> semver.Version:
    """Strip pre-release and build metadata.

    Bump math always starts from the base version, never from an
    in-progress pre-release chain.
    """
    return version.finalize_version()


def is_prerelease(version: semver.Version) -> bool:
    return version.prerelease is not None

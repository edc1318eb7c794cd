"""Version parsing and bumping utilities.

Package manifests may carry incomplete version strings (e.g. "1.0"); these
are padded to full semver before parsing so releases can always bump them.
"""

from __future__ import annotations

import semver


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.2.3" → "1.2.3"

    A prerelease or build suffix on a full version is kept.

    Raises:
        ValueError: If the string is not a version at all.
    """
    core, sep, suffix = version_str.partition("-")
    if "+" in core:
        core, _, build = core.partition("+")
        suffix, sep = build, "+"
    parts = core.split(".")
    while len(parts) < 3:
        parts.append("0")
    return semver.Version.parse(".".join(parts) + (sep + suffix if sep else ""))


def bump_patch(version_str: str) -> str:
    """Increment the patch version and return as a string.

    Examples:
        "1.2.3" → "1.2.4"
        "1.0" → "1.0.1"
        "2" → "2.0.1"
    """
    return str(parse_version(version_str).bump_patch())

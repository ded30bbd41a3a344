"""Version parsing and bumping utilities.

Handles conversion between version strings and semver objects, with special
handling for incomplete version strings (e.g., "1.0" → "1.0.0") and for
prerelease channels (alpha, beta, rc).
"""

from __future__ import annotations

import re

import semver

# Checked in this order when a bump reason names a channel.
CHANNELS = ("rc", "beta", "alpha")

RELEASE_TYPES = ("major", "minor", "patch", "prerelease", "release")


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.2.3-beta.1" → "1.2.3-beta.1"
    """
    return semver.Version.parse(version_str, optional_minor_and_patch=True)


def prerelease_channel(version: semver.Version) -> str | None:
    """Return the channel of a prerelease ("beta" for 2.0.0-beta.5), or None."""
    if not version.prerelease:
        return None
    return version.prerelease.split(".")[0]


def channel_from_reason(reason: str, default: str) -> str:
    """Pick the channel named in a bump reason, falling back to ``default``."""
    lowered = reason.lower()
    for channel in CHANNELS:
        if re.search(rf"\b{channel}\b", lowered):
            return channel
    return default


def increment_prerelease(version: semver.Version) -> semver.Version:
    """Increment the prerelease counter, keeping the channel.

    Examples:
        "2.0.0-beta.5" → "2.0.0-beta.6"
        "2.0.0-beta" → "2.0.0-beta.0"
    """
    parts = (version.prerelease or "").split(".")
    if parts[-1].isdigit():
        parts[-1] = str(int(parts[-1]) + 1)
    else:
        parts.append("0")
    return version.replace(prerelease=".".join(parts), build=None)


def next_version(current: str, release_type: str, reason: str = "") -> str | None:
    """Apply a release type to ``current`` and return the next version.

    While ``current`` is a prerelease the channel semantics win:
    - "release" strips the prerelease suffix (2.0.0-rc.5 → 2.0.0).
    - "prerelease" switches to the channel named in ``reason`` with the
      counter reset (2.0.0-beta.5 + "rc" → 2.0.0-rc.0), or increments the
      counter when the channel is unchanged.
    - anything else only increments the counter.

    Returns:
        The next version, or None when the result would equal ``current`` or
        the release type does not apply (e.g. "release" on a stable version).

    Raises:
        ValueError: For an unknown release type or an invalid version.
    """
    if release_type not in RELEASE_TYPES:
        raise ValueError(f"Unknown release type: {release_type}")

    version = parse_version(current)
    channel = prerelease_channel(version)

    if channel is not None:
        if release_type == "release":
            bumped = version.finalize_version()
        elif release_type == "prerelease":
            target = channel_from_reason(reason, channel)
            if target == channel:
                bumped = increment_prerelease(version)
            else:
                bumped = version.replace(prerelease=f"{target}.0", build=None)
        else:
            bumped = increment_prerelease(version)
    elif release_type == "major":
        bumped = version.bump_major()
    elif release_type == "minor":
        bumped = version.bump_minor()
    elif release_type == "patch":
        bumped = version.bump_patch()
    elif release_type == "prerelease":
        target = channel_from_reason(reason, "rc")
        bumped = version.bump_patch().replace(prerelease=f"{target}.0")
    else:
        # "release" on a stable version has nothing to strip
        return None

    result = str(bumped)
    if result == current:
        return None
    return result


def version_key(version_str: str) -> semver.Version | None:
    """Sort key for tag versions; None when the string is not semver."""
    try:
        return parse_version(version_str)
    except ValueError:
        return None

"""Version management utilities for peerscout.

This module provides functions to:
- Retrieve the installed package version using importlib
- Generate peer_id prefixes based on version
"""

from __future__ import annotations

import importlib.metadata
import re
from typing import Final

# Client tag used in the peer_id prefix
CLIENT_TAG: Final[str] = "PS"


def get_version() -> str:
    """Get the installed package version.

    Uses importlib.metadata to get version from installed package.
    Falls back to peerscout.__version__ if metadata is unavailable.

    Returns:
        Version string (e.g., "0.1.0", "1.2.3")
    """
    try:
        return importlib.metadata.version("peerscout")
    except importlib.metadata.PackageNotFoundError:
        import peerscout

        return getattr(peerscout, "__version__", "0.0.1")


def parse_version(version: str) -> tuple[int, int, int]:
    """Parse version string into major, minor, patch components.

    Raises:
        ValueError: If version format is invalid
    """
    # Drop pre-release or build metadata ("0.1.0-alpha.1" -> "0.1.0")
    version_clean = re.split(r"[-+]", version)[0]

    parts = version_clean.split(".")
    if len(parts) < 2:
        msg = f"Invalid version format: {version} (expected MAJOR.MINOR.PATCH)"
        raise ValueError(msg)

    major = int(parts[0])
    minor = int(parts[1])
    patch = int(parts[2]) if len(parts) > 2 else 0

    return (major, minor, patch)


def get_peer_id_prefix(version: str | None = None) -> bytes:
    """Generate the 8-byte peer_id prefix from version.

    Pattern: -PS{major:02d}{minor:02d}-, patch version is ignored.

    Examples:
        Version 0.1.0 -> -PS0100-
        Version 1.2.3 -> -PS0102-
    """
    if version is None:
        version = get_version()

    major, minor, _patch = parse_version(version)
    prefix = f"-{CLIENT_TAG}{major % 100:02d}{minor % 100:02d}-"
    return prefix.encode("ascii")

"""
Version utility functions for the RichStore index layer.

This module provides functions for managing and retrieving version information.
"""

from typing import Tuple, Optional


VERSION = (0, 3, 0, "dev", 1)


def get_version(version: Optional[Tuple[int, int, int, str, int]] = None) -> str:
    """
    Return a PEP 440-compliant version number from VERSION.

    Args:
        version: Version tuple (major, minor, micro, releaselevel, serial)
                If not provided, uses the global VERSION tuple

    Returns:
        PEP 440-compliant version string
    """
    major, minor, micro, releaselevel, serial = version or VERSION

    version_str = f"{major}.{minor}"
    if micro is not None:
        version_str += f".{micro}"

    if releaselevel != "final":
        if releaselevel == "dev":
            version_str += ".dev"
        else:
            version_str += f"-{releaselevel}"
        if serial > 0:
            version_str += str(serial)

    return version_str


def get_major_version(version: Optional[Tuple[int, int, int, str, int]] = None) -> str:
    """Return the "major.minor" part of the version."""
    major, minor, _, _, _ = version or VERSION
    return f"{major}.{minor}"

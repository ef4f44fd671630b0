"""
P2P Handshake - Version Management
====================================
Semantic versioning and the user agent announced to peers.
"""

from typing import NamedTuple


# ============================================================================
# VERSION INFO
# ============================================================================

class VersionInfo(NamedTuple):
    """Version information structure"""
    major: int
    minor: int
    patch: int
    prerelease: str = ""


VERSION = VersionInfo(major=1, minor=0, patch=0)


def get_version_string() -> str:
    """
    Get version as string.

    Returns:
        str: Version (e.g., "1.0.0", "1.0.0-beta")
    """
    version_str = f"{VERSION.major}.{VERSION.minor}.{VERSION.patch}"

    if VERSION.prerelease:
        version_str += f"-{VERSION.prerelease}"

    return version_str


# ============================================================================
# USER AGENT
# ============================================================================

def get_user_agent() -> str:
    """
    Get User-Agent string for the version message (BIP 14 format).

    Format: /p2p-handshake:1.0.0/
    """
    return f"/p2p-handshake:{get_version_string()}/"


__version__ = get_version_string()
__version_info__ = VERSION

__all__ = [
    "__version__",
    "__version_info__",
    "VERSION",
    "get_version_string",
    "get_user_agent",
]

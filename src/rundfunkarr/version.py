"""Version detection with support for development builds."""

from __future__ import annotations

import os
from importlib import metadata

# Fallback version when the package is not installed
_FALLBACK_VERSION = "0.1.0"


def get_version() -> str:
    """Get the current version string.

    Priority:
    1. BUILD_VERSION environment variable (set during CI/CD)
    2. GIT_SHA environment variable (Docker build arg), as ``dev (<sha>)``
    3. Installed distribution metadata
    4. Fallback to the source version
    """
    build_version = os.environ.get("BUILD_VERSION")
    if build_version and build_version.strip():
        return build_version.strip()

    env_sha = os.environ.get("GIT_SHA")
    if env_sha and env_sha.strip():
        return f"dev ({env_sha.strip()})"

    try:
        return metadata.version("rundfunkarr")
    except metadata.PackageNotFoundError:
        return _FALLBACK_VERSION


__version__ = get_version()

"""Sandbox infrastructure for isolated package builds.

Builds of untrusted AUR recipes run under bubblewrap, configured from
declarative isolation profiles.
"""

from poxy.sandbox.bubblewrap import BubblewrapExecutor, build_sandbox_profile, fetch_sandbox_profile
from poxy.sandbox.profiles import (
    BUILD_PROFILE,
    FETCH_PROFILE,
    MINIMAL_PROFILE,
    IsolationProfile,
    get_profile,
)

__all__ = [
    # Profiles
    "IsolationProfile",
    "BUILD_PROFILE",
    "FETCH_PROFILE",
    "MINIMAL_PROFILE",
    "get_profile",
    # Executor
    "BubblewrapExecutor",
    "build_sandbox_profile",
    "fetch_sandbox_profile",
]

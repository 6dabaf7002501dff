"""Bubblewrap isolation profiles for package builds.

An isolation profile is pure configuration: which host paths are bound
into the sandbox, which namespaces are unshared, and what environment the
wrapped process sees. The executor in ``poxy.sandbox.bubblewrap`` turns a
profile into launcher arguments.

The three built-in templates are locked. Callers take a ``clone()`` and
mutate that; every list and mapping is copied so no clone can leak
changes into a template or into another clone.
"""

from typing import Any

from pydantic import BaseModel, Field, PrivateAttr

from poxy.exceptions import ProfileLockedError


class IsolationProfile(BaseModel):
    """Complete sandbox isolation policy."""

    name: str = Field(..., description="Profile identifier")

    # Filesystem
    bind_read_only: list[str] = Field(default_factory=list, description="Read-only bind mounts")
    bind_read_write: list[str] = Field(default_factory=list, description="Read-write bind mounts")
    dev_binds: list[str] = Field(default_factory=list, description="Device node bind mounts")
    tmpfs: list[str] = Field(default_factory=list, description="Tmpfs mount points")
    symlinks: dict[str, str] = Field(
        default_factory=dict,
        description="Symlinks to create inside the sandbox (link path -> target)",
    )
    use_dev: bool = Field(
        default=False,
        description="Mount a fresh /dev instead of binding individual device nodes",
    )

    # Namespaces
    unshare_user: bool = Field(default=False, description="New user namespace")
    unshare_pid: bool = Field(default=False, description="New PID namespace")
    unshare_net: bool = Field(default=False, description="New network namespace (no network)")
    unshare_ipc: bool = Field(default=False, description="New IPC namespace")
    unshare_cgroup: bool = Field(default=False, description="New cgroup namespace")

    # User mapping inside the user namespace (0 keeps the caller's id)
    uid: int = Field(default=0, ge=0)
    gid: int = Field(default=0, ge=0)

    # Process lifecycle
    die_with_parent: bool = Field(default=True, description="Kill the sandbox if poxy dies")
    new_session: bool = Field(default=True, description="Detach from the controlling terminal session")

    # Environment
    clear_env: bool = Field(default=False, description="Clear the environment before setting variables")
    env: dict[str, str] | None = Field(default=None, description="Variables to set")
    env_pass: list[str] = Field(default_factory=list, description="Host variables to pass through")

    # Capabilities
    drop_caps: list[str] = Field(default_factory=list, description="Capabilities to drop")

    _locked: bool = PrivateAttr(default=False)

    @property
    def is_template(self) -> bool:
        return self._locked

    def clone(self) -> "IsolationProfile":
        """Return an independent, mutable deep copy."""
        copy = self.model_copy(deep=True)
        copy._locked = False
        return copy

    def _check_mutable(self) -> None:
        if self._locked:
            msg = f"Profile '{self.name}' is a shared template; clone() it before modifying"
            raise ProfileLockedError(msg)

    def add_bind_read_only(self, *paths: str) -> None:
        self._check_mutable()
        self.bind_read_only.extend(str(p) for p in paths)

    def add_bind_read_write(self, *paths: str) -> None:
        self._check_mutable()
        self.bind_read_write.extend(str(p) for p in paths)

    def set_env(self, key: str, value: str) -> None:
        self._check_mutable()
        if self.env is None:
            self.env = {}
        self.env[key] = value

    def allow_network(self) -> None:
        self._check_mutable()
        self.unshare_net = False

    def deny_network(self) -> None:
        self._check_mutable()
        self.unshare_net = True

    def to_dict(self) -> dict[str, Any]:
        """Convert profile to dictionary for logging/display."""
        return self.model_dump()


def _template(**fields: Any) -> IsolationProfile:
    profile = IsolationProfile(**fields)
    profile._locked = True
    return profile


_STANDARD_SYMLINKS = {
    "/lib": "/usr/lib",
    "/lib64": "/usr/lib",
    "/bin": "/usr/bin",
    "/sbin": "/usr/bin",
}


# =============================================================================
# PREDEFINED PROFILES
# =============================================================================


def _build_profile() -> IsolationProfile:
    """makepkg builds: broad read-only system view, no network."""
    return _template(
        name="build",
        bind_read_only=[
            "/usr",
            "/etc/resolv.conf",
            "/etc/passwd",
            "/etc/group",
            "/etc/hosts",
            "/etc/ssl",
            "/etc/ca-certificates",
            "/etc/makepkg.conf",
            "/etc/pacman.conf",
            "/etc/pacman.d",
            "/var/lib/pacman",  # makepkg checks installed deps through pacman
        ],
        dev_binds=[
            "/dev/null",
            "/dev/zero",
            "/dev/random",
            "/dev/urandom",
            "/dev/tty",
            "/dev/fd",  # bash process substitution
        ],
        tmpfs=["/tmp", "/var/tmp"],
        symlinks=dict(_STANDARD_SYMLINKS),
        unshare_user=False,  # builds write files owned by the invoking user
        unshare_pid=True,
        unshare_net=True,
        unshare_ipc=True,
        unshare_cgroup=False,
        die_with_parent=True,
        new_session=True,
        clear_env=False,
        env_pass=[
            "PATH",
            "HOME",
            "USER",
            "LANG",
            "LC_ALL",
            "TERM",
            "MAKEFLAGS",
            "CFLAGS",
            "CXXFLAGS",
            "LDFLAGS",
        ],
        env={"SOURCE_DATE_EPOCH": "0"},
    )


def _fetch_profile() -> IsolationProfile:
    """Source downloads: network on, narrower filesystem."""
    return _template(
        name="fetch",
        bind_read_only=[
            "/usr",
            "/etc/resolv.conf",
            "/etc/passwd",
            "/etc/group",
            "/etc/hosts",
            "/etc/ssl",
            "/etc/ca-certificates",
        ],
        dev_binds=["/dev/null", "/dev/zero", "/dev/random", "/dev/urandom"],
        tmpfs=["/tmp"],
        symlinks=dict(_STANDARD_SYMLINKS),
        unshare_user=False,
        unshare_pid=True,
        unshare_net=False,
        unshare_ipc=True,
        unshare_cgroup=False,
        die_with_parent=True,
        new_session=True,
        clear_env=False,
        env_pass=[
            "PATH",
            "HOME",
            "USER",
            "LANG",
            "TERM",
            "http_proxy",
            "https_proxy",
            "ftp_proxy",
            "no_proxy",
            "HTTP_PROXY",
            "HTTPS_PROXY",
        ],
    )


def _minimal_profile() -> IsolationProfile:
    """Untrusted code: every namespace unshared, nobody:nobody, no capabilities."""
    return _template(
        name="minimal",
        bind_read_only=["/usr/bin", "/usr/lib"],
        dev_binds=["/dev/null", "/dev/zero", "/dev/urandom"],
        tmpfs=["/tmp"],
        symlinks={
            "/lib": "/usr/lib",
            "/lib64": "/usr/lib",
            "/bin": "/usr/bin",
        },
        unshare_user=True,
        unshare_pid=True,
        unshare_net=True,
        unshare_ipc=True,
        unshare_cgroup=True,
        uid=65534,
        gid=65534,
        die_with_parent=True,
        new_session=True,
        clear_env=True,
        env={"PATH": "/usr/bin", "HOME": "/tmp"},
        drop_caps=["ALL"],
    )


BUILD_PROFILE = _build_profile()
FETCH_PROFILE = _fetch_profile()
MINIMAL_PROFILE = _minimal_profile()

_PROFILES: dict[str, IsolationProfile] = {
    "build": BUILD_PROFILE,
    "fetch": FETCH_PROFILE,
    "minimal": MINIMAL_PROFILE,
}


def get_profile(name: str) -> IsolationProfile:
    """Get a mutable clone of a predefined profile.

    Args:
        name: Profile name (build, fetch, minimal)

    Returns:
        IsolationProfile clone

    Raises:
        ValueError: If profile name is unknown
    """
    if name not in _PROFILES:
        available = ", ".join(_PROFILES.keys())
        msg = f"Unknown profile '{name}'. Available: {available}"
        raise ValueError(msg)

    return _PROFILES[name].clone()


__all__ = [
    "BUILD_PROFILE",
    "FETCH_PROFILE",
    "MINIMAL_PROFILE",
    "IsolationProfile",
    "get_profile",
]

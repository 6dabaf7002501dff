"""Application settings using pydantic-settings.

Loads configuration from ``POXY_*`` environment variables with .env file
support.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_cache_dir() -> Path:
    return Path.home() / ".cache" / "poxy" / "aur"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="POXY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "production", "testing"] = "production"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"

    # AUR registry
    aur_rpc_url: str = Field(
        default="https://aur.archlinux.org/rpc/v5",
        description="AUR RPC API endpoint",
    )
    aur_base_url: str = Field(
        default="https://aur.archlinux.org",
        description="AUR web root, used for git clone and snapshot URLs",
    )
    registry_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout for AUR RPC requests",
    )

    # Build cache
    cache_dir: Path = Field(
        default_factory=_default_cache_dir,
        description="Root directory for cloned AUR repositories and build output",
    )

    # Recipe parsing
    parse_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=600,
        description="Upper bound for sourcing a PKGBUILD in bash before falling back to regex parsing",
    )

    # Build pipeline defaults
    review_pkgbuild: bool = Field(
        default=True,
        description="Show the PKGBUILD security review before building",
    )
    use_sandbox: bool = Field(
        default=True,
        description="Run makepkg inside a bubblewrap sandbox when bwrap is available",
    )

    # External tools
    bwrap_path: str = Field(default="bwrap", description="Path to the bubblewrap launcher")
    git_path: str = Field(default="git", description="Path to git")
    makepkg_path: str = Field(default="makepkg", description="Path to makepkg")
    pacman_path: str = Field(default="pacman", description="Path to pacman")
    sudo_path: str = Field(default="sudo", description="Privilege escalation command for pacman")
    bash_path: str = Field(default="bash", description="Shell used to source PKGBUILDs")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are loaded once and reused.
    """
    return Settings()

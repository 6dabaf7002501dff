"""Parsed PKGBUILD model."""

from pathlib import Path

from pydantic import BaseModel, Field

# Schemes a source entry must use to count as a remote URL
SOURCE_URL_PREFIXES = ("http://", "https://", "ftp://", "git+", "svn+", "hg+", "bzr+")


class DangerousCommand(BaseModel):
    """A recipe line flagged by the dangerous-command scanner."""

    line: int = Field(..., ge=1, description="1-based line number")
    command: str = Field(..., description="The trimmed source line")
    reason: str = Field(..., description="Why the line was flagged")


class BuildRecipe(BaseModel):
    """A parsed PKGBUILD.

    Field names follow the PKGBUILD variables they come from.
    """

    path: Path | None = None

    # Identity
    pkgname: list[str] = Field(default_factory=list, description="Declared names (several for split packages)")
    pkgbase: str = ""
    pkgver: str = ""
    pkgrel: str = ""
    epoch: str = ""
    pkgdesc: str = ""
    url: str = ""
    license: list[str] = Field(default_factory=list)
    arch: list[str] = Field(default_factory=list)
    groups: list[str] = Field(default_factory=list)

    # Dependencies
    depends: list[str] = Field(default_factory=list)
    makedepends: list[str] = Field(default_factory=list)
    checkdepends: list[str] = Field(default_factory=list)
    optdepends: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    provides: list[str] = Field(default_factory=list)
    replaces: list[str] = Field(default_factory=list)

    # Sources
    source: list[str] = Field(default_factory=list)
    noextract: list[str] = Field(default_factory=list)

    # Checksums
    md5sums: list[str] = Field(default_factory=list)
    sha256sums: list[str] = Field(default_factory=list)
    sha512sums: list[str] = Field(default_factory=list)
    b2sums: list[str] = Field(default_factory=list)

    # Packaging
    options: list[str] = Field(default_factory=list)
    backup: list[str] = Field(default_factory=list)
    install: str = ""

    # Lifecycle functions present in the file
    has_prepare: bool = False
    has_build: bool = False
    has_check: bool = False
    has_package: bool = False

    # Review material
    raw_content: str = ""
    dangerous_commands: list[DangerousCommand] = Field(default_factory=list)

    @property
    def name(self) -> str:
        """Primary package name."""
        if self.pkgname:
            return self.pkgname[0]
        return self.pkgbase

    @property
    def full_version(self) -> str:
        """``[epoch:]pkgver[-pkgrel]``."""
        version = self.pkgver
        if self.pkgrel:
            version += f"-{self.pkgrel}"
        if self.epoch:
            version = f"{self.epoch}:{version}"
        return version

    @property
    def is_split_package(self) -> bool:
        return len(self.pkgname) > 1

    @property
    def runtime_dependencies(self) -> list[str]:
        return list(self.depends)

    @property
    def build_dependencies(self) -> list[str]:
        return [*self.makedepends, *self.checkdepends]

    @property
    def all_dependencies(self) -> list[str]:
        return [*self.runtime_dependencies, *self.build_dependencies]

    @property
    def has_dangerous_commands(self) -> bool:
        return bool(self.dangerous_commands)

    @property
    def source_urls(self) -> list[str]:
        """Remote URLs from ``source``, with any ``destfile::`` prefix removed."""
        urls = []
        for entry in self.source:
            _, sep, remainder = entry.partition("::")
            candidate = remainder if sep else entry
            if candidate.startswith(SOURCE_URL_PREFIXES):
                urls.append(candidate)
        return urls

    @property
    def lifecycle_hooks(self) -> list[str]:
        hooks = []
        if self.has_prepare:
            hooks.append("prepare()")
        if self.has_build:
            hooks.append("build()")
        if self.has_check:
            hooks.append("check()")
        if self.has_package:
            hooks.append("package()")
        return hooks


__all__ = ["BuildRecipe", "DangerousCommand", "SOURCE_URL_PREFIXES"]

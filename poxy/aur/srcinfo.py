""".SRCINFO parsing.

.SRCINFO is makepkg's static ``key = value`` dump of a PKGBUILD. Keys
before the first ``pkgname`` line describe the package base; each
``pkgname`` line starts a per-package override section.
"""

from pathlib import Path

from pydantic import BaseModel, Field

from poxy.exceptions import PoxyError

_BASE_SCALARS = {"pkgbase", "pkgdesc", "pkgver", "pkgrel", "epoch", "url", "install", "changelog"}
_BASE_LISTS = {
    "arch",
    "license",
    "groups",
    "depends",
    "makedepends",
    "checkdepends",
    "optdepends",
    "conflicts",
    "provides",
    "replaces",
    "source",
    "noextract",
    "options",
    "backup",
    "md5sums",
    "sha1sums",
    "sha256sums",
    "sha384sums",
    "sha512sums",
    "b2sums",
}
_PACKAGE_SCALARS = {"pkgdesc", "url", "install"}
_PACKAGE_LISTS = {
    "arch",
    "license",
    "groups",
    "depends",
    "optdepends",
    "provides",
    "conflicts",
    "replaces",
    "backup",
    "options",
}


class SrcInfoPackage(BaseModel):
    """One ``pkgname`` section of a split package."""

    pkgname: str
    pkgdesc: str = ""
    url: str = ""
    install: str = ""
    arch: list[str] = Field(default_factory=list)
    license: list[str] = Field(default_factory=list)
    groups: list[str] = Field(default_factory=list)
    depends: list[str] = Field(default_factory=list)
    optdepends: list[str] = Field(default_factory=list)
    provides: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    replaces: list[str] = Field(default_factory=list)
    backup: list[str] = Field(default_factory=list)
    options: list[str] = Field(default_factory=list)


class SrcInfo(BaseModel):
    """A parsed .SRCINFO file."""

    pkgbase: str = ""
    pkgdesc: str = ""
    pkgver: str = ""
    pkgrel: str = ""
    epoch: str = ""
    url: str = ""
    install: str = ""
    changelog: str = ""
    arch: list[str] = Field(default_factory=list)
    license: list[str] = Field(default_factory=list)
    groups: list[str] = Field(default_factory=list)
    depends: list[str] = Field(default_factory=list)
    makedepends: list[str] = Field(default_factory=list)
    checkdepends: list[str] = Field(default_factory=list)
    optdepends: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    provides: list[str] = Field(default_factory=list)
    replaces: list[str] = Field(default_factory=list)
    source: list[str] = Field(default_factory=list)
    noextract: list[str] = Field(default_factory=list)
    options: list[str] = Field(default_factory=list)
    backup: list[str] = Field(default_factory=list)

    # Checksums, parallel to ``source``
    md5sums: list[str] = Field(default_factory=list)
    sha1sums: list[str] = Field(default_factory=list)
    sha256sums: list[str] = Field(default_factory=list)
    sha384sums: list[str] = Field(default_factory=list)
    sha512sums: list[str] = Field(default_factory=list)
    b2sums: list[str] = Field(default_factory=list)

    packages: list[SrcInfoPackage] = Field(default_factory=list)

    @property
    def full_version(self) -> str:
        version = self.pkgver
        if self.pkgrel:
            version += f"-{self.pkgrel}"
        if self.epoch:
            version = f"{self.epoch}:{version}"
        return version

    @property
    def package_names(self) -> list[str]:
        return [pkg.pkgname for pkg in self.packages]

    @property
    def build_dependencies(self) -> list[str]:
        return [*self.makedepends, *self.checkdepends]

    def get_package(self, name: str) -> SrcInfoPackage | None:
        for pkg in self.packages:
            if pkg.pkgname == name:
                return pkg
        return None


def _assign(target: BaseModel, key: str, value: str, scalars: set[str], lists: set[str]) -> None:
    if key in scalars:
        setattr(target, key, value)
    elif key in lists:
        getattr(target, key).append(value)


def parse_srcinfo_content(content: str) -> SrcInfo:
    """Parse .SRCINFO text. Unknown keys and malformed lines are skipped."""
    info = SrcInfo()
    current: SrcInfoPackage | None = None

    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        key, sep, value = line.partition("=")
        if not sep:
            continue
        key, value = key.strip(), value.strip()

        if key == "pkgname":
            current = SrcInfoPackage(pkgname=value)
            info.packages.append(current)
            continue

        if current is not None:
            _assign(current, key, value, _PACKAGE_SCALARS, _PACKAGE_LISTS)
        else:
            _assign(info, key, value, _BASE_SCALARS, _BASE_LISTS)

    return info


def parse_srcinfo(path: Path | str) -> SrcInfo:
    """Parse a .SRCINFO file.

    Raises:
        PoxyError: the file could not be read
    """
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise PoxyError(f"failed to open .SRCINFO: {e}") from e
    return parse_srcinfo_content(content)


__all__ = ["SrcInfo", "SrcInfoPackage", "parse_srcinfo", "parse_srcinfo_content"]

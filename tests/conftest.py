"""Shared test fixtures for poxy.

Provides settings, sample PKGBUILDs and registry records used across the
unit tests.
"""

from pathlib import Path

import pytest

from poxy.aur.client import RegistryPackage
from poxy.settings import Settings, get_settings

SAMPLE_PKGBUILD = """\
# Maintainer: Jane Doe <jane@example.com>
pkgname=hello-aur
pkgver=1.2.3
pkgrel=2
epoch=1
pkgdesc="A friendly greeter"
arch=('x86_64' 'aarch64')
url="https://example.com/hello"
license=('MIT')
depends=('glibc' 'openssl>=3.0')
makedepends=('cmake' 'git')
checkdepends=('python-pytest')
source=("hello-1.2.3.tar.gz::https://example.com/hello-1.2.3.tar.gz"
        "git+https://example.com/hello.git"
        "fix-build.patch")
sha256sums=('SKIP' 'SKIP' 'SKIP')

prepare() {
    cd "$srcdir/hello-$pkgver"
    patch -p1 < ../fix-build.patch
}

build() {
    cd "$srcdir/hello-$pkgver"
    cmake -B build
    make -C build
}

package() {
    cd "$srcdir/hello-$pkgver"
    make -C build DESTDIR="$pkgdir" install
}
"""


# =============================================================================
# SETTINGS
# =============================================================================


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Provide test settings with a private cache directory."""
    return Settings(
        environment="testing",
        cache_dir=tmp_path / "cache",
        parse_timeout_seconds=5.0,
        review_pkgbuild=True,
        use_sandbox=True,
    )


@pytest.fixture
def mock_settings(test_settings: Settings, monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Make get_settings() return the test settings everywhere it is imported."""
    import poxy.aur.builder
    import poxy.cli.commands.build
    import poxy.cli.main
    import poxy.logging_config

    get_settings.cache_clear()
    for module in (poxy.aur.builder, poxy.cli.commands.build, poxy.cli.main, poxy.logging_config):
        monkeypatch.setattr(module, "get_settings", lambda: test_settings)
    return test_settings


# =============================================================================
# RECIPES AND PACKAGES
# =============================================================================


@pytest.fixture
def sample_pkgbuild() -> str:
    return SAMPLE_PKGBUILD


@pytest.fixture
def write_recipe(tmp_path: Path):
    """Write PKGBUILD text to ``<tmp>/<dirname>/PKGBUILD`` and return its path."""

    def _write(content: str, dirname: str = "pkg") -> Path:
        pkg_dir = tmp_path / dirname
        pkg_dir.mkdir(parents=True, exist_ok=True)
        path = pkg_dir / "PKGBUILD"
        path.write_text(content)
        return path

    return _write


def _make_registry_package(**overrides) -> RegistryPackage:
    """Build a RegistryPackage from AUR-shaped JSON keys."""
    data = {
        "ID": 1,
        "Name": "hello-aur",
        "PackageBaseID": 1,
        "PackageBase": "hello-aur",
        "Version": "1:1.2.3-2",
        "Description": "A friendly greeter",
        "URL": "https://example.com/hello",
        "NumVotes": 42,
        "Popularity": 1.5,
        "OutOfDate": None,
        "Maintainer": "jane",
        "FirstSubmitted": 1600000000,
        "LastModified": 1700000000,
        "URLPath": "/cgit/aur.git/snapshot/hello-aur.tar.gz",
    }
    data.update(overrides)
    return RegistryPackage.model_validate(data)


@pytest.fixture
def registry_package() -> RegistryPackage:
    return _make_registry_package()


@pytest.fixture
def make_package():
    """Factory for RegistryPackage records with overridable AUR fields."""
    return _make_registry_package

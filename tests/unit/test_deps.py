"""Unit tests for poxy/aur/deps.py."""

from unittest.mock import AsyncMock

import pytest

from poxy.aur.deps import DependencyResolver, strip_version_constraint
from poxy.aur.recipe import BuildRecipe
from poxy.exceptions import DependencyError, ProcessError


def _native(installed: set[str]) -> AsyncMock:
    native = AsyncMock()
    native.is_installed.side_effect = lambda name, cancel=None: name in installed
    return native


class TestStripVersionConstraint:
    @pytest.mark.parametrize(
        ("dep", "expected"),
        [
            ("foo>=1.0", "foo"),
            ("foo<=2", "foo"),
            ("foo=1.0-1", "foo"),
            ("foo>1", "foo"),
            ("foo<3", "foo"),
            ("foo", "foo"),
            ("lib32-foo>=1:2.0", "lib32-foo"),
        ],
    )
    def test_strip(self, dep, expected):
        assert strip_version_constraint(dep) == expected


class TestFindMissing:
    async def test_probes_bare_names(self):
        native = _native({"bar"})
        missing = await DependencyResolver(native).find_missing(["foo>=1.0", "bar"])

        assert missing == ["foo>=1.0"]
        probed = [c.args[0] for c in native.is_installed.await_args_list]
        assert probed == ["foo", "bar"]


class TestInstallMissing:
    async def test_installs_exactly_missing_subset(self):
        native = _native({"bar"})
        recipe = BuildRecipe(depends=["foo>=1.0", "bar"])

        installed = await DependencyResolver(native).install_missing(recipe, as_deps=True, no_confirm=True)

        assert installed == ["foo>=1.0"]
        native.install.assert_awaited_once_with(["foo>=1.0"], as_deps=True, no_confirm=True, cancel=None)

    async def test_includes_build_and_check_deps(self):
        native = _native(set())
        recipe = BuildRecipe(depends=["a"], makedepends=["b"], checkdepends=["c"])

        assert await DependencyResolver(native).install_missing(recipe) == ["a", "b", "c"]

    async def test_nothing_missing(self):
        native = _native({"foo", "bar"})
        recipe = BuildRecipe(depends=["foo"], makedepends=["bar"])

        assert await DependencyResolver(native).install_missing(recipe) == []
        native.install.assert_not_awaited()

    async def test_no_dependencies(self):
        native = _native(set())
        assert await DependencyResolver(native).install_missing(BuildRecipe()) == []
        native.is_installed.assert_not_awaited()

    async def test_install_failure(self):
        native = _native(set())
        native.install.side_effect = ProcessError("pacman exited with code 1", argv=["pacman"], returncode=1)

        with pytest.raises(DependencyError) as exc_info:
            await DependencyResolver(native).install_missing(BuildRecipe(depends=["foo"]))

        assert exc_info.value.stage == "deps"
        assert "missing dependencies" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, ProcessError)

    async def test_unqueryable_database(self):
        native = _native(set())
        native.is_installed.side_effect = PermissionError("pacman: permission denied")

        with pytest.raises(DependencyError) as exc_info:
            await DependencyResolver(native).install_missing(BuildRecipe(depends=["foo"]))

        assert exc_info.value.stage == "deps"
        assert isinstance(exc_info.value.__cause__, PermissionError)
        native.install.assert_not_awaited()

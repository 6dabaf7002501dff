"""Dependency resolution for AUR builds.

Collects a recipe's runtime, build and check dependencies, probes each
against the native package database, and installs the ones that are
missing.
"""

import asyncio
import logging
import re
from collections.abc import Iterable

from poxy.aur.recipe import BuildRecipe
from poxy.exceptions import DependencyError, ProcessError
from poxy.native.pacman import NativePackageManager

logger = logging.getLogger(__name__)

# Longest operators first so ">=" is not read as ">"
_CONSTRAINT = re.compile(r">=|<=|=|>|<")


def strip_version_constraint(dependency: str) -> str:
    """``"foo>=1.0"`` -> ``"foo"``."""
    return _CONSTRAINT.split(dependency, maxsplit=1)[0]


class DependencyResolver:
    """Finds and installs the missing dependencies of a recipe."""

    def __init__(self, native: NativePackageManager) -> None:
        self.native = native

    async def find_missing(
        self,
        dependencies: Iterable[str],
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[str]:
        """Return the dependencies (as written) whose package is not installed.

        Raises:
            DependencyError: the package database could not be queried
        """
        missing = []
        for dep in dependencies:
            name = strip_version_constraint(dep)
            try:
                installed = await self.native.is_installed(name, cancel=cancel)
            except OSError as e:
                raise DependencyError(f"failed to check whether {name} is installed: {e}") from e
            if not installed:
                missing.append(dep)
        return missing

    async def install_missing(
        self,
        recipe: BuildRecipe,
        *,
        as_deps: bool = False,
        no_confirm: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> list[str]:
        """Install whatever the recipe needs that is not already installed.

        Returns:
            The dependencies that were installed (empty if none were missing)

        Raises:
            DependencyError: the native install failed
        """
        dependencies = recipe.all_dependencies
        if not dependencies:
            return []

        missing = await self.find_missing(dependencies, cancel=cancel)
        if not missing:
            logger.debug("All %d dependencies of %s are installed", len(dependencies), recipe.name)
            return []

        logger.info("Installing %d missing dependencies: %s", len(missing), ", ".join(missing))
        try:
            await self.native.install(missing, as_deps=as_deps, no_confirm=no_confirm, cancel=cancel)
        except (ProcessError, OSError) as e:
            raise DependencyError(f"missing dependencies: {e}") from e
        return missing


__all__ = ["DependencyResolver", "strip_version_constraint"]

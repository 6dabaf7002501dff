"""pacman adapter for the native package database.

Only the operations the AUR build pipeline needs: probing whether a
package is installed, installing repository packages, and installing
locally built archives.
"""

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from poxy.process import run_process

logger = logging.getLogger(__name__)


class NativePackageManager(Protocol):
    """Native package database operations consumed by the build pipeline."""

    async def is_installed(self, name: str, *, cancel: asyncio.Event | None = None) -> bool: ...

    async def install(
        self,
        names: Sequence[str],
        *,
        as_deps: bool = False,
        no_confirm: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> None: ...

    async def install_files(
        self,
        paths: Sequence[Path],
        *,
        as_deps: bool = False,
        no_confirm: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> None: ...


class Pacman:
    """Runs pacman, escalating with sudo for database changes.

    Installs inherit the terminal so pacman can prompt for confirmation
    and sudo for a password.
    """

    def __init__(self, pacman_path: str = "pacman", sudo_path: str = "sudo") -> None:
        self.pacman_path = pacman_path
        self.sudo_path = sudo_path

    async def is_installed(self, name: str, *, cancel: asyncio.Event | None = None) -> bool:
        """``pacman -Q <name>``."""
        try:
            result = await run_process([self.pacman_path, "-Q", name], cancel=cancel)
        except FileNotFoundError:
            logger.warning("pacman not found at '%s'", self.pacman_path)
            return False
        return result.ok

    async def install(
        self,
        names: Sequence[str],
        *,
        as_deps: bool = False,
        no_confirm: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> None:
        """``sudo pacman -S --needed`` for repository packages.

        Raises:
            ProcessError: pacman exited non-zero
        """
        args = ["-S", "--needed"]
        args.extend(self._flags(as_deps=as_deps, no_confirm=no_confirm))
        args.extend(names)
        await self._run_sudo(args, cancel=cancel)

    async def install_files(
        self,
        paths: Sequence[Path],
        *,
        as_deps: bool = False,
        no_confirm: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> None:
        """``sudo pacman -U`` for built package archives.

        Raises:
            ProcessError: pacman exited non-zero
        """
        args = ["-U"]
        args.extend(self._flags(as_deps=as_deps, no_confirm=no_confirm))
        args.extend(str(p) for p in paths)
        await self._run_sudo(args, cancel=cancel)

    @staticmethod
    def _flags(*, as_deps: bool, no_confirm: bool) -> list[str]:
        flags = []
        if no_confirm:
            flags.append("--noconfirm")
        if as_deps:
            flags.append("--asdeps")
        return flags

    async def _run_sudo(self, args: list[str], *, cancel: asyncio.Event | None) -> None:
        argv = [self.sudo_path, self.pacman_path, *args]
        result = await run_process(argv, capture=False, cancel=cancel)
        result.check()


__all__ = ["NativePackageManager", "Pacman"]

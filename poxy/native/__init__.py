"""Native package manager adapters."""

from poxy.native.pacman import NativePackageManager, Pacman

__all__ = ["NativePackageManager", "Pacman"]

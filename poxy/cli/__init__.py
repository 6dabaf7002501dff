"""CLI application setup using Typer.

Provides the command-line interface for poxy AUR builds.
"""

from poxy.cli.main import app

__all__ = ["app"]

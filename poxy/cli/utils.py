"""Shared CLI helpers."""

from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape

from poxy.exceptions import BuildStageError, OperationCancelledError, PoxyError, ReviewRejectedError
from poxy.logging_config import configure_logging

console = Console()

EXIT_CANCELLED = 130


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for a CLI invocation (DEBUG with --verbose)."""
    configure_logging("DEBUG" if verbose else None)


def fail(error: BaseException) -> NoReturn:
    """Report an error and exit with the matching status code."""
    if isinstance(error, KeyboardInterrupt):
        console.print("\n[yellow]Cancelled.[/yellow]")
        raise typer.Exit(code=EXIT_CANCELLED)

    if isinstance(error, OperationCancelledError):
        console.print(f"\n[yellow]Cancelled during {error.stage}.[/yellow]")
        raise typer.Exit(code=EXIT_CANCELLED)

    if isinstance(error, ReviewRejectedError):
        console.print("[yellow]Build cancelled by user.[/yellow]")
        raise typer.Exit(code=1)

    if isinstance(error, BuildStageError):
        console.print(f"[red]❌ {error.stage} failed:[/red] {escape(str(error))}")
        raise typer.Exit(code=1)

    if isinstance(error, PoxyError):
        console.print(f"[red]❌ Error:[/red] {escape(str(error))}")
        raise typer.Exit(code=1)

    raise error

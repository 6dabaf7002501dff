"""CLI entry point and base commands.

Provides the main CLI application with commands for:
- build / install: Build AUR packages (and install them)
- audit: Security-scan a PKGBUILD without building
- show / srcinfo: Inspect cached PKGBUILDs
- cache: Manage the build cache
- sandbox: Report bubblewrap availability
"""

import shlex
from pathlib import Path

import typer
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from poxy import __version__
from poxy.cli.commands import build as build_commands
from poxy.cli.commands import cache as cache_commands
from poxy.cli.utils import console, setup_logging
from poxy.sandbox.bubblewrap import BubblewrapExecutor, build_sandbox_profile
from poxy.settings import get_settings

app = typer.Typer(
    name="poxy",
    help="Build AUR packages from reviewed PKGBUILDs in a bubblewrap sandbox",
    add_completion=False,
    no_args_is_help=True,
)

app.command()(build_commands.build)
app.command()(build_commands.install)
app.command()(build_commands.audit)
app.command()(build_commands.show)
app.command()(build_commands.srcinfo)
app.add_typer(cache_commands.app, name="cache")


@app.command()
def sandbox() -> None:
    """Show bubblewrap availability and the build sandbox configuration."""
    setup_logging()
    settings = get_settings()
    executor = BubblewrapExecutor(settings.bwrap_path)
    available = executor.available()

    table = Table(title="Sandbox", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Launcher", settings.bwrap_path)
    table.add_row("Available", "[green]yes[/green]" if available else "[red]no[/red]")
    table.add_row("Enabled", "yes" if settings.use_sandbox else "no (POXY_USE_SANDBOX=false)")
    console.print(table)

    if not available:
        console.print("[yellow]bubblewrap not found; builds will run without isolation.[/yellow]")

    profile = build_sandbox_profile(str(settings.cache_dir))
    profile.allow_network()
    args = executor.build_args(profile, Path.cwd(), [settings.makepkg_path])
    console.print(
        Panel(
            Text(shlex.join([settings.bwrap_path, *args])),
            title=f"Profile: {profile.name}",
            border_style="blue",
        )
    )


@app.command()
def version() -> None:
    """Show poxy version information."""
    console.print(
        Panel(
            f"[bold]poxy[/bold] v{__version__}\nAUR community-build pipeline",
            title="Version",
            border_style="blue",
        )
    )


# Entry point for: python -m poxy.cli.main
if __name__ == "__main__":
    app()

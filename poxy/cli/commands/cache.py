"""Build cache commands."""

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.table import Table

from poxy.aur.builder import AURBuilder
from poxy.cli.utils import console, setup_logging

app = typer.Typer(
    name="cache",
    help="Manage the AUR build cache",
    no_args_is_help=True,
)

CacheDir = Annotated[
    Optional[Path],  # noqa: UP007
    typer.Option("--cache-dir", help="Build cache directory (default: POXY_CACHE_DIR)"),
]


@app.command("list")
def cache_list(cache_dir: CacheDir = None) -> None:
    """List cached package repositories."""
    setup_logging()
    builder = AURBuilder(cache_dir)
    names = builder.list_cached()

    if not names:
        console.print("[yellow]Build cache is empty.[/yellow]")
        return

    table = Table(title=f"Cached packages ({len(names)})", show_header=True)
    table.add_column("Package", style="cyan")
    table.add_column("PKGBUILD", justify="center")

    for name in names:
        has_recipe = (builder.package_dir(name) / "PKGBUILD").exists()
        table.add_row(name, "[green]yes[/green]" if has_recipe else "[dim]no[/dim]")

    console.print(table)
    console.print(f"[dim]{builder.cache_dir}[/dim]")


@app.command("clean")
def cache_clean(
    name: Annotated[
        Optional[str],  # noqa: UP007
        typer.Argument(help="Package to remove from the cache"),
    ] = None,
    all_: Annotated[
        bool,
        typer.Option("--all", "-a", help="Remove the whole build cache"),
    ] = False,
    cache_dir: CacheDir = None,
) -> None:
    """Remove cached repositories and build output."""
    setup_logging()
    builder = AURBuilder(cache_dir)

    if all_:
        builder.clean_all()
        console.print(f"[green]✅ Removed {builder.cache_dir}[/green]")
        return

    if name is None:
        console.print("[red]Give a package name or --all.[/red]")
        raise typer.Exit(code=1)

    if name not in builder.list_cached():
        console.print(f"[yellow]{name} is not cached.[/yellow]")
        return

    builder.clean(name)
    console.print(f"[green]✅ Removed {name} from the cache[/green]")

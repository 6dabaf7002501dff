"""Build, install and inspection commands for AUR packages."""

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from poxy.aur.builder import AURBuilder, BuildOptions
from poxy.aur.parser import generate_srcinfo
from poxy.aur.review import create_review_gate, format_security_summary, print_security_report
from poxy.aur.srcinfo import SrcInfo, parse_srcinfo, parse_srcinfo_content
from poxy.cli.utils import console, fail, setup_logging
from poxy.exceptions import PackageNotCachedError, PoxyError, ProcessError
from poxy.settings import get_settings

Names = Annotated[list[str], typer.Argument(help="AUR package name(s)")]
Name = Annotated[str, typer.Argument(help="AUR package name")]
Yes = Annotated[bool, typer.Option("--yes", "-y", help="Do not prompt; skips the PKGBUILD review")]
Force = Annotated[bool, typer.Option("--force", "-f", help="Overwrite previously built packages")]
NoClean = Annotated[bool, typer.Option("--no-clean", help="Do not clean the build directory first")]
KeepSources = Annotated[bool, typer.Option("--keep-sources", help="Keep extracted sources after building")]
SkipPgp = Annotated[bool, typer.Option("--skip-pgp", help="Skip PGP signature verification")]
NoSandbox = Annotated[bool, typer.Option("--no-sandbox", help="Build without bubblewrap isolation")]
NoReview = Annotated[bool, typer.Option("--no-review", help="Skip the PKGBUILD security review")]
NoDeps = Annotated[bool, typer.Option("--no-deps", help="Do not install missing dependencies")]
AsDeps = Annotated[bool, typer.Option("--asdeps", help="Mark installed packages as dependencies")]
DryRun = Annotated[bool, typer.Option("--dry-run", "-n", help="Show what would be built, then exit")]
Verbose = Annotated[bool, typer.Option("--verbose", "-v", help="Verbose logging")]
CacheDir = Annotated[
    Optional[Path],  # noqa: UP007
    typer.Option("--cache-dir", help="Build cache directory (default: POXY_CACHE_DIR)"),
]


class ConsoleProgressSink:
    """Prints one line per pipeline stage."""

    def __init__(self, package: str) -> None:
        self.package = package

    def notify(self, stage: str, message: str) -> None:
        console.print(f"[bold cyan]==>[/bold cyan] [dim]{self.package}[/dim] [bold]{stage}[/bold]: {escape(message)}")


def _build_options(
    package: str,
    *,
    yes: bool,
    force: bool,
    no_clean: bool,
    keep_sources: bool,
    skip_pgp: bool,
    no_sandbox: bool,
    no_review: bool,
    no_deps: bool,
    asdeps: bool,
    verbose: bool,
) -> BuildOptions:
    settings = get_settings()
    review = settings.review_pkgbuild and not no_review and not yes
    return BuildOptions.defaults(
        force=force,
        clean_build=not no_clean,
        keep_sources=keep_sources,
        skip_pgp_check=skip_pgp,
        no_confirm=yes,
        use_sandbox=settings.use_sandbox and not no_sandbox,
        install_deps=not no_deps,
        as_deps=asdeps,
        verbose=verbose,
        review=review,
        review_gate=create_review_gate(review, console=console),
        progress=ConsoleProgressSink(package),
    )


def _run_builds(names: list[str], install: bool, cache_dir: Path | None, **flags) -> None:
    builder = AURBuilder(cache_dir)

    for name in names:
        options = _build_options(name, **flags)
        try:
            if install:
                artifacts = asyncio.run(builder.build_and_install(name, options))
            else:
                artifacts = asyncio.run(builder.build(name, options))
        except (PoxyError, KeyboardInterrupt) as e:
            fail(e)

        verb = "Installed" if install else "Built"
        console.print(f"[green]✅ {verb} {escape(name)}[/green]")
        for path in artifacts:
            console.print(f"   {path}")


def build(
    names: Names,
    yes: Yes = False,
    force: Force = False,
    no_clean: NoClean = False,
    keep_sources: KeepSources = False,
    skip_pgp: SkipPgp = False,
    no_sandbox: NoSandbox = False,
    no_review: NoReview = False,
    no_deps: NoDeps = False,
    asdeps: AsDeps = False,
    dry_run: DryRun = False,
    verbose: Verbose = False,
    cache_dir: CacheDir = None,
) -> None:
    """Build AUR packages without installing them.

    Prints the paths of the built package archives.
    """
    setup_logging(verbose)
    if dry_run:
        console.print(f"Would build from AUR: {escape(', '.join(names))}")
        return

    _run_builds(
        names,
        False,
        cache_dir,
        yes=yes,
        force=force,
        no_clean=no_clean,
        keep_sources=keep_sources,
        skip_pgp=skip_pgp,
        no_sandbox=no_sandbox,
        no_review=no_review,
        no_deps=no_deps,
        asdeps=asdeps,
        verbose=verbose,
    )


def install(
    names: Names,
    yes: Yes = False,
    force: Force = False,
    no_clean: NoClean = False,
    keep_sources: KeepSources = False,
    skip_pgp: SkipPgp = False,
    no_sandbox: NoSandbox = False,
    no_review: NoReview = False,
    no_deps: NoDeps = False,
    asdeps: AsDeps = False,
    dry_run: DryRun = False,
    verbose: Verbose = False,
    cache_dir: CacheDir = None,
) -> None:
    """Build AUR packages and install them with pacman.

    Each PKGBUILD is shown for security review before it is built
    (unless --yes or --no-review is given).

    Examples:
        poxy install yay
        poxy install -y --asdeps libfoo
    """
    setup_logging(verbose)
    if dry_run:
        console.print(f"Would build and install from AUR: {escape(', '.join(names))}")
        return

    _run_builds(
        names,
        True,
        cache_dir,
        yes=yes,
        force=force,
        no_clean=no_clean,
        keep_sources=keep_sources,
        skip_pgp=skip_pgp,
        no_sandbox=no_sandbox,
        no_review=no_review,
        no_deps=no_deps,
        asdeps=asdeps,
        verbose=verbose,
    )


def audit(
    name: Name,
    verbose: Verbose = False,
    cache_dir: CacheDir = None,
) -> None:
    """Fetch a PKGBUILD and scan it for dangerous commands, without building."""
    setup_logging(verbose)
    builder = AURBuilder(cache_dir)
    options = BuildOptions(progress=ConsoleProgressSink(name))

    async def _audit():
        options.progress.notify("resolve", f"Looking up {name}...")
        package = await builder.resolve(name)
        return await builder.fetch(package, options)

    try:
        recipe = asyncio.run(_audit())
    except (PoxyError, KeyboardInterrupt) as e:
        fail(e)

    print_security_report(recipe, console)
    summary = format_security_summary(recipe)
    color = "red" if recipe.has_dangerous_commands else "green"
    console.print(f"[{color}]{summary}[/{color}]")


def show(
    name: Name,
    cache_dir: CacheDir = None,
) -> None:
    """Show a summary of a cached PKGBUILD (no network access)."""
    setup_logging()
    builder = AURBuilder(cache_dir)
    try:
        recipe = builder.get_cached_recipe(name)
    except PoxyError as e:
        fail(e)

    table = Table(title=f"PKGBUILD: {escape(recipe.name)}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Version", recipe.full_version)
    if recipe.is_split_package:
        table.add_row("Packages", ", ".join(recipe.pkgname))
    table.add_row("Description", escape(recipe.pkgdesc) or "-")
    table.add_row("URL", escape(recipe.url) or "-")
    table.add_row("License", ", ".join(recipe.license) or "-")
    table.add_row("Depends", escape(", ".join(recipe.depends)) or "-")
    table.add_row("Make/check depends", escape(", ".join(recipe.build_dependencies)) or "-")
    table.add_row("Sources", escape("\n".join(recipe.source_urls)) or "-")
    table.add_row("Functions", ", ".join(recipe.lifecycle_hooks) or "-")
    table.add_row("Security", format_security_summary(recipe))

    console.print(table)


def _print_srcinfo_table(info: SrcInfo) -> None:
    table = Table(title=f".SRCINFO: {escape(info.pkgbase)}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Version", info.full_version)
    table.add_row("Packages", escape(", ".join(info.package_names)) or "-")
    table.add_row("Arch", ", ".join(info.arch) or "-")
    table.add_row("Depends", escape(", ".join(info.depends)) or "-")
    table.add_row("Make/check depends", escape(", ".join(info.build_dependencies)) or "-")
    table.add_row("Sources", escape("\n".join(info.source)) or "-")
    for pkg in info.packages:
        if pkg.depends:
            table.add_row(f"Depends ({escape(pkg.pkgname)})", escape(", ".join(pkg.depends)))

    console.print(table)


def srcinfo(
    name: Name,
    parsed: Annotated[bool, typer.Option("--parsed", help="Show the parsed fields as a table")] = False,
    committed: Annotated[
        bool, typer.Option("--committed", help="Use the repository's .SRCINFO instead of running makepkg")
    ] = False,
    cache_dir: CacheDir = None,
) -> None:
    """Print .SRCINFO for a cached PKGBUILD (makepkg --printsrcinfo)."""
    setup_logging()
    settings = get_settings()
    builder = AURBuilder(cache_dir)
    pkg_dir = builder.package_dir(name)
    recipe_path = pkg_dir / "PKGBUILD"

    try:
        if not recipe_path.exists():
            raise PackageNotCachedError(name)
        if committed:
            srcinfo_path = pkg_dir / ".SRCINFO"
            if parsed:
                _print_srcinfo_table(parse_srcinfo(srcinfo_path))
                return
            output = srcinfo_path.read_text(encoding="utf-8")
        else:
            output = asyncio.run(generate_srcinfo(recipe_path, makepkg_path=settings.makepkg_path))
    except ProcessError as e:
        console.print(
            Panel(escape(e.stderr.strip() or str(e)), title="makepkg --printsrcinfo failed", border_style="red")
        )
        raise typer.Exit(code=1) from e
    except OSError as e:
        action = "read .SRCINFO" if committed else "run makepkg"
        console.print(f"[red]❌ Could not {action}:[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from e
    except (PoxyError, KeyboardInterrupt) as e:
        fail(e)

    if parsed:
        _print_srcinfo_table(parse_srcinfo_content(output))
    else:
        console.print(output, markup=False, highlight=False, end="")

"""Interactive PKGBUILD security review.

Before an AUR package is built the user sees the registry's trust
signals, what the recipe declares, where it downloads from, and every
line the dangerous-command scanner flagged, then accepts or rejects.
"""

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from poxy.aur.client import RegistryPackage
from poxy.aur.recipe import BuildRecipe

ACCEPT_ANSWERS = frozenset({"a", "accept", "y", "yes", ""})
VIEW_ANSWERS = frozenset({"v", "view"})
REJECT_ANSWERS = frozenset({"r", "reject", "n", "no", "q", "quit"})

_PROMPT = "[bold green]Action:[/bold green] \\[a]ccept and build, \\[v]iew full PKGBUILD, \\[r]eject and abort: "


@runtime_checkable
class ReviewGate(Protocol):
    """Decides whether a fetched recipe may be built."""

    def review(self, package: RegistryPackage, recipe: BuildRecipe) -> bool: ...


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _date(ts) -> str:
    return ts.strftime("%Y-%m-%d") if ts is not None else "-"


class InteractiveReviewGate:
    """Prompts on the terminal until the user accepts or rejects.

    Args:
        console: Rich console for output (defaults to stdout)
        input_func: Reads one answer given a prompt; defaults to the
            console's own input
    """

    def __init__(
        self,
        console: Console | None = None,
        input_func: Callable[[str], str] | None = None,
    ) -> None:
        self.console = console or Console()
        self._input = input_func or (lambda prompt: self.console.input(prompt))

    def review(self, package: RegistryPackage, recipe: BuildRecipe) -> bool:
        self.render(package, recipe)
        while True:
            try:
                answer = self._input(_PROMPT).strip().lower()
            except EOFError:
                # Closed stdin counts as a rejection
                self.console.print()
                return False
            if answer in ACCEPT_ANSWERS:
                return True
            if answer in REJECT_ANSWERS:
                return False
            if answer in VIEW_ANSWERS:
                self.render_full_recipe(recipe)
                continue
            self.console.print("[red]Invalid option. Please try again.[/red]")

    def render(self, package: RegistryPackage, recipe: BuildRecipe) -> None:
        out = self.console
        out.print()
        out.print(f"[bold cyan]=== PKGBUILD Review: {escape(recipe.name)} ===[/bold cyan]")
        out.print()

        # Registry trust signals
        out.print("[bold]AUR Info:[/bold]")
        out.print(f"  Maintainer:  {escape(package.maintainer or '(none)')}")
        if package.is_orphan:
            out.print("  [bold yellow]WARNING: Package is orphaned (no maintainer)[/bold yellow]")
        out.print(f"  Votes:       {package.num_votes}")
        out.print(f"  Popularity:  {package.popularity:.2f}")
        out.print(f"  Last Update: {_date(package.last_modified_time)}")
        if package.is_out_of_date:
            out.print(
                "  [bold yellow]WARNING: Package marked out-of-date since "
                f"{_date(package.out_of_date_time)}[/bold yellow]"
            )
        out.print()

        out.print("[bold]Package Info:[/bold]")
        out.print(f"  Name:        {escape(recipe.name)}")
        out.print(f"  Version:     {escape(recipe.full_version)}")
        out.print(f"  Description: {escape(recipe.pkgdesc)}")
        if recipe.url:
            out.print(f"  URL:         {escape(recipe.url)}")
        out.print()

        if recipe.depends or recipe.build_dependencies:
            out.print("[bold]Dependencies:[/bold]")
            if recipe.depends:
                out.print(f"  Runtime:     {escape(', '.join(recipe.depends))}")
            if recipe.build_dependencies:
                out.print(f"  Build:       {escape(', '.join(recipe.build_dependencies))}")
            out.print()

        if urls := recipe.source_urls:
            out.print("[bold]Source URLs:[/bold]")
            for url in urls:
                out.print(f"  - {escape(url)}")
            out.print()

        out.print("[bold]Build Functions:[/bold]")
        out.print(f"  [green]{', '.join(recipe.lifecycle_hooks) or '(none)'}[/green]")
        out.print()

        if recipe.has_dangerous_commands:
            out.print("[bold red]SECURITY WARNINGS:[/bold red]")
            for cmd in recipe.dangerous_commands:
                out.print(f"  [bold red]Line {cmd.line}: {escape(cmd.reason)}[/bold red]")
                out.print(f"    {escape(truncate(cmd.command, 70))}")
        else:
            out.print("[green]No obvious security issues detected.[/green]")
        out.print()

    def render_full_recipe(self, recipe: BuildRecipe) -> None:
        self.console.print()
        self.console.print("[bold cyan]=== Full PKGBUILD ===[/bold cyan]")
        self.console.print()
        for number, line in enumerate(recipe.raw_content.split("\n"), start=1):
            self.console.print(f"[yellow]{number:4d} |[/yellow] {escape(line)}", highlight=False)
        self.console.print()


class AutoAcceptReviewGate:
    """Accepts every recipe without prompting (review disabled, or non-interactive use)."""

    def review(self, package: RegistryPackage, recipe: BuildRecipe) -> bool:
        return True


def create_review_gate(enabled: bool, console: Console | None = None) -> ReviewGate:
    """Interactive gate when review is enabled, otherwise the auto-accept gate."""
    if not enabled:
        return AutoAcceptReviewGate()
    return InteractiveReviewGate(console=console)


def format_security_summary(recipe: BuildRecipe) -> str:
    """One-line summary of the scan result."""
    if recipe.has_dangerous_commands:
        return f"WARNING: {len(recipe.dangerous_commands)} potentially dangerous command(s) detected"
    return "No obvious security issues detected"


def print_security_report(recipe: BuildRecipe, console: Console | None = None) -> None:
    """Print every flagged line of a recipe as a table."""
    console = console or Console()

    if not recipe.has_dangerous_commands:
        console.print(
            Panel(
                "[green]No potentially dangerous commands detected.[/green]",
                title=f"Security Report: {escape(recipe.name)}",
                border_style="green",
            )
        )
        return

    table = Table(
        title=f"Security Report: {escape(recipe.name)} ({len(recipe.dangerous_commands)} finding(s))",
        show_header=True,
    )
    table.add_column("#", justify="right", style="dim")
    table.add_column("Line", justify="right", style="cyan")
    table.add_column("Reason", style="bold red")
    table.add_column("Command")

    for i, cmd in enumerate(recipe.dangerous_commands, start=1):
        table.add_row(str(i), str(cmd.line), escape(cmd.reason), escape(truncate(cmd.command, 60)))

    console.print(table)


__all__ = [
    "AutoAcceptReviewGate",
    "InteractiveReviewGate",
    "ReviewGate",
    "create_review_gate",
    "format_security_summary",
    "print_security_report",
]

"""AUR community-build pipeline.

Resolves packages against the AUR RPC API, fetches and parses their
PKGBUILDs, scans them for dangerous commands, gates them behind a
security review, and builds them with makepkg.
"""

from poxy.aur.builder import AURBuilder, BuildOptions, NullProgressSink, ProgressSink
from poxy.aur.client import AURClient, RegistryPackage
from poxy.aur.deps import DependencyResolver, strip_version_constraint
from poxy.aur.parser import RecipeParser, generate_srcinfo, parse_recipe
from poxy.aur.recipe import BuildRecipe, DangerousCommand
from poxy.aur.review import (
    AutoAcceptReviewGate,
    InteractiveReviewGate,
    ReviewGate,
    create_review_gate,
    format_security_summary,
    print_security_report,
)
from poxy.aur.scanner import DangerousCommandScanner, scan_for_dangerous_commands
from poxy.aur.srcinfo import SrcInfo, SrcInfoPackage, parse_srcinfo, parse_srcinfo_content

__all__ = [
    # Recipe model
    "BuildRecipe",
    "DangerousCommand",
    "RecipeParser",
    "parse_recipe",
    "generate_srcinfo",
    "DangerousCommandScanner",
    "scan_for_dangerous_commands",
    "SrcInfo",
    "SrcInfoPackage",
    "parse_srcinfo",
    "parse_srcinfo_content",
    # Registry
    "AURClient",
    "RegistryPackage",
    # Review
    "ReviewGate",
    "InteractiveReviewGate",
    "AutoAcceptReviewGate",
    "create_review_gate",
    "format_security_summary",
    "print_security_report",
    # Dependencies
    "DependencyResolver",
    "strip_version_constraint",
    # Orchestration
    "AURBuilder",
    "BuildOptions",
    "ProgressSink",
    "NullProgressSink",
]

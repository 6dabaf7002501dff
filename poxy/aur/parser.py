"""PKGBUILD parsing.

Parsing runs an ordered chain of strategies and keeps the first result
that succeeds:

1. ``ShellEvalStrategy`` sources the PKGBUILD in bash and echoes a fixed
   list of variables. This resolves variable expansion, arrays and
   conditionals exactly as makepkg would.
2. ``RegexStrategy`` pulls the common fields straight out of the text.
   It is less faithful but cannot fail.

Whatever strategy wins, lifecycle-function detection and the
dangerous-command scan always run over the raw text. Only an unreadable
file is an error; a weak parse just leaves fields empty.
"""

import logging
import re
import shlex
import subprocess
from pathlib import Path
from typing import Any, Protocol

from poxy.aur.recipe import BuildRecipe
from poxy.aur.scanner import DangerousCommandScanner
from poxy.exceptions import PoxyError, RecipeParseError
from poxy.process import ProcessResult, run_process

logger = logging.getLogger(__name__)

SCALAR_FIELDS = ("pkgbase", "pkgver", "pkgrel", "epoch", "pkgdesc", "url", "install")
ARRAY_FIELDS = (
    "pkgname",
    "license",
    "arch",
    "groups",
    "depends",
    "makedepends",
    "checkdepends",
    "optdepends",
    "conflicts",
    "provides",
    "replaces",
    "source",
    "noextract",
    "options",
    "backup",
    "md5sums",
    "sha256sums",
    "sha512sums",
    "b2sums",
)

DEFAULT_PARSE_TIMEOUT = 30.0

Fields = dict[str, Any]


class StrategyFailedError(PoxyError):
    """A parse strategy could not produce fields; the next one is tried."""

    pass


class ParseStrategy(Protocol):
    """Turns a PKGBUILD into a mapping of BuildRecipe field values."""

    name: str

    def extract(self, path: Path, content: str) -> Fields: ...


# =============================================================================
# SHELL EVALUATION
# =============================================================================


# Written after every field; its absence means sourcing aborted the shell
END_MARKER = "__poxy_fields_end__"


def _echo_script() -> str:
    # The recipe's own exit status is irrelevant; only reaching the echoes matters
    lines = ['source "$1" >/dev/null 2>&1']
    for key in ("pkgname", *SCALAR_FIELDS, *ARRAY_FIELDS[1:]):
        if key in ARRAY_FIELDS:
            lines.append(f'echo "{key}=${{{key}[@]}}"')
        else:
            lines.append(f'echo "{key}=${key}"')
    lines.append(f"echo {END_MARKER}")
    return "\n".join(lines) + "\n"


_ECHO_SCRIPT = _echo_script()


def _split_array(value: str) -> list[str]:
    return value.split()


class ShellEvalStrategy:
    """Source the PKGBUILD in a clean, non-interactive bash.

    The shell runs with an empty environment apart from PATH and a C
    locale, no stdin, the recipe's directory as cwd, and a hard timeout.
    """

    name = "bash"

    def __init__(self, *, bash_path: str = "bash", timeout: float = DEFAULT_PARSE_TIMEOUT) -> None:
        self.bash_path = bash_path
        self.timeout = timeout

    def extract(self, path: Path, content: str) -> Fields:
        try:
            completed = subprocess.run(
                [self.bash_path, "--noprofile", "--norc", "-c", _ECHO_SCRIPT, "--", str(path)],
                cwd=str(path.parent),
                env={"PATH": "/usr/bin:/bin", "LC_ALL": "C"},
                stdin=subprocess.DEVNULL,
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise StrategyFailedError(f"bash parsing failed: {e}") from e

        output = completed.stdout.decode("utf-8", errors="replace")
        if END_MARKER not in output.splitlines():
            msg = f"bash parsing failed: recipe aborted the shell (exit code {completed.returncode})"
            raise StrategyFailedError(msg)

        return self.parse_output(output)

    @staticmethod
    def parse_output(output: str) -> Fields:
        fields: Fields = {}
        for line in output.splitlines():
            key, sep, value = line.partition("=")
            if not sep:
                continue
            if key in ARRAY_FIELDS:
                fields[key] = _split_array(value)
            elif key in SCALAR_FIELDS:
                fields[key] = value
        return fields


# =============================================================================
# REGEX FALLBACK
# =============================================================================


def _parse_array_content(content: str) -> list[str]:
    try:
        return shlex.split(content, comments=True)
    except ValueError:
        # Unbalanced quotes: drop them and split on whitespace
        return content.replace("'", "").replace('"', "").split()


class RegexStrategy:
    """Extract common fields with regular expressions.

    Handles quoted and unquoted scalars, and single- or multi-line arrays.
    Variable references are left unexpanded.
    """

    name = "regex"

    scalar_fields = ("pkgname", "pkgbase", "pkgver", "pkgrel", "epoch", "pkgdesc", "url", "install")
    array_fields = ("pkgname", "arch", "license", "depends", "makedepends", "checkdepends", "source")

    _ARRAY = {key: re.compile(rf"^{key}=\(([^)]*)\)", re.MULTILINE) for key in array_fields}
    _SCALAR = {
        key: re.compile(rf"""^{key}=(?:"([^"\n]*)"|'([^'\n]*)'|([^\s"'(;#]+))""", re.MULTILINE)
        for key in scalar_fields
    }

    def extract(self, path: Path, content: str) -> Fields:
        fields: Fields = {}

        for key, pattern in self._ARRAY.items():
            if match := pattern.search(content):
                fields[key] = _parse_array_content(match.group(1))

        for key, pattern in self._SCALAR.items():
            if key in fields:
                continue
            if match := pattern.search(content):
                value = next(g for g in match.groups() if g is not None)
                fields[key] = [value] if key == "pkgname" else value

        return fields


# =============================================================================
# PARSER
# =============================================================================

_HOOK_PATTERNS = {
    "has_prepare": (re.compile(r"^prepare\s*\(\)", re.MULTILINE),),
    "has_build": (re.compile(r"^build\s*\(\)", re.MULTILINE),),
    "has_check": (re.compile(r"^check\s*\(\)", re.MULTILINE),),
    "has_package": (
        re.compile(r"^package\s*\(\)", re.MULTILINE),
        re.compile(r"^package_[\w.+-]+\s*\(\)", re.MULTILINE),
    ),
}


def detect_lifecycle_hooks(content: str) -> dict[str, bool]:
    """Report which of prepare/build/check/package are defined."""
    return {
        field: any(p.search(content) for p in patterns)
        for field, patterns in _HOOK_PATTERNS.items()
    }


class RecipeParser:
    """Parses PKGBUILD files through an ordered strategy chain.

    Usage:
        parser = RecipeParser(timeout=30)
        recipe = parser.parse(Path("~/.cache/poxy/aur/yay/PKGBUILD"))
        print(recipe.full_version, recipe.dangerous_commands)
    """

    def __init__(
        self,
        strategies: list[ParseStrategy] | None = None,
        scanner: DangerousCommandScanner | None = None,
        *,
        timeout: float = DEFAULT_PARSE_TIMEOUT,
        bash_path: str = "bash",
    ) -> None:
        if strategies is None:
            strategies = [ShellEvalStrategy(bash_path=bash_path, timeout=timeout), RegexStrategy()]
        self.strategies = strategies
        self.scanner = scanner or DangerousCommandScanner()

    def parse(self, path: Path | str) -> BuildRecipe:
        """Parse a PKGBUILD.

        Raises:
            RecipeParseError: the file could not be read
        """
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise RecipeParseError(f"failed to read PKGBUILD: {e}") from e

        fields = self._extract(path, content)
        fields.update(detect_lifecycle_hooks(content))

        return BuildRecipe(
            **fields,
            path=path,
            raw_content=content,
            dangerous_commands=self.scanner.scan(content),
        )

    def _extract(self, path: Path, content: str) -> Fields:
        for strategy in self.strategies:
            try:
                fields = strategy.extract(path, content)
            except StrategyFailedError as e:
                logger.debug("PKGBUILD strategy '%s' failed for %s: %s", strategy.name, path, e)
                continue
            logger.debug("Parsed %s with strategy '%s'", path, strategy.name)
            return fields
        logger.debug("No parse strategy succeeded for %s", path)
        return {}


def parse_recipe(path: Path | str, *, timeout: float = DEFAULT_PARSE_TIMEOUT) -> BuildRecipe:
    """Parse a PKGBUILD with the default strategy chain."""
    return RecipeParser(timeout=timeout).parse(path)


async def generate_srcinfo(path: Path | str, *, makepkg_path: str = "makepkg") -> str:
    """Generate .SRCINFO text for a PKGBUILD via ``makepkg --printsrcinfo``.

    Raises:
        ProcessError: makepkg exited non-zero
    """
    recipe_dir = Path(path).parent
    result: ProcessResult = await run_process([makepkg_path, "--printsrcinfo"], cwd=recipe_dir)
    return result.check().stdout


__all__ = [
    "END_MARKER",
    "ParseStrategy",
    "RecipeParser",
    "RegexStrategy",
    "ShellEvalStrategy",
    "StrategyFailedError",
    "detect_lifecycle_hooks",
    "generate_srcinfo",
    "parse_recipe",
]

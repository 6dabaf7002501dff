"""Heuristic scan of PKGBUILD text for dangerous commands.

This is an aid for the human reviewer, not a security boundary: the rules
catch common red flags (piping downloads into a shell, touching
credential files, obfuscated payloads) and nothing more.
"""

import re
from dataclasses import dataclass

from poxy.aur.recipe import DangerousCommand


@dataclass(frozen=True)
class ScanRule:
    pattern: re.Pattern[str]
    reason: str


DOWNLOAD_AND_EXECUTE = "Downloads and executes script"

DEFAULT_RULES: tuple[ScanRule, ...] = (
    ScanRule(re.compile(r"curl\s+[^|]*\|\s*(ba)?sh"), DOWNLOAD_AND_EXECUTE),
    ScanRule(re.compile(r"wget\s+[^|]*\|\s*(ba)?sh"), DOWNLOAD_AND_EXECUTE),
    ScanRule(re.compile(r"rm\s+-rf\s+/[^$]"), "Recursive deletion from root"),
    ScanRule(re.compile(r"chmod\s+777"), "World-writable permissions"),
    ScanRule(re.compile(r"eval\s+"), "Dynamic code execution"),
    ScanRule(re.compile(r"\$\([^)]*curl[^)]*\)"), "Command substitution with curl"),
    ScanRule(re.compile(r"\$\([^)]*wget[^)]*\)"), "Command substitution with wget"),
    ScanRule(re.compile(r"sudo\s+"), "Explicit sudo usage"),
    ScanRule(re.compile(r"/etc/passwd"), "Accesses passwd file"),
    ScanRule(re.compile(r"/etc/shadow"), "Accesses shadow file"),
    ScanRule(re.compile(r"\.ssh/"), "Accesses SSH directory"),
    ScanRule(re.compile(r"nc\s+-[el]"), "Netcat listener"),
    ScanRule(re.compile(r"ncat\s+-[el]"), "Ncat listener"),
    ScanRule(re.compile(r"python.*-c.*socket"), "Python socket code"),
    ScanRule(re.compile(r"base64\s+-d"), "Base64 decoding (obfuscation)"),
)


class DangerousCommandScanner:
    """Applies an ordered rule table to every non-comment line.

    Args:
        rules: Rule table, in reporting order
        one_record_per_rule: When True (default) every matching rule on a
            line produces its own record; when False a line is reported
            once, for the first rule that matches.
    """

    def __init__(
        self,
        rules: tuple[ScanRule, ...] = DEFAULT_RULES,
        *,
        one_record_per_rule: bool = True,
    ) -> None:
        self.rules = rules
        self.one_record_per_rule = one_record_per_rule

    def scan(self, content: str) -> list[DangerousCommand]:
        findings: list[DangerousCommand] = []
        for line_no, line in enumerate(content.split("\n"), start=1):
            trimmed = line.strip()
            if trimmed.startswith("#"):
                continue

            for rule in self.rules:
                if rule.pattern.search(line):
                    findings.append(DangerousCommand(line=line_no, command=trimmed, reason=rule.reason))
                    if not self.one_record_per_rule:
                        break
        return findings


def scan_for_dangerous_commands(content: str) -> list[DangerousCommand]:
    """Scan recipe text with the default rules."""
    return DangerousCommandScanner().scan(content)


__all__ = [
    "DEFAULT_RULES",
    "DangerousCommandScanner",
    "ScanRule",
    "scan_for_dangerous_commands",
]

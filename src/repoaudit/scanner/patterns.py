"""In-process pattern checks.

The pattern scanner needs no external tool. It walks the working copy once
and runs a fixed battery of checks: sensitive file names, regex sweeps over
file contents, and deleted sensitive files in git history. Every check
writes its own section; a clean check writes an explicit ``✓`` line so
"checked, clean" is distinguishable from "not checked" (``- skipped:``).
"""

from __future__ import annotations

import fnmatch
import ipaddress
import os
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from repoaudit.scanner.base import (
    RawScanOutcome,
    ScannerBackend,
    ScannerKind,
    ScanStatus,
)
from repoaudit.scanner.process import ProcessRunner, SubprocessRunner

if TYPE_CHECKING:
    from collections.abc import Callable

    from repoaudit.repos import RepositoryRef

NO_FINDING_MARK = "✓"
SKIPPED_MARK = "- skipped:"
SECTION_HEADER = re.compile(r"^=== (\d+)\. (.+) ===$")
RULE = "=" * 65

MAX_LINE_LENGTH = 200
BINARY_SNIFF_BYTES = 8192

SENSITIVE_HISTORY_FILE = re.compile(r"\.(env|key|pem|p12|pfx|crt)$")


@dataclass(frozen=True)
class FileNameCheck:
    """Flags files whose names match any glob."""

    title: str
    globs: tuple[str, ...]
    clean_message: str

    def matches(self, name: str) -> bool:
        return any(fnmatch.fnmatch(name, g) for g in self.globs)


@dataclass(frozen=True)
class ContentCheck:
    """Flags lines matching ``pattern`` in files not excluded by name or directory.

    ``accept`` can veto individual regex matches (e.g. loopback addresses).
    """

    title: str
    pattern: re.Pattern[str]
    clean_message: str
    exclude_globs: tuple[str, ...] = ()
    exclude_dirs: tuple[str, ...] = (".git", "node_modules")
    accept: Callable[[str], bool] | None = None

    def applies_to(self, rel_path: str) -> bool:
        parts = rel_path.split("/")
        if any(part in self.exclude_dirs for part in parts[:-1]):
            return False
        return not any(fnmatch.fnmatch(parts[-1], g) for g in self.exclude_globs)

    def line_matches(self, line: str) -> bool:
        if self.accept is None:
            return self.pattern.search(line) is not None
        return any(self.accept(m.group(0)) for m in self.pattern.finditer(line))


def is_routable_ipv4(candidate: str) -> bool:
    """True for a well-formed IPv4 literal that is not loopback or 0.0.0.0."""
    try:
        address = ipaddress.IPv4Address(candidate)
    except ValueError:
        return False
    return not (address.is_loopback or address.is_unspecified)


FILE_CHECKS: list[FileNameCheck] = [
    FileNameCheck(
        title="Environment Files",
        globs=("*.env*",),
        clean_message="No .env files found",
    ),
    FileNameCheck(
        title="Private Keys",
        globs=("*.pem", "*.key", "*.p12"),
        clean_message="No private key files found",
    ),
]

CONTENT_CHECKS: list[ContentCheck] = [
    ContentCheck(
        title="Password/Secret Patterns",
        pattern=re.compile(r"(?i)password|secret|api_key|apikey|token"),
        clean_message="No suspicious patterns found",
        exclude_globs=("*.md",),
    ),
    ContentCheck(
        title="Hardcoded IPs",
        pattern=re.compile(r"\b(?:[0-9]{1,3}\.){3}[0-9]{1,3}\b"),
        clean_message="No hardcoded IPs found",
        accept=is_routable_ipv4,
    ),
    ContentCheck(
        title="AWS Credentials",
        pattern=re.compile(r"(?i)AKIA[0-9A-Z]{16}|aws_access_key_id|aws_secret_access_key"),
        clean_message="No AWS credentials found",
        exclude_dirs=(".git",),
    ),
    ContentCheck(
        title="Database Connection Strings",
        pattern=re.compile(r"(?i)(?:mysql|postgres(?:ql)?|mongodb(?:\+srv)?|redis)://"),
        clean_message="No database connections found",
        exclude_globs=("*.md",),
        exclude_dirs=(".git",),
    ),
]

HISTORY_TITLE = "Git History - Deleted Sensitive Files"
HISTORY_CLEAN_MESSAGE = "No sensitive files in history"


class PatternScanner(ScannerBackend):
    """Built-in checks for sensitive files and credential-like strings.

    Hits are advisory: they help a reviewer but do not gate the pipeline on
    their own.

    Example:
        scanner = PatternScanner()
        outcome = scanner.invoke(repo, Path("repos/app"))
        print(outcome.output.decode())
    """

    kind = ScannerKind.PATTERN

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        git_timeout: float = 300.0,
        max_file_size: int = 5 * 1024 * 1024,
    ) -> None:
        self.runner = runner or SubprocessRunner()
        self.git_timeout = git_timeout
        self.max_file_size = max_file_size

    @property
    def name(self) -> str:
        return "patterns"

    @property
    def description(self) -> str:
        return "Built-in pattern checks (env files, keys, credentials, IPs, history)"

    def is_installed(self) -> bool:
        return True

    def invoke(self, repo: RepositoryRef, working_copy: Path) -> RawScanOutcome:
        if not working_copy.is_dir():
            return RawScanOutcome.failed(f"working copy not found: {working_copy}")

        files = self._list_files(working_copy)
        sections: list[tuple[str, list[str], str]] = []

        for check in FILE_CHECKS:
            hits = [rel for rel in files if check.matches(rel.rsplit("/", 1)[-1])]
            sections.append((check.title, hits, check.clean_message))

        content_hits = self._sweep_contents(working_copy, files)
        for check in CONTENT_CHECKS:
            sections.append((check.title, content_hits[check.title], check.clean_message))

        sections.append((HISTORY_TITLE, *self._deleted_sensitive_files(working_copy)))

        lines = [
            RULE,
            f"Manual Security Checks for: {repo.name}",
            RULE,
            f"Scan Date: {datetime.now():%Y-%m-%d %H:%M:%S}",
            "",
        ]
        for number, (title, hits, clean) in enumerate(sections, start=1):
            lines.append(f"=== {number}. {title} ===")
            lines.extend(hits if hits else [f"{NO_FINDING_MARK} {clean}"])
            lines.append("")
        lines.append(RULE)

        return RawScanOutcome(
            status=ScanStatus.COMPLETED,
            output=("\n".join(lines) + "\n").encode(),
        )

    def _list_files(self, root: Path) -> list[str]:
        """Relative POSIX paths of every file outside ``.git``, sorted."""
        found: list[str] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [d for d in dirnames if d != ".git"]
            rel_dir = Path(dirpath).relative_to(root)
            for filename in filenames:
                found.append((rel_dir / filename).as_posix())
        return sorted(found)

    def _sweep_contents(self, root: Path, files: list[str]) -> dict[str, list[str]]:
        hits: dict[str, list[str]] = {check.title: [] for check in CONTENT_CHECKS}

        for rel in files:
            checks = [c for c in CONTENT_CHECKS if c.applies_to(rel)]
            if not checks:
                continue
            text = self._read_text(root / rel)
            if text is None:
                continue
            for lineno, line in enumerate(text.splitlines(), start=1):
                for check in checks:
                    if check.line_matches(line):
                        hits[check.title].append(
                            f"{rel}:{lineno}:{line.strip()[:MAX_LINE_LENGTH]}"
                        )
        return hits

    def _read_text(self, path: Path) -> str | None:
        """Return file text, or None for symlinked, unreadable, oversized or binary files."""
        try:
            if path.is_symlink() or not path.is_file():
                return None
            if path.stat().st_size > self.max_file_size:
                return None
            data = path.read_bytes()
        except OSError:
            return None
        if b"\0" in data[:BINARY_SNIFF_BYTES]:
            return None
        return data.decode("utf-8", errors="replace")

    def _deleted_sensitive_files(self, root: Path) -> tuple[list[str], str]:
        """Sensitive file deletions from ``git log``, or a skipped marker."""
        if not (root / ".git").exists():
            return [f"{SKIPPED_MARK} not a git working copy"], HISTORY_CLEAN_MESSAGE

        args = ["git", "-C", str(root), "log", "--diff-filter=D", "--summary", "--all"]
        try:
            result = self.runner.run(args, timeout=self.git_timeout)
        except FileNotFoundError:
            return [f"{SKIPPED_MARK} git not found"], HISTORY_CLEAN_MESSAGE

        if result.timed_out:
            return [
                f"{SKIPPED_MARK} git log timed out after {self.git_timeout:g} s"
            ], HISTORY_CLEAN_MESSAGE
        if result.returncode != 0:
            return [
                f"{SKIPPED_MARK} git log exited with {result.returncode}"
            ], HISTORY_CLEAN_MESSAGE

        hits: list[str] = []
        for raw in result.stdout.decode(errors="replace").splitlines():
            line = raw.strip()
            if SENSITIVE_HISTORY_FILE.search(line) and line not in hits:
                hits.append(line)
        return hits, HISTORY_CLEAN_MESSAGE

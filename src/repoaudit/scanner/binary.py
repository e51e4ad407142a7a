"""Scanners that invoke a locally installed detection binary.

A scan runs the binary once for human-readable output and, when the tool
supports it, a second time to write a structured JSON report next to the
text artifact. Version-control history is never scanned; only the working
copy's files are.
"""

from __future__ import annotations

import json
import re
import shutil
import subprocess  # nosec B404
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from repoaudit.scanner.base import (
    RawScanOutcome,
    ReportCounts,
    ScannerBackend,
    ScannerKind,
    ScannerNotFoundError,
    ScanStatus,
    artifact_name,
)
from repoaudit.scanner.process import ProcessRunner, SubprocessRunner, timeout_marker

if TYPE_CHECKING:
    from repoaudit.repos import RepositoryRef


class LocalBinaryScanner(ScannerBackend):
    """Base class for scanners shipped as a binary on PATH.

    Subclasses set ``binary_name`` and ``findings_exit_codes`` and implement
    ``text_command``; ``report_command`` is optional.
    """

    kind = ScannerKind.TOOL
    binary_name: ClassVar[str] = ""
    # Exit codes the tool uses to say "findings present", not "crashed".
    findings_exit_codes: ClassVar[frozenset[int]] = frozenset()

    def __init__(
        self,
        report_dir: Path,
        runner: ProcessRunner | None = None,
        timeout: float = 600.0,
    ) -> None:
        self.report_dir = report_dir
        self.runner = runner or SubprocessRunner()
        self.timeout = timeout
        self._binary_path: Path | None = None

    def _find_binary(self) -> Path:
        """Locate the binary on PATH.

        Raises:
            ScannerNotFoundError: If it is not installed.
        """
        if self._binary_path is not None:
            return self._binary_path
        found = shutil.which(self.binary_name)
        if not found:
            raise ScannerNotFoundError(f"{self.binary_name} not found on PATH")
        self._binary_path = Path(found)
        return self._binary_path

    def is_installed(self) -> bool:
        try:
            self._find_binary()
            return True
        except ScannerNotFoundError:
            return False

    def get_version(self) -> str | None:
        try:
            binary = self._find_binary()
            result = subprocess.run(  # nosec B603
                [str(binary), "version"],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (ScannerNotFoundError, OSError, subprocess.TimeoutExpired):
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip().splitlines()[0] if result.stdout.strip() else None

    def text_command(self, binary: Path, working_copy: Path) -> list[str]:
        raise NotImplementedError

    def report_command(
        self, binary: Path, working_copy: Path, report_path: Path
    ) -> list[str] | None:
        return None

    def report_path(self, repo: RepositoryRef) -> Path:
        return self.report_dir / artifact_name(self.name, repo.name, "json")

    def _succeeded(self, returncode: int) -> bool:
        return returncode == 0 or returncode in self.findings_exit_codes

    def invoke(self, repo: RepositoryRef, working_copy: Path) -> RawScanOutcome:
        if not working_copy.is_dir():
            return RawScanOutcome.failed(f"working copy not found: {working_copy}")

        try:
            binary = self._find_binary()
        except ScannerNotFoundError as e:
            return RawScanOutcome.skipped(str(e))

        try:
            result = self.runner.run(self.text_command(binary, working_copy), timeout=self.timeout)
        except FileNotFoundError as e:
            return RawScanOutcome.failed(str(e))

        if result.timed_out:
            return RawScanOutcome.failed(
                f"timed out after {self.timeout:g} s",
                output=result.output + timeout_marker(self.timeout),
            )
        if not self._succeeded(result.returncode):
            return RawScanOutcome.failed(
                f"{self.binary_name} exited with {result.returncode}",
                output=result.output,
            )

        return RawScanOutcome(
            status=ScanStatus.COMPLETED,
            output=result.output,
            report=self._write_report(binary, repo, working_copy),
        )

    def _write_report(
        self, binary: Path, repo: RepositoryRef, working_copy: Path
    ) -> bytes | None:
        """Run the structured-report pass; any failure just means no report."""
        report_path = self.report_path(repo)
        args = self.report_command(binary, working_copy, report_path)
        if args is None:
            return None

        self.report_dir.mkdir(parents=True, exist_ok=True)
        report_path.unlink(missing_ok=True)
        try:
            result = self.runner.run(args, timeout=self.timeout)
        except FileNotFoundError:
            return None
        if result.timed_out or not self._succeeded(result.returncode):
            return None
        if not report_path.is_file():
            return None
        return report_path.read_bytes()


class GitleaksScanner(LocalBinaryScanner):
    """Gitleaks in ``--no-git`` directory mode.

    Gitleaks exits 1 when leaks are found. It does not verify credentials,
    so every reported leak is an unverified, rule-confirmed finding.
    """

    binary_name = "gitleaks"
    findings_exit_codes = frozenset({1})
    finding_markers = (re.compile(r"^\s*Finding:", re.MULTILINE),)
    unverified_markers = (
        re.compile(r"^\s*Finding:", re.MULTILINE),
        re.compile(r"leaks found: [1-9]"),
    )

    @property
    def name(self) -> str:
        return "gitleaks"

    @property
    def description(self) -> str:
        return "Gitleaks secret scanner (rule-based, filesystem mode)"

    def text_command(self, binary: Path, working_copy: Path) -> list[str]:
        return [
            str(binary),
            "detect",
            "--source",
            str(working_copy),
            "--verbose",
            "--no-git",
        ]

    def report_command(
        self, binary: Path, working_copy: Path, report_path: Path
    ) -> list[str] | None:
        return [
            str(binary),
            "detect",
            "--source",
            str(working_copy),
            "--report-format",
            "json",
            "--report-path",
            str(report_path),
            "--no-git",
        ]

    def parse_report(self, report: bytes) -> ReportCounts:
        """Gitleaks writes a JSON array with one object per leak."""
        data = json.loads(report)
        if not isinstance(data, list):
            raise ValueError("gitleaks report must be a JSON array")
        return ReportCounts(findings=sum(1 for item in data if isinstance(item, dict)))


class GgshieldScanner(LocalBinaryScanner):
    """GitGuardian ggshield, scanning the checkout as a plain directory.

    ggshield asks the GitGuardian API whether each secret is still valid,
    which gives a verified signal. It needs ``GITGUARDIAN_API_KEY``; without
    it the tool errors and the cell is recorded as Failed.
    """

    binary_name = "ggshield"
    findings_exit_codes = frozenset({1})
    finding_markers = (re.compile(r"Secret detected", re.IGNORECASE),)
    unverified_markers = (
        re.compile(r"Secret detected", re.IGNORECASE),
        re.compile(r"\b[1-9]\d* incidents? (?:has|have) been found", re.IGNORECASE),
    )
    verified_markers = (re.compile(r"Validity:\s*Valid\b"),)

    @property
    def name(self) -> str:
        return "ggshield"

    @property
    def description(self) -> str:
        return "GitGuardian ggshield (API-backed detection and validity checks)"

    def text_command(self, binary: Path, working_copy: Path) -> list[str]:
        return [
            str(binary),
            "secret",
            "scan",
            "path",
            "--recursive",
            "--yes",
            str(working_copy),
        ]

    def report_command(
        self, binary: Path, working_copy: Path, report_path: Path
    ) -> list[str] | None:
        return [
            str(binary),
            "secret",
            "scan",
            "--json",
            "--output",
            str(report_path),
            "path",
            "--recursive",
            "--yes",
            str(working_copy),
        ]

    def parse_report(self, report: bytes) -> ReportCounts:
        """Count incidents and those GitGuardian reports as valid."""
        data = json.loads(report)
        if not isinstance(data, dict):
            raise ValueError("ggshield report must be a JSON object")

        incidents: list[dict] = []
        for entity in data.get("entities_with_incidents", []):
            incidents.extend(i for i in entity.get("incidents", []) if isinstance(i, dict))

        total = data.get("total_incidents", len(incidents))
        if not isinstance(total, int) or total < 0:
            raise ValueError("total_incidents must be a non-negative integer")
        verified = sum(1 for i in incidents if str(i.get("validity", "")).lower() == "valid")
        return ReportCounts(findings=total, verified=verified)

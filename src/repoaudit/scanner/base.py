"""Base types shared by every scanner backend.

A scanner runs one detection technique against one repository working copy
and returns a RawScanOutcome. The ResultNormalizer turns that outcome into a
ScanResult, the record the store and the gate operate on.
"""

from __future__ import annotations

import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from repoaudit.repos import RepositoryRef


class ScanStatus(str, Enum):
    """Outcome of a single (scanner, repository) invocation."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class ScannerKind(str, Enum):
    """Where a scanner's evidence comes from.

    TOOL scanners wrap third-party detection engines; their findings can gate
    the pipeline. PATTERN scanners are in-process regex sweeps whose hits are
    advisory.
    """

    TOOL = "tool"
    PATTERN = "pattern"


class ScannerNotFoundError(Exception):
    """Scanner runtime dependency is not installed."""

    pass


@dataclass(frozen=True)
class RawScanOutcome:
    """What a scanner invocation produced, before normalization.

    Attributes:
        status: Completed, Skipped or Failed.
        output: Combined human-readable output collected from the tool.
        report: Structured report bytes, when the tool wrote one.
        detail: Short diagnostic (skip reason, error, timeout).
    """

    status: ScanStatus
    output: bytes = b""
    report: bytes | None = None
    detail: str = ""

    @classmethod
    def skipped(cls, reason: str) -> RawScanOutcome:
        return cls(status=ScanStatus.SKIPPED, detail=reason)

    @classmethod
    def failed(cls, reason: str, output: bytes = b"") -> RawScanOutcome:
        return cls(status=ScanStatus.FAILED, output=output, detail=reason)


@dataclass(frozen=True)
class ScanResult:
    """Normalized result for one (scanner, repository) pair.

    Attributes:
        scanner_id: Identifier of the scanner that produced the result.
        repo_name: Name of the scanned repository.
        exit_status: Completed, Skipped or Failed.
        raw_output: Raw tool output, kept for diagnostics and artifacts.
        finding_count: Number of discrete findings (never negative).
        has_verified_secret: True if the tool confirmed at least one secret.
        scanner_kind: Tool or pattern scanner.
        has_unverified_marker: True if the tool output carried an
            "unverified result" style marker.
        detail: Short diagnostic message.
    """

    scanner_id: str
    repo_name: str
    exit_status: ScanStatus
    raw_output: bytes = b""
    finding_count: int = 0
    has_verified_secret: bool = False
    scanner_kind: ScannerKind = ScannerKind.TOOL
    has_unverified_marker: bool = False
    detail: str = ""

    def __post_init__(self) -> None:
        if self.finding_count < 0:
            raise ValueError("finding_count must be >= 0")

    @property
    def key(self) -> tuple[str, str]:
        """Storage identity of this result."""
        return (self.scanner_id, self.repo_name)


@dataclass(frozen=True)
class ReportCounts:
    """Counts extracted from a structured (machine-readable) report."""

    findings: int
    verified: int = 0


@dataclass
class ScannerDescriptor:
    """Identity of a scanner plus a lazily evaluated availability probe.

    The probe runs at most once per run; the engine calls ``reset`` before
    each run.
    """

    id: str
    kind: ScannerKind
    availability: Callable[[], bool]
    finding_markers: tuple[re.Pattern[str], ...] = ()
    unverified_markers: tuple[re.Pattern[str], ...] = ()
    verified_markers: tuple[re.Pattern[str], ...] = ()
    report_parser: Callable[[bytes], ReportCounts] | None = None
    _available: bool | None = field(default=None, init=False, repr=False, compare=False)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def is_available(self) -> bool:
        with self._lock:
            if self._available is None:
                self._available = bool(self.availability())
            return self._available

    def reset(self) -> None:
        """Drop the cached availability so the next query probes again."""
        with self._lock:
            self._available = None


class ScannerBackend(ABC):
    """Abstract base class for scanner backends.

    Subclasses provide identity, an installation probe and ``invoke``. A
    backend must never raise for a missing dependency; ``invoke`` is only
    called after the descriptor reported the scanner available, and every
    other problem is reported as a Failed outcome.
    """

    kind: ScannerKind = ScannerKind.TOOL
    finding_markers: tuple[re.Pattern[str], ...] = ()
    unverified_markers: tuple[re.Pattern[str], ...] = ()
    verified_markers: tuple[re.Pattern[str], ...] = ()

    _descriptor: ScannerDescriptor | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Scanner identifier, used in artifact names."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description."""

    @abstractmethod
    def is_installed(self) -> bool:
        """Return True if the scanner's runtime dependency is present."""

    def get_version(self) -> str | None:
        return None

    def parse_report(self, report: bytes) -> ReportCounts:
        """Parse a structured report; raise on malformed input."""
        raise NotImplementedError

    @property
    def descriptor(self) -> ScannerDescriptor:
        if self._descriptor is None:
            has_parser = type(self).parse_report is not ScannerBackend.parse_report
            self._descriptor = ScannerDescriptor(
                id=self.name,
                kind=self.kind,
                availability=self.is_installed,
                finding_markers=self.finding_markers,
                unverified_markers=self.unverified_markers,
                verified_markers=self.verified_markers,
                report_parser=self.parse_report if has_parser else None,
            )
        return self._descriptor

    @abstractmethod
    def invoke(self, repo: RepositoryRef, working_copy: Path) -> RawScanOutcome:
        """Run the scanner against one working copy."""


def artifact_name(scanner_id: str, repo_name: str, ext: str = "txt") -> str:
    """File name of a per-(scanner, repository) artifact."""
    return f"{scanner_id}_{repo_name}.{ext}"

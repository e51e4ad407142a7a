"""Turn raw scanner outcomes into ScanResult records.

Normalization is a pure function of its inputs. Malformed structured
reports never raise; they degrade to marker counting on the raw text.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from repoaudit.scanner.base import (
    RawScanOutcome,
    ReportCounts,
    ScannerDescriptor,
    ScannerKind,
    ScanResult,
    ScanStatus,
)
from repoaudit.scanner.patterns import NO_FINDING_MARK, SECTION_HEADER, SKIPPED_MARK

if TYPE_CHECKING:
    from repoaudit.repos import RepositoryRef

logger = logging.getLogger(__name__)

# Verified-count fields some tools print in their summaries, e.g. trufflehog's
# ``"verified_secrets": 2``.
VERIFIED_COUNT_MARKERS: tuple[re.Pattern[str], ...] = (
    re.compile(r'"verified_secrets":\s*[1-9]', re.IGNORECASE),
)


class ResultNormalizer:
    """Build a ScanResult from a descriptor, a repository and an outcome."""

    def normalize(
        self,
        descriptor: ScannerDescriptor,
        repo: RepositoryRef,
        outcome: RawScanOutcome,
    ) -> ScanResult:
        if outcome.status is ScanStatus.SKIPPED:
            return ScanResult(
                scanner_id=descriptor.id,
                repo_name=repo.name,
                exit_status=ScanStatus.SKIPPED,
                raw_output=outcome.output,
                scanner_kind=descriptor.kind,
                detail=outcome.detail,
            )

        text = outcome.output.decode("utf-8", errors="replace")

        if descriptor.kind is ScannerKind.PATTERN:
            return ScanResult(
                scanner_id=descriptor.id,
                repo_name=repo.name,
                exit_status=outcome.status,
                raw_output=outcome.output,
                finding_count=count_pattern_sections(text),
                scanner_kind=ScannerKind.PATTERN,
                detail=outcome.detail,
            )

        counts = self._parse_report(descriptor, repo, outcome.report)
        verified = _any_match(descriptor.verified_markers + VERIFIED_COUNT_MARKERS, text)
        if counts is not None:
            finding_count = counts.findings
            verified = verified or counts.verified > 0
        else:
            finding_count = _count_matches(descriptor.finding_markers, text)
            if finding_count == 0 and outcome.status is ScanStatus.COMPLETED and text.strip():
                finding_count = 1

        return ScanResult(
            scanner_id=descriptor.id,
            repo_name=repo.name,
            exit_status=outcome.status,
            raw_output=outcome.output,
            finding_count=finding_count,
            has_verified_secret=verified,
            scanner_kind=ScannerKind.TOOL,
            has_unverified_marker=_any_match(descriptor.unverified_markers, text),
            detail=outcome.detail,
        )

    def _parse_report(
        self,
        descriptor: ScannerDescriptor,
        repo: RepositoryRef,
        report: bytes | None,
    ) -> ReportCounts | None:
        if report is None or descriptor.report_parser is None:
            return None
        try:
            counts = descriptor.report_parser(report)
        except Exception as e:
            logger.debug(
                "Malformed %s report for %s, using raw output: %s",
                descriptor.id,
                repo.name,
                e,
            )
            return None
        if counts.findings < 0 or counts.verified < 0:
            return None
        return counts


def count_pattern_sections(text: str) -> int:
    """Number of check sections with at least one real hit line."""
    count = 0
    in_section = False
    section_hit = False

    for line in text.splitlines():
        if SECTION_HEADER.match(line):
            if section_hit:
                count += 1
            in_section, section_hit = True, False
            continue
        if not in_section:
            continue
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith("=" * 10):
            in_section = False
            continue
        if stripped.startswith(NO_FINDING_MARK) or stripped.startswith(SKIPPED_MARK):
            continue
        section_hit = True

    if section_hit:
        count += 1
    return count


def _any_match(patterns: tuple[re.Pattern[str], ...], text: str) -> bool:
    return any(p.search(text) for p in patterns)


def _count_matches(patterns: tuple[re.Pattern[str], ...], text: str) -> int:
    return sum(len(p.findall(text)) for p in patterns)

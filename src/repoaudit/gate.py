"""Pass/fail decision over a complete result set."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from repoaudit.scanner.base import ScannerKind

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from repoaudit.scanner.base import ScanResult


@dataclass(frozen=True)
class AuditVerdict:
    """Gate outcome. ``passed`` is True exactly when nothing was flagged."""

    total_repositories: int
    flagged_repositories: frozenset[str] = field(default_factory=frozenset)

    @property
    def passed(self) -> bool:
        return not self.flagged_repositories

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1


class FindingsGate:
    """Flags repositories with tool-confirmed or verified findings.

    A repository is flagged when any of its results
    - reports a verified secret, or
    - comes from a tool scanner, has findings, and carried an unverified
      result marker.

    Pattern scanner hits are advisory unless ``pattern_hits_gate`` is set.
    """

    def __init__(self, pattern_hits_gate: bool = False) -> None:
        self.pattern_hits_gate = pattern_hits_gate

    def is_blocking(self, result: ScanResult) -> bool:
        if result.has_verified_secret:
            return True
        if result.finding_count <= 0:
            return False
        if result.scanner_kind is ScannerKind.TOOL:
            return result.has_unverified_marker
        return self.pattern_hits_gate

    def evaluate(
        self,
        results: Sequence[ScanResult],
        repositories: Iterable[str] | None = None,
    ) -> AuditVerdict:
        """
        Compute the verdict.

        Parameters:
            results: Every ScanResult of the run.
            repositories: Names of all repositories in the run. Results for
                any other repository are ignored. When omitted, the total is
                the number of distinct names in ``results``.
        """
        if repositories is None:
            names = {r.repo_name for r in results}
        else:
            names = set(repositories)
            results = [r for r in results if r.repo_name in names]
        flagged = frozenset(r.repo_name for r in results if self.is_blocking(r))
        return AuditVerdict(total_repositories=len(names), flagged_repositories=flagged)

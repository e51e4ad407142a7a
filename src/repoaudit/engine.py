"""Audit engine - runs every scanner against every repository.

The AuditEngine is responsible for:
- Building scanner instances from settings
- Acquiring each repository (failures are logged, never fatal)
- Running scanners per repository in a fixed order, tool scanners first
- Isolating failures per (scanner, repository) cell
- Handing the complete result set to the FindingsGate
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from repoaudit.gate import AuditVerdict, FindingsGate
from repoaudit.repos import AcquisitionError, GitRepositorySource, RepositoryRef
from repoaudit.scanner.base import (
    RawScanOutcome,
    ScannerBackend,
    ScannerKind,
    ScanResult,
    ScanStatus,
)
from repoaudit.scanner.binary import GgshieldScanner, GitleaksScanner
from repoaudit.scanner.container import TrufflehogScanner
from repoaudit.scanner.normalizer import ResultNormalizer
from repoaudit.scanner.patterns import PatternScanner
from repoaudit.scanner.process import ProcessRunner, SubprocessRunner
from repoaudit.store import ResultStore

if TYPE_CHECKING:
    from pathlib import Path

    from repoaudit.config import AuditSettings

logger = logging.getLogger(__name__)


class RepoState(str, Enum):
    """Lifecycle of one repository within a run."""

    PENDING = "pending"
    ACQUIRING = "acquiring"
    SCANNING = "scanning"
    DONE = "done"


@dataclass
class AuditRun:
    """Everything produced by one run."""

    repositories: list[RepositoryRef]
    results: list[ScanResult]
    verdict: AuditVerdict
    states: dict[str, RepoState] = field(default_factory=dict)
    duration_ms: int = 0

    def results_for(self, repo_name: str) -> list[ScanResult]:
        return [r for r in self.results if r.repo_name == repo_name]


def build_scanners(
    settings: AuditSettings,
    runner: ProcessRunner | None = None,
) -> list[ScannerBackend]:
    """
    Instantiate the scanners named in ``settings.scanners``.

    Tool scanners come first, then the pattern scanner; relative order within
    each group follows the settings. Unknown ids are logged and ignored.
    """
    runner = runner or SubprocessRunner()
    container_slot = threading.BoundedSemaphore(settings.container_concurrency)

    factories = {
        "trufflehog": lambda: TrufflehogScanner(
            runner=runner,
            runtime=settings.container_runtime,
            image=settings.trufflehog_image,
            timeout=settings.timeout,
            use_sudo=settings.use_sudo,
            slot=container_slot,
        ),
        "gitleaks": lambda: GitleaksScanner(
            report_dir=settings.results_dir,
            runner=runner,
            timeout=settings.timeout,
        ),
        "ggshield": lambda: GgshieldScanner(
            report_dir=settings.results_dir,
            runner=runner,
            timeout=settings.timeout,
        ),
        "patterns": lambda: PatternScanner(
            runner=runner,
            git_timeout=settings.git_timeout,
            max_file_size=settings.max_file_size,
        ),
    }

    scanners: list[ScannerBackend] = []
    seen: set[str] = set()
    for scanner_id in settings.scanners:
        key = scanner_id.strip().lower()
        if key in seen:
            continue
        factory = factories.get(key)
        if factory is None:
            logger.warning("Unknown scanner '%s' ignored", scanner_id)
            continue
        seen.add(key)
        scanners.append(factory())

    return order_scanners(scanners)


def order_scanners(scanners: list[ScannerBackend]) -> list[ScannerBackend]:
    """Stable sort putting tool scanners before pattern scanners."""
    return sorted(scanners, key=lambda s: s.kind is ScannerKind.PATTERN)


class AuditEngine:
    """Runs the per-repository, per-scanner loop.

    Repositories may be processed in parallel by a bounded pool; the
    scanners for one repository always run sequentially.

    Example:
        settings = AuditSettings.load(base_dir=Path("."))
        engine = AuditEngine(settings)
        run = engine.run(load_repositories(settings.config_file))
        raise SystemExit(run.verdict.exit_code)
    """

    def __init__(
        self,
        settings: AuditSettings,
        scanners: list[ScannerBackend] | None = None,
        source: GitRepositorySource | None = None,
        store: ResultStore | None = None,
        runner: ProcessRunner | None = None,
    ) -> None:
        self.settings = settings
        runner = runner or SubprocessRunner()
        self.scanners = order_scanners(
            scanners if scanners is not None else build_scanners(settings, runner)
        )
        self.source = source or GitRepositorySource(
            settings.repos_dir, runner=runner, timeout=settings.git_timeout
        )
        self.store = store or ResultStore(settings.results_dir)
        self.normalizer = ResultNormalizer()
        self.gate = FindingsGate(pattern_hits_gate=settings.pattern_hits_gate)
        self.states: dict[str, RepoState] = {}

    def run(self, repositories: list[RepositoryRef]) -> AuditRun:
        """Scan every repository and evaluate the gate once all cells finished."""
        start_time = time.time()
        self.states = {repo.name: RepoState.PENDING for repo in repositories}
        self.store.clear()
        for scanner in self.scanners:
            scanner.descriptor.reset()

        logger.info("Found %d repositories to scan", len(repositories))
        workers = min(self.settings.workers, max(1, len(repositories)))

        if workers == 1:
            for repo in repositories:
                self._process_repository(repo)
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    executor.submit(self._process_repository, repo): repo
                    for repo in repositories
                }
                for future in as_completed(futures):
                    repo = futures[future]
                    try:
                        future.result()
                    except Exception:
                        logger.exception("Unexpected error while processing %s", repo.name)
                        self.states[repo.name] = RepoState.DONE

        results = self.store.get_all()
        verdict = self.gate.evaluate(results, repositories=[r.name for r in repositories])

        return AuditRun(
            repositories=list(repositories),
            results=results,
            verdict=verdict,
            states=dict(self.states),
            duration_ms=int((time.time() - start_time) * 1000),
        )

    def _process_repository(self, repo: RepositoryRef) -> None:
        logger.info("Processing: %s", repo.name)

        working_copy = self.source.working_copy(repo)
        if self.settings.acquire:
            self.states[repo.name] = RepoState.ACQUIRING
            try:
                working_copy = self.source.acquire(repo)
            except AcquisitionError as e:
                logger.warning("%s; scanning existing local copy", e)

        self.states[repo.name] = RepoState.SCANNING
        for scanner in self.scanners:
            self._run_cell(scanner, repo, working_copy)

        self.states[repo.name] = RepoState.DONE
        logger.info("✓ Finished processing %s", repo.name)

    def _run_cell(
        self,
        scanner: ScannerBackend,
        repo: RepositoryRef,
        working_copy: Path,
    ) -> ScanResult | None:
        """Run one scanner on one repository; never raises."""
        descriptor = scanner.descriptor
        try:
            if not descriptor.is_available():
                logger.info("Skipping %s on %s: not installed", descriptor.id, repo.name)
                outcome = RawScanOutcome.skipped(f"{descriptor.id} not installed")
            else:
                logger.info("Running %s on %s", descriptor.id, repo.name)
                outcome = scanner.invoke(repo, working_copy)
        except Exception as e:
            outcome = RawScanOutcome.failed(f"{type(e).__name__}: {e}")

        if outcome.status is ScanStatus.FAILED:
            logger.error("%s failed on %s: %s", descriptor.id, repo.name, outcome.detail)

        try:
            result = self.normalizer.normalize(descriptor, repo, outcome)
            self.store.put(result)
        except Exception:
            logger.exception("Could not record %s result for %s", descriptor.id, repo.name)
            return None
        return result

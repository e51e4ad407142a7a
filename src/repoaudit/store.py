"""Result storage for one audit run.

Every ScanResult is kept in memory, in insertion order, and its raw output
is written to ``<results_dir>/<scanner>_<repo>.txt``. A second ``put`` for
the same (scanner, repository) key replaces the earlier result and its file.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from repoaudit.scanner.base import ScanResult, artifact_name

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

SUMMARY_FILE_NAME = "00_SUMMARY.txt"

__all__ = ["SUMMARY_FILE_NAME", "ResultStore", "artifact_name"]


class ResultStore:
    """Thread-safe, file-backed store keyed by (scanner_id, repo_name)."""

    def __init__(self, results_dir: Path) -> None:
        self.results_dir = results_dir
        self._results: dict[tuple[str, str], ScanResult] = {}
        self._lock = threading.Lock()

    def artifact_path(self, scanner_id: str, repo_name: str, ext: str = "txt") -> Path:
        return self.results_dir / artifact_name(scanner_id, repo_name, ext)

    def put(self, result: ScanResult) -> Path:
        """Store a result and write its raw output artifact.

        Returns:
            Path of the written artifact.
        """
        path = self.artifact_path(result.scanner_id, result.repo_name)
        with self._lock:
            if result.key in self._results:
                logger.debug("Replacing result for %s on %s", *result.key)
            self._results[result.key] = result
            self.results_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(result.raw_output)
        return path

    def get(self, scanner_id: str, repo_name: str) -> ScanResult | None:
        with self._lock:
            return self._results.get((scanner_id, repo_name))

    def get_all(self) -> list[ScanResult]:
        with self._lock:
            return list(self._results.values())

    def get_by_repo(self, repo_name: str) -> list[ScanResult]:
        with self._lock:
            return [r for r in self._results.values() if r.repo_name == repo_name]

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def clear(self) -> None:
        """Forget every stored result. Artifact files are left on disk."""
        with self._lock:
            self._results.clear()

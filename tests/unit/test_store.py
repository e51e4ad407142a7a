"""Tests for the result store."""

from __future__ import annotations

import threading
from pathlib import Path

from repoaudit.scanner.base import ScanResult, ScanStatus
from repoaudit.store import ResultStore, artifact_name


def _result(scanner: str, repo: str, output: bytes = b"out", count: int = 0) -> ScanResult:
    return ScanResult(
        scanner_id=scanner,
        repo_name=repo,
        exit_status=ScanStatus.COMPLETED,
        raw_output=output,
        finding_count=count,
    )


class TestResultStore:
    """Tests for ResultStore."""

    def test_artifact_name(self):
        """Test the <scanner>_<repo>.<ext> naming scheme."""
        assert artifact_name("gitleaks", "webapp") == "gitleaks_webapp.txt"
        assert artifact_name("gitleaks", "webapp", "json") == "gitleaks_webapp.json"

    def test_put_writes_artifact(self, tmp_path: Path):
        """Test put persists the raw output."""
        store = ResultStore(tmp_path / "results")
        path = store.put(_result("patterns", "webapp", b"hello"))

        assert path == tmp_path / "results" / "patterns_webapp.txt"
        assert path.read_bytes() == b"hello"

    def test_get_all_preserves_insertion_order(self, tmp_path: Path):
        """Test enumeration order matches insertion order."""
        store = ResultStore(tmp_path)
        keys = [("trufflehog", "b"), ("patterns", "b"), ("trufflehog", "a")]
        for scanner, repo in keys:
            store.put(_result(scanner, repo))

        assert [r.key for r in store.get_all()] == keys

    def test_put_same_key_overwrites(self, tmp_path: Path):
        """Test a repeated put replaces the result and its artifact."""
        store = ResultStore(tmp_path)
        store.put(_result("gitleaks", "webapp", b"first", count=1))
        store.put(_result("gitleaks", "webapp", b"second", count=2))

        assert len(store) == 1
        assert store.get("gitleaks", "webapp").finding_count == 2
        assert (tmp_path / "gitleaks_webapp.txt").read_bytes() == b"second"

    def test_get_by_repo(self, tmp_path: Path):
        """Test results can be filtered by repository."""
        store = ResultStore(tmp_path)
        store.put(_result("trufflehog", "a"))
        store.put(_result("trufflehog", "b"))
        store.put(_result("patterns", "a"))

        assert [r.scanner_id for r in store.get_by_repo("a")] == ["trufflehog", "patterns"]
        assert store.get_by_repo("missing") == []

    def test_concurrent_puts(self, tmp_path: Path):
        """Test parallel writers to distinct keys all land."""
        store = ResultStore(tmp_path)
        threads = [
            threading.Thread(target=store.put, args=(_result("patterns", f"repo{i}"),))
            for i in range(20)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store) == 20

    def test_clear_forgets_results_but_keeps_artifacts(self, tmp_path: Path):
        """Test clear empties the store without deleting written files."""
        store = ResultStore(tmp_path)
        store.put(_result("patterns", "a"))
        store.clear()

        assert len(store) == 0
        assert store.get_all() == []
        assert (tmp_path / "patterns_a.txt").is_file()

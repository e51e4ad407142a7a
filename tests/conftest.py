"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from repoaudit.config import AuditSettings
from repoaudit.repos import RepositoryRef
from repoaudit.scanner.process import ProcessResult


class FakeRunner:
    """ProcessRunner double that records argv lists and returns canned results."""

    def __init__(self, handler: Callable[[list[str]], ProcessResult] | None = None) -> None:
        self.calls: list[list[str]] = []
        self.handler = handler or (lambda args: ProcessResult(args=tuple(args), returncode=0))

    def run(self, args: list[str], timeout: float, cwd: Path | None = None) -> ProcessResult:
        self.calls.append(list(args))
        return self.handler(list(args))


def make_result(
    args: list[str],
    returncode: int = 0,
    stdout: bytes = b"",
    stderr: bytes = b"",
    timed_out: bool = False,
) -> ProcessResult:
    return ProcessResult(
        args=tuple(args),
        returncode=returncode,
        stdout=stdout,
        stderr=stderr,
        timed_out=timed_out,
    )


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def repo() -> RepositoryRef:
    return RepositoryRef.from_url("https://github.com/example/webapp.git")


@pytest.fixture
def clean_working_copy(tmp_path: Path) -> Path:
    """A working copy with nothing the pattern checks would flag."""
    path = tmp_path / "repos" / "webapp"
    (path / "src").mkdir(parents=True)
    (path / "src" / "main.py").write_text("print('hello world')\n")
    (path / "README.md").write_text("# webapp\n")
    return path


@pytest.fixture
def leaky_working_copy(tmp_path: Path) -> Path:
    """A working copy with an env file and a password assignment."""
    path = tmp_path / "repos" / "webapp"
    path.mkdir(parents=True)
    (path / ".env").write_text("DEBUG=true\n")
    (path / "config.py").write_text("db_password = 'hunter2'\n")
    return path


@pytest.fixture
def settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AuditSettings:
    """Settings rooted in tmp_path with no acquisition and one worker."""
    for var in ("REPOAUDIT_SCANNERS", "REPOAUDIT_TIMEOUT", "REPOAUDIT_MAX_WORKERS"):
        monkeypatch.delenv(var, raising=False)
    return AuditSettings(base_dir=tmp_path, acquire=False, max_workers=1)

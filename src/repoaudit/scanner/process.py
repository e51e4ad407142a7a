"""Process execution for external scanners and git.

Commands are passed as argv lists (never through a shell) and always run
under a timeout. Tests swap in a fake runner with the same ``run`` signature.
"""

from __future__ import annotations

import subprocess  # nosec B404
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pathlib import Path


@dataclass(frozen=True)
class ProcessResult:
    """Captured result of one external process."""

    args: tuple[str, ...]
    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""
    timed_out: bool = False

    @property
    def output(self) -> bytes:
        """stdout followed by stderr, like ``2>&1`` into a file."""
        return self.stdout + self.stderr


class ProcessRunner(Protocol):
    def run(
        self,
        args: list[str],
        timeout: float,
        cwd: Path | None = None,
    ) -> ProcessResult: ...


class SubprocessRunner:
    """ProcessRunner backed by :func:`subprocess.run`."""

    def run(
        self,
        args: list[str],
        timeout: float,
        cwd: Path | None = None,
    ) -> ProcessResult:
        """
        Run a command and capture its output.

        Parameters:
            args: Command and arguments.
            timeout: Seconds before the process is killed.
            cwd: Optional working directory.

        Returns:
            ProcessResult: exit code and captured output. On timeout the
            partial output is kept, ``timed_out`` is True and the return
            code is -1.

        Raises:
            FileNotFoundError: If the executable does not exist.
        """
        try:
            result = subprocess.run(  # nosec B603
                args,
                capture_output=True,
                timeout=timeout,
                cwd=str(cwd) if cwd else None,
            )
        except subprocess.TimeoutExpired as e:
            return ProcessResult(
                args=tuple(args),
                returncode=-1,
                stdout=_as_bytes(e.stdout),
                stderr=_as_bytes(e.stderr),
                timed_out=True,
            )
        return ProcessResult(
            args=tuple(args),
            returncode=result.returncode,
            stdout=result.stdout or b"",
            stderr=result.stderr or b"",
        )


def _as_bytes(value: bytes | str | None) -> bytes:
    if value is None:
        return b""
    if isinstance(value, str):
        return value.encode()
    return value


def timeout_marker(timeout: float) -> bytes:
    return f"\n[timeout] process killed after {timeout:g} s\n".encode()

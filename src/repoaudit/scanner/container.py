"""Scanners that run a detection engine inside a container.

The working copy is mounted read-only and scanned in filesystem mode, so
scan time is bounded by the checkout size rather than the history length.
"""

from __future__ import annotations

import re
import shutil
import subprocess  # nosec B404
import threading
from typing import TYPE_CHECKING

from repoaudit.scanner.base import (
    RawScanOutcome,
    ScannerBackend,
    ScannerKind,
    ScanStatus,
)
from repoaudit.scanner.process import ProcessRunner, SubprocessRunner, timeout_marker

if TYPE_CHECKING:
    from pathlib import Path

    from repoaudit.repos import RepositoryRef

MOUNT_POINT = "/scan"


class ContainerToolScanner(ScannerBackend):
    """Run a containerized scanner against a read-only mount.

    Subclasses set ``image`` and implement ``container_args``. Simultaneous
    container runs are capped by ``slot``; scanners built for one audit share
    a single semaphore of ``concurrency`` permits.
    """

    kind = ScannerKind.TOOL
    image: str = ""

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        runtime: str = "docker",
        image: str | None = None,
        timeout: float = 600.0,
        use_sudo: bool = False,
        concurrency: int = 1,
        slot: threading.BoundedSemaphore | None = None,
    ) -> None:
        self.runner = runner or SubprocessRunner()
        self.runtime = runtime
        if image:
            self.image = image
        self.timeout = timeout
        self.use_sudo = use_sudo
        if slot is None:
            slot = threading.BoundedSemaphore(max(1, concurrency))
        self.slot = slot

    def is_installed(self) -> bool:
        return shutil.which(self.runtime) is not None

    def get_version(self) -> str | None:
        try:
            result = subprocess.run(  # nosec B603
                [self.runtime, "--version"],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (OSError, subprocess.TimeoutExpired):
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def container_args(self) -> list[str]:
        """Arguments passed to the image entrypoint."""
        raise NotImplementedError

    def build_command(self, working_copy: Path) -> list[str]:
        args = [
            self.runtime,
            "run",
            "--rm",
            "-v",
            f"{working_copy.resolve()}:{MOUNT_POINT}:ro",
            self.image,
            *self.container_args(),
        ]
        if self.use_sudo:
            args.insert(0, "sudo")
        return args

    def invoke(self, repo: RepositoryRef, working_copy: Path) -> RawScanOutcome:
        if not working_copy.is_dir():
            return RawScanOutcome.failed(f"working copy not found: {working_copy}")

        with self.slot:
            try:
                result = self.runner.run(self.build_command(working_copy), timeout=self.timeout)
            except FileNotFoundError as e:
                return RawScanOutcome.failed(f"{self.runtime} not found: {e}")

        if result.timed_out:
            return RawScanOutcome.failed(
                f"timed out after {self.timeout:g} s",
                output=result.output + timeout_marker(self.timeout),
            )
        if result.returncode != 0:
            return RawScanOutcome.failed(
                f"{self.runtime} exited with {result.returncode}",
                output=result.output,
            )
        return RawScanOutcome(status=ScanStatus.COMPLETED, output=result.output)


class TrufflehogScanner(ContainerToolScanner):
    """TruffleHog filesystem scan in the official container image.

    TruffleHog checks candidate credentials against the issuing service, so
    its output distinguishes verified from unverified results.
    """

    image = "trufflesecurity/trufflehog:latest"
    finding_markers = (re.compile(r"Found (?:un)?verified result"),)
    unverified_markers = (re.compile(r"Found unverified result"),)
    verified_markers = (re.compile(r"Found verified result"),)

    @property
    def name(self) -> str:
        return "trufflehog"

    @property
    def description(self) -> str:
        return "TruffleHog secret scanner (containerized, live credential verification)"

    def container_args(self) -> list[str]:
        return ["filesystem", MOUNT_POINT]

"""Secret scanner backends.

- TrufflehogScanner: containerized TruffleHog (ContainerToolScanner)
- GitleaksScanner, GgshieldScanner: local binaries (LocalBinaryScanner)
- PatternScanner: built-in checks with zero external dependencies

The ResultNormalizer turns each backend's raw output into a ScanResult.
"""

from repoaudit.scanner.base import (
    RawScanOutcome,
    ScannerBackend,
    ScannerDescriptor,
    ScannerKind,
    ScanResult,
    ScanStatus,
)
from repoaudit.scanner.binary import GgshieldScanner, GitleaksScanner, LocalBinaryScanner
from repoaudit.scanner.container import ContainerToolScanner, TrufflehogScanner
from repoaudit.scanner.normalizer import ResultNormalizer
from repoaudit.scanner.patterns import PatternScanner

__all__ = [
    "ContainerToolScanner",
    "GgshieldScanner",
    "GitleaksScanner",
    "LocalBinaryScanner",
    "PatternScanner",
    "RawScanOutcome",
    "ResultNormalizer",
    "ScanResult",
    "ScanStatus",
    "ScannerBackend",
    "ScannerDescriptor",
    "ScannerKind",
]

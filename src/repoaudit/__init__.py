"""Audit Git repositories for leaked credentials.

repoaudit runs several secret scanners against each configured repository:
- TruffleHog in a container, with live credential verification
- Gitleaks and GitGuardian ggshield as local binaries
- Built-in pattern checks for sensitive files and credential-like strings

Results are normalized, stored per (scanner, repository) pair and reduced to
a single pass/fail verdict for CI pipelines.
"""

__version__ = "0.1.0"

from repoaudit.engine import AuditEngine, AuditRun
from repoaudit.gate import AuditVerdict, FindingsGate

__all__ = ["AuditEngine", "AuditRun", "AuditVerdict", "FindingsGate", "__version__"]

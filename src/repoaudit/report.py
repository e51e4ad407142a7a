"""Run summary: ``00_SUMMARY.txt`` artifact and console output."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from rich.panel import Panel
from rich.table import Table

from repoaudit.scanner.base import ScanStatus, artifact_name
from repoaudit.store import SUMMARY_FILE_NAME

if TYPE_CHECKING:
    from pathlib import Path

    from rich.console import Console

    from repoaudit.engine import AuditRun

logger = logging.getLogger(__name__)

RULE = "=" * 65
PREVIEW_THRESHOLD = 5
PREVIEW_LINES = 3
ARTIFACT_EXTENSIONS = ("txt", "json")

STATUS_STYLES = {
    ScanStatus.COMPLETED: "green",
    ScanStatus.SKIPPED: "yellow",
    ScanStatus.FAILED: "red",
}


def _artifacts(run: AuditRun, results_dir: Path) -> list[Path]:
    """Text and report files written for this run's results."""
    found = set()
    for result in run.results:
        for ext in ARTIFACT_EXTENSIONS:
            path = results_dir / artifact_name(result.scanner_id, result.repo_name, ext)
            if path.is_file():
                found.add(path)
    return sorted(found)


def render_summary(run: AuditRun, results_dir: Path) -> str:
    """Text of the summary artifact: every artifact with size and preview."""
    lines = [
        RULE,
        "SECURITY AUDIT SUMMARY REPORT",
        RULE,
        f"Generated: {datetime.now():%Y-%m-%d %H:%M:%S}",
        f"Results Directory: {results_dir}",
        RULE,
        "",
    ]

    for path in _artifacts(run, results_dir):
        content = path.read_text(errors="replace").splitlines()
        lines.append(f"📄 {path.name} ({len(content)} lines)")
        if len(content) > PREVIEW_THRESHOLD:
            lines.append("   Preview:")
            lines.extend(f"   | {line}" for line in content[:PREVIEW_LINES])
            lines.append("   ...")
        lines.append("")

    verdict = run.verdict
    lines.append(RULE)
    lines.append(
        f"Repositories: {verdict.total_repositories}  "
        f"Flagged: {len(verdict.flagged_repositories)}  "
        f"Result: {'PASS' if verdict.passed else 'FAIL'}"
    )
    for name in sorted(verdict.flagged_repositories):
        lines.append(f"  ⚠ {name}")
    lines.extend(
        [
            RULE,
            "Next Steps:",
            f"  1. Review each report in: {results_dir}",
            "  2. Investigate any findings marked with ⚠",
            "  3. Rotate any exposed credentials immediately",
            "  4. Update .gitignore to prevent future leaks",
            RULE,
        ]
    )
    return "\n".join(lines) + "\n"


def write_summary(run: AuditRun, results_dir: Path) -> Path:
    logger.info("Generating summary report")
    results_dir.mkdir(parents=True, exist_ok=True)
    path = results_dir / SUMMARY_FILE_NAME
    path.write_text(render_summary(run, results_dir))
    return path


def print_summary(run: AuditRun, console: Console) -> None:
    """Print a per-cell results table and the verdict panel."""
    table = Table(title="Scan results")
    table.add_column("Repository", style="bold")
    table.add_column("Scanner")
    table.add_column("Status")
    table.add_column("Findings", justify="right")
    table.add_column("Verified")

    order = {repo.name: i for i, repo in enumerate(run.repositories)}
    for result in sorted(run.results, key=lambda r: order.get(r.repo_name, len(order))):
        style = STATUS_STYLES[result.exit_status]
        table.add_row(
            result.repo_name,
            result.scanner_id,
            f"[{style}]{result.exit_status.value}[/{style}]",
            str(result.finding_count),
            "[red]yes[/red]" if result.has_verified_secret else "no",
        )
    console.print(table)

    verdict = run.verdict
    if verdict.passed:
        console.print(
            Panel(
                f"[green]No secrets detected in {verdict.total_repositories} "
                "repositories: pipeline passes[/green]",
                title="Verdict",
            )
        )
    else:
        flagged = ", ".join(sorted(verdict.flagged_repositories))
        console.print(
            Panel(
                f"[red]{len(verdict.flagged_repositories)} of {verdict.total_repositories} "
                f"repositories contain potential secrets: failing pipeline[/red]\n{flagged}",
                title="Verdict",
            )
        )

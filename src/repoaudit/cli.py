"""Command-line interface for repoaudit."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from repoaudit.config import AuditSettings, ConfigurationError
from repoaudit.engine import AuditEngine, build_scanners
from repoaudit.log import setup_logging
from repoaudit.report import print_summary, write_summary
from repoaudit.repos import load_repositories

app = typer.Typer(
    name="repoaudit",
    help="Audit Git repositories for leaked credentials with several secret scanners.",
    no_args_is_help=True,
)
console = Console()
logger = logging.getLogger("repoaudit.cli")


def _load_settings(settings_file: Path | None, **overrides) -> AuditSettings:
    try:
        return AuditSettings.load(settings_file, **overrides)
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid settings:\n{e}")
        raise typer.Exit(code=1) from e


@app.command()
def run(
    base_dir: Annotated[
        Path | None,
        typer.Option("--base-dir", "-b", help="Directory holding repos/, results/, logs/"),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Repository list (default: config/repos.txt)"),
    ] = None,
    settings_file: Annotated[
        Path | None,
        typer.Option("--settings", "-s", help="Path to repoaudit.toml"),
    ] = None,
    results_dir: Annotated[
        Path | None,
        typer.Option("--results-dir", help="Where result artifacts are written"),
    ] = None,
    scanners: Annotated[
        list[str] | None,
        typer.Option("--scanner", help="Scanner to run (repeatable): trufflehog, gitleaks, ggshield, patterns"),
    ] = None,
    workers: Annotated[
        int | None,
        typer.Option("--workers", "-w", help="Repositories scanned in parallel (default: CPU count)"),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", help="Seconds before an external scanner is killed"),
    ] = None,
    no_acquire: Annotated[
        bool,
        typer.Option("--no-acquire", help="Do not clone or pull; scan existing working copies"),
    ] = False,
    pattern_hits_gate: Annotated[
        bool,
        typer.Option("--pattern-hits-gate", help="Let pattern scanner hits fail the run"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging"),
    ] = False,
) -> None:
    """Scan every configured repository and fail if secrets are found.

    \b
    Exit codes:
      0 - No blocking findings
      1 - Secrets found, or no repositories configured
    """
    settings = _load_settings(
        settings_file,
        base_dir=base_dir,
        config_file=config_file,
        results_dir=results_dir,
        scanners=scanners or None,
        max_workers=workers,
        timeout=timeout,
        acquire=False if no_acquire else None,
        pattern_hits_gate=True if pattern_hits_gate else None,
    )
    settings.ensure_directories()

    log_file = setup_logging(settings.logs_dir, verbose=verbose, console=console)
    logger.info("Starting security audit")
    logger.info("Configuration: %s", settings.config_file)
    logger.debug("Log file: %s", log_file)

    try:
        repositories = load_repositories(settings.config_file)
    except ConfigurationError as e:
        logger.error("ERROR: %s", e)
        raise typer.Exit(code=1) from e

    engine = AuditEngine(settings)
    audit = engine.run(repositories)

    write_summary(audit, settings.results_dir)
    print_summary(audit, console)

    verdict = audit.verdict
    if verdict.passed:
        logger.info("✓ No secrets detected, pipeline passes")
    else:
        for name in sorted(verdict.flagged_repositories):
            logger.warning("⚠ Findings detected in %s", name)
        logger.warning(
            "⚠ %d repositories contain potential secrets, failing pipeline",
            len(verdict.flagged_repositories),
        )
    raise typer.Exit(code=verdict.exit_code)


@app.command("scanners")
def list_scanners(
    settings_file: Annotated[
        Path | None,
        typer.Option("--settings", "-s", help="Path to repoaudit.toml"),
    ] = None,
) -> None:
    """Show configured scanners and whether they are installed."""
    settings = _load_settings(settings_file)

    table = Table(title="Scanners (in run order)")
    table.add_column("Scanner", style="bold", no_wrap=True)
    table.add_column("Kind")
    table.add_column("Status", no_wrap=True)
    table.add_column("Version")
    table.add_column("Description")

    for scanner in build_scanners(settings):
        installed = scanner.is_installed()
        status = "[green]installed[/green]" if installed else "[yellow]not installed[/yellow]"
        version = (scanner.get_version() if installed else None) or "-"
        table.add_row(scanner.name, scanner.kind.value, status, version, scanner.description)

    console.print(table)


@app.command()
def version() -> None:
    """Show repoaudit version."""
    from repoaudit import __version__

    console.print(f"repoaudit [bold green]{__version__}[/bold green]")


if __name__ == "__main__":
    app()

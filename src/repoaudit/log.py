"""Run log setup: rich console output plus a timestamped log file."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from rich.logging import RichHandler

if TYPE_CHECKING:
    from pathlib import Path

    from rich.console import Console

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    logs_dir: Path,
    verbose: bool = False,
    console: Console | None = None,
) -> Path:
    """
    Configure the ``repoaudit`` logger for one run.

    Parameters:
        logs_dir: Directory for ``audit_<timestamp>.log``; created if needed.
        verbose: Log DEBUG to the console instead of INFO.
        console: Rich console to log to.

    Returns:
        Path: The log file for this run.
    """
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / f"audit_{datetime.now():%Y-%m-%d_%H-%M-%S}.log"

    logger = logging.getLogger("repoaudit")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(file_handler)

    console_handler = RichHandler(
        console=console,
        show_path=False,
        markup=False,
        log_time_format=f"[{DATE_FORMAT}]",
    )
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.addHandler(console_handler)

    return log_file

"""Configuration for an audit run.

Settings are resolved once per run and passed explicitly to every
component. Sources, highest precedence first: CLI overrides, an optional
``repoaudit.toml`` file, ``REPOAUDIT_*`` environment variables, defaults.

Example ``repoaudit.toml``::

    [audit]
    scanners = ["trufflehog", "gitleaks", "patterns"]
    timeout = 300
    max_workers = 2
    use_sudo = true
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SCANNERS = ["trufflehog", "gitleaks", "ggshield", "patterns"]
SETTINGS_FILE_NAME = "repoaudit.toml"
DERIVED_PATHS = {
    "repos_dir": Path("repos"),
    "results_dir": Path("results"),
    "logs_dir": Path("logs"),
    "config_file": Path("config") / "repos.txt",
}


class ConfigurationError(Exception):
    """The run cannot start: repository configuration missing or invalid."""

    pass


class AuditSettings(BaseSettings):
    """Directories, scanner selection and limits for one audit run."""

    model_config = SettingsConfigDict(env_prefix="REPOAUDIT_", extra="ignore")

    base_dir: Path = Field(default_factory=Path.cwd)
    # Filled in from base_dir when not given explicitly.
    repos_dir: Path
    results_dir: Path
    logs_dir: Path
    config_file: Path

    scanners: list[str] = Field(default_factory=lambda: list(DEFAULT_SCANNERS))
    acquire: bool = True
    timeout: float = 600.0
    git_timeout: float = 300.0
    max_workers: int | None = None

    container_runtime: str = "docker"
    trufflehog_image: str = "trufflesecurity/trufflehog:latest"
    use_sudo: bool = False
    container_concurrency: int = 1

    max_file_size: int = 5 * 1024 * 1024
    pattern_hits_gate: bool = False

    @field_validator("timeout", "git_timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be positive")
        return value

    @field_validator("container_concurrency")
    @classmethod
    def _positive_concurrency(cls, value: int) -> int:
        return max(1, value)

    @model_validator(mode="before")
    @classmethod
    def _derive_paths(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("base_dir") is None:
            data["base_dir"] = Path.cwd()
        base = Path(data["base_dir"])
        for key, default in DERIVED_PATHS.items():
            if data.get(key) is None:
                data[key] = base / default
        return data

    @property
    def workers(self) -> int:
        """Bounded worker count for repository-level parallelism."""
        return normalize_max_workers(self.max_workers)

    def ensure_directories(self) -> None:
        for directory in (self.repos_dir, self.results_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    @classmethod
    def load(
        cls,
        settings_file: Path | None = None,
        **overrides: Any,
    ) -> AuditSettings:
        """Build settings from an optional TOML file plus explicit overrides.

        Args:
            settings_file: Path to a ``repoaudit.toml``. When None, the file
                is looked up in ``overrides["base_dir"]`` (or the cwd) and
                silently ignored if absent.
            **overrides: Values that win over every other source. ``None``
                values are dropped so unset CLI options do not mask the file.

        Raises:
            ConfigurationError: If an explicitly given settings file is
                missing or not valid TOML.
        """
        explicit = {k: v for k, v in overrides.items() if v is not None}

        if settings_file is None:
            base = Path(explicit.get("base_dir", Path.cwd()))
            candidate = base / SETTINGS_FILE_NAME
            file_values = _read_toml(candidate) if candidate.is_file() else {}
        else:
            if not settings_file.is_file():
                raise ConfigurationError(f"Settings file not found: {settings_file}")
            file_values = _read_toml(settings_file)

        return cls(**{**file_values, **explicit})


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e
    section = data.get("audit", {})
    if not isinstance(section, dict):
        raise ConfigurationError(f"[audit] in {path} must be a table")
    return section


def normalize_max_workers(max_workers: int | None) -> int:
    """Return a positive worker count, defaulting to the number of CPUs."""
    if max_workers is None or max_workers < 1:
        return os.cpu_count() or 1
    return max_workers

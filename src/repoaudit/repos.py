"""Repository list parsing and working-copy acquisition.

The repository configuration is a plain text file with one URL per line.
Blank lines and ``#`` comments are ignored. Working copies live under
``repos_dir/<name>`` and are cloned on first use and pulled afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from repoaudit.config import ConfigurationError
from repoaudit.scanner.process import ProcessRunner, SubprocessRunner

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = "# Add your Git repository URLs here (one per line)\n"


class AcquisitionError(Exception):
    """Repository could not be cloned or updated."""

    pass


@dataclass(frozen=True)
class RepositoryRef:
    """A configured repository.

    Attributes:
        url: Identifier as written in the configuration.
        name: Final path segment of the URL without ``.git``; unique per run.
    """

    url: str
    name: str

    @classmethod
    def from_url(cls, url: str) -> RepositoryRef:
        return cls(url=url, name=repo_name_from_url(url))


def repo_name_from_url(url: str) -> str:
    """
    Derive a repository name from its URL.

    ``https://github.com/user/repo.git``, ``git@github.com:user/repo.git`` and
    ``/srv/git/repo/`` all map to ``repo``.

    Raises:
        ConfigurationError: If no name can be derived.
    """
    trimmed = url.strip().rstrip("/")
    last = trimmed.replace(":", "/").rsplit("/", 1)[-1]
    if last.endswith(".git"):
        last = last[: -len(".git")]
    if not last or last in (".", ".."):
        raise ConfigurationError(f"Cannot derive a repository name from '{url}'")
    return last


def parse_repository_lines(lines: Iterable[str]) -> list[RepositoryRef]:
    """
    Parse configuration lines into an ordered, de-duplicated list.

    Raises:
        ConfigurationError: If two different URLs map to the same name.
    """
    refs: list[RepositoryRef] = []
    by_name: dict[str, str] = {}

    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        ref = RepositoryRef.from_url(line)
        existing = by_name.get(ref.name)
        if existing == ref.url:
            continue
        if existing is not None:
            raise ConfigurationError(
                f"Repositories '{existing}' and '{ref.url}' share the name '{ref.name}'"
            )
        by_name[ref.name] = ref.url
        refs.append(ref)

    return refs


def load_repositories(config_file: Path) -> list[RepositoryRef]:
    """
    Read the repository configuration file.

    A missing file is created from a template; the run still fails because
    the template lists nothing.

    Raises:
        ConfigurationError: If the file is missing, empty or invalid.
    """
    if not config_file.exists():
        config_file.parent.mkdir(parents=True, exist_ok=True)
        config_file.write_text(CONFIG_TEMPLATE)
        logger.warning("Config file not found. Created template at %s", config_file)
        raise ConfigurationError(
            f"No repositories configured. Edit {config_file} to add your repositories"
        )

    refs = parse_repository_lines(config_file.read_text().splitlines())
    if not refs:
        raise ConfigurationError(f"No repositories found in {config_file}")
    return refs


class GitRepositorySource:
    """Clones or updates repositories with git.

    Example:
        source = GitRepositorySource(Path("repos"))
        source.acquire(RepositoryRef.from_url("https://github.com/org/app.git"))
    """

    def __init__(
        self,
        repos_dir: Path,
        runner: ProcessRunner | None = None,
        timeout: float = 300.0,
    ) -> None:
        self.repos_dir = repos_dir
        self.runner = runner or SubprocessRunner()
        self.timeout = timeout

    def working_copy(self, repo: RepositoryRef) -> Path:
        return self.repos_dir / repo.name

    def acquire(self, repo: RepositoryRef) -> Path:
        """
        Clone the repository if absent, pull it if present.

        Returns:
            Path: The working copy path.

        Raises:
            AcquisitionError: If git is missing, times out or fails.
        """
        path = self.working_copy(repo)
        if (path / ".git").is_dir():
            logger.info("Updating repo: %s", repo.name)
            args = ["git", "-C", str(path), "pull", "--quiet"]
            action = "update"
        else:
            logger.info("Cloning repo: %s", repo.name)
            self.repos_dir.mkdir(parents=True, exist_ok=True)
            args = ["git", "clone", "--quiet", repo.url, str(path)]
            action = "clone"

        try:
            result = self.runner.run(args, timeout=self.timeout)
        except FileNotFoundError as e:
            raise AcquisitionError(f"Failed to {action} {repo.name}: git not found") from e

        if result.timed_out:
            raise AcquisitionError(
                f"Failed to {action} {repo.name}: timed out after {self.timeout:g} s"
            )
        if result.returncode != 0:
            message = result.output.decode(errors="replace").strip()
            raise AcquisitionError(f"Failed to {action} {repo.name}: {message}")
        return path

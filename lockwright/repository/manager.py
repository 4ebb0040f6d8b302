"""Turning manifest ``repositories`` entries into Repository objects."""

import logging
from pathlib import Path
from typing import Any, Callable
from urllib.parse import unquote, urlparse

from lockwright.config import ConfigError
from lockwright.errors import InvalidPackageError
from lockwright.package import load_packages

from .base import ArrayRepository, Repository, RepositoryKind
from .filesystem import FileRepository

_logging = logging.getLogger(__name__)

RepositoryFactory = Callable[[dict[str, Any], Path, str], Repository]


def _inline_repository(config: dict[str, Any], base_dir: Path, name: str) -> Repository:
    packages = config.get("package")
    if isinstance(packages, dict):
        packages = [packages]
    try:
        return ArrayRepository(load_packages(packages), name=name)
    except InvalidPackageError as e:
        raise ConfigError(f"{name}: {e}") from e


def _local_path(url: str, base_dir: Path) -> Path:
    path = Path(url)
    if not path.is_absolute():
        path = base_dir / path
    if path.is_dir():
        path = path / "packages.json"
    return path


def _path_repository(config: dict[str, Any], base_dir: Path, name: str) -> Repository:
    url = config.get("url")
    if not isinstance(url, str) or not url:
        raise ConfigError(f"{name}.url is required")
    return FileRepository(_local_path(url, base_dir), RepositoryKind.LOCAL, name)


def _composer_repository(config: dict[str, Any], base_dir: Path, name: str) -> Repository:
    url = config.get("url")
    if not isinstance(url, str) or not url:
        raise ConfigError(f"{name}.url is required")
    parsed = urlparse(url)
    if parsed.scheme == "file":
        return FileRepository(_local_path(unquote(parsed.path), base_dir), RepositoryKind.REMOTE, name)
    if not parsed.scheme:
        return FileRepository(_local_path(url, base_dir), RepositoryKind.REMOTE, name)
    raise ConfigError(
        f"{name}: no fetcher is registered for '{parsed.scheme}' repositories ({url})"
    )


class RepositoryManager:
    """Builds repositories from manifest entries by ``type``.

    ``package``, ``path``/``file`` and ``composer`` are known out of the box;
    ``register_type`` adds or replaces a factory, which is how a network
    fetcher is plugged in.
    """

    def __init__(self, base_dir: Path | None = None):
        self.base_dir = base_dir or Path.cwd()
        self._factories: dict[str, RepositoryFactory] = {
            "package": _inline_repository,
            "path": _path_repository,
            "file": _path_repository,
            "composer": _composer_repository,
        }

    def register_type(self, repo_type: str, factory: RepositoryFactory) -> None:
        self._factories[repo_type] = factory

    def create_repository(self, config: dict[str, Any], index: int = 0) -> Repository:
        repo_type = config.get("type")
        name = config.get("name") or f"repositories[{index}]"
        factory = self._factories.get(repo_type)
        if factory is None:
            raise ConfigError(
                f"{name}.type '{repo_type}' is not supported, expected one of: "
                + ", ".join(sorted(self._factories))
            )
        return factory(config, self.base_dir, name)

    def create_repositories(self, configs: list[dict[str, Any]]) -> list[Repository]:
        """Create every configured repository, local ones first.

        The sort is stable, so manifest order breaks ties within a rank.
        """
        repositories = [self.create_repository(c, i) for i, c in enumerate(configs)]
        repositories.sort(key=lambda repo: repo.kind.rank)
        _logging.debug(f"Configured repositories: {repositories}")
        return repositories


__all__ = ["RepositoryFactory", "RepositoryManager"]

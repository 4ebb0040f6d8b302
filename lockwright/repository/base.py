"""Repository abstractions: anything that can answer "which packages named X?".

Defines the ``Repository`` abstract base class that every package source
implements, plus the in-memory implementations the resolver itself needs:
plain arrays, the installed state, the locked state, platform packages and
composites of other repositories.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterator

from lockwright.constraints import Constraint
from lockwright.errors import InvalidPackageError
from lockwright.package import Package, is_platform_name
from lockwright.versions import normalize_version, parse_version

_logging = logging.getLogger(__name__)


class RepositoryKind(Enum):
    """Where a repository's packages come from."""

    INSTALLED = "installed"
    LOCKED = "locked"
    PLATFORM = "platform"
    LOCAL = "local"
    REMOTE = "remote"

    @property
    def rank(self) -> int:
        """Priority rank; lower ranks win deduplication."""
        return _RANKS[self]


_RANKS = {
    RepositoryKind.INSTALLED: 0,
    RepositoryKind.LOCKED: 0,
    RepositoryKind.PLATFORM: 0,
    RepositoryKind.LOCAL: 1,
    RepositoryKind.REMOTE: 2,
}


class Repository(ABC):
    """Base class for package sources.

    Subclasses implement ``packages()``; lookups by name are derived from
    it unless a subclass has a faster index. Lookups must be pure: repeated
    calls during one resolution return the same answer.
    """

    kind: RepositoryKind = RepositoryKind.REMOTE

    def __init__(self, name: str = ""):
        self.name = name or type(self).__name__

    @abstractmethod
    def packages(self) -> list[Package]:
        """Every package in this repository."""

    def find_packages(self, name: str, constraint: Constraint | None = None) -> list[Package]:
        """Packages literally named ``name`` whose version passes ``constraint``."""
        name = name.lower()
        return [
            p
            for p in self.packages()
            if p.name == name and (constraint is None or constraint.matches(p.version))
        ]

    def find_providers(self, name: str) -> list[Package]:
        """Packages that provide or replace ``name`` under another name."""
        name = name.lower()
        return [
            p
            for p in self.packages()
            if p.name != name
            and any(link.target == name for link in p.provides + p.replaces)
        ]

    def has_package(self, package: Package) -> bool:
        return any(p == package for p in self.find_packages(package.name))

    def __iter__(self) -> Iterator[Package]:
        return iter(self.packages())

    def __len__(self) -> int:
        return len(self.packages())

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class ArrayRepository(Repository):
    """A repository backed by an in-memory list."""

    kind = RepositoryKind.LOCAL

    def __init__(self, packages: list[Package] | None = None, name: str = ""):
        super().__init__(name)
        self._packages: list[Package] = []
        self._by_name: dict[str, list[Package]] = {}
        for package in packages or []:
            self.add_package(package)

    def packages(self) -> list[Package]:
        return list(self._packages)

    def find_packages(self, name: str, constraint: Constraint | None = None) -> list[Package]:
        candidates = self._by_name.get(name.lower(), [])
        if constraint is None:
            return list(candidates)
        return [p for p in candidates if constraint.matches(p.version)]

    def add_package(self, package: Package) -> None:
        if not isinstance(package, Package):
            raise InvalidPackageError(
                f"{self.name} can only hold packages, got {type(package).__name__}"
            )
        self._packages.append(package)
        self._by_name.setdefault(package.name, []).append(package)

    def remove_package(self, package: Package) -> None:
        self._packages = [p for p in self._packages if p != package]
        remaining = [p for p in self._by_name.get(package.name, []) if p != package]
        if remaining:
            self._by_name[package.name] = remaining
        else:
            self._by_name.pop(package.name, None)


class InstalledRepository(ArrayRepository):
    """The packages currently installed; mutated by the installation manager."""

    kind = RepositoryKind.INSTALLED

    def __init__(self, packages: list[Package] | None = None, name: str = "installed"):
        super().__init__(packages, name)

    def write(self) -> None:
        """Persist the current state; in-memory repositories have nothing to do."""


class LockedRepository(ArrayRepository):
    """Packages recorded by a previous lock file."""

    kind = RepositoryKind.LOCKED

    def __init__(self, packages: list[Package] | None = None, name: str = "lock"):
        super().__init__(packages, name)


class PlatformRepository(ArrayRepository):
    """Platform packages (``php``, ``ext-*``, ``lib-*``) from configured overrides."""

    kind = RepositoryKind.PLATFORM

    def __init__(self, overrides: dict[str, str] | None = None, name: str = "platform"):
        packages = []
        for package_name, version in (overrides or {}).items():
            if not is_platform_name(package_name):
                raise InvalidPackageError(
                    f"'{package_name}' is not a platform package name"
                )
            if version is False:
                continue
            try:
                parsed = parse_version(normalize_version(str(version)), str(version))
            except ValueError as e:
                raise InvalidPackageError(
                    f"Platform override '{package_name}' has an invalid version: {e}"
                ) from e
            packages.append(Package(name=package_name, version=parsed, type="platform"))
        super().__init__(packages, name)


class CompositeRepository(Repository):
    """Several repositories queried as one, in order."""

    def __init__(self, repositories: list[Repository], name: str = "composite"):
        super().__init__(name)
        self.repositories = list(repositories)

    @property
    def kind(self) -> RepositoryKind:
        if not self.repositories:
            return RepositoryKind.REMOTE
        return min((repo.kind for repo in self.repositories), key=lambda kind: kind.rank)

    def packages(self) -> list[Package]:
        result = []
        for repo in self.repositories:
            result.extend(repo.packages())
        return result

    def find_packages(self, name: str, constraint: Constraint | None = None) -> list[Package]:
        result = []
        for repo in self.repositories:
            result.extend(repo.find_packages(name, constraint))
        return result

    def find_providers(self, name: str) -> list[Package]:
        result = []
        for repo in self.repositories:
            result.extend(repo.find_providers(name))
        return result

    def add_repository(self, repository: Repository) -> None:
        self.repositories.append(repository)

    def flatten(self) -> list[Repository]:
        flat = []
        for repo in self.repositories:
            if isinstance(repo, CompositeRepository):
                flat.extend(repo.flatten())
            else:
                flat.append(repo)
        return flat


__all__ = [
    "ArrayRepository",
    "CompositeRepository",
    "InstalledRepository",
    "LockedRepository",
    "PlatformRepository",
    "Repository",
    "RepositoryKind",
]

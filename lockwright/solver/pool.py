"""The candidate universe for one resolution run.

``PoolBuilder`` walks requirement names outward from the root, querying
every repository for each name concurrently, and freezes the result into a
``Pool``: deduplicated by package identity, filtered by stability, and
ordered per name by repository priority then version.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator

from lockwright.cancellation import CancellationToken
from lockwright.constraints import Constraint
from lockwright.errors import InvalidPackageError, PoolConstructionError
from lockwright.package import Package, RootAlias, is_platform_name, make_alias
from lockwright.repository import CompositeRepository, Repository
from lockwright.versions import Stability, parse_version

_logging = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Origin:
    rank: int
    repo_index: int

    @property
    def key(self) -> tuple[int, int]:
        return (self.rank, self.repo_index)


class Pool:
    """Deduplicated, priority-ordered packages, addressed by integer ids.

    Ids start at 1 so that ``-id`` can stand for "not selected" in rules.
    """

    def __init__(self, entries: list[tuple[Package, _Origin]]):
        self._packages: list[Package] = []
        self._origins: list[_Origin] = []
        self._ids: dict[tuple, int] = {}
        self._by_name: dict[str, list[int]] = {}
        self._providers: dict[str, list[int]] = {}
        self._aliases: dict[int, list[int]] = {}
        self._cache: dict[tuple[str, str], list[Package]] = {}

        def order(entry: tuple[Package, _Origin]):
            package, origin = entry
            return (package.name, origin.key)

        # version descending first, then a stable sort on name and priority
        ordered = sorted(entries, key=lambda e: (e[0].version, e[0].is_alias), reverse=True)
        ordered.sort(key=order)

        for package, origin in ordered:
            self._packages.append(package)
            self._origins.append(origin)
            package_id = len(self._packages)
            self._ids[package.identity] = package_id
            self._by_name.setdefault(package.name, []).append(package_id)
            for link in package.provides + package.replaces:
                if link.target != package.name:
                    self._providers.setdefault(link.target, []).append(package_id)

        for package_id, package in enumerate(self._packages, 1):
            if package.is_alias:
                target_id = self._ids.get(package.alias_of.identity)
                if target_id is not None:
                    self._aliases.setdefault(target_id, []).append(package_id)

    def __len__(self) -> int:
        return len(self._packages)

    def __iter__(self) -> Iterator[Package]:
        return iter(self._packages)

    @property
    def names(self) -> list[str]:
        return sorted(self._by_name)

    def package_id(self, package: Package) -> int | None:
        return self._ids.get(package.identity)

    def package_by_id(self, package_id: int) -> Package:
        return self._packages[package_id - 1]

    def priority(self, package_id: int) -> tuple[int, int]:
        """``(rank, repository index)``; lower is preferred."""
        return self._origins[package_id - 1].key

    def aliases_of(self, package_id: int) -> list[int]:
        return list(self._aliases.get(package_id, []))

    def candidates(self, name: str) -> list[Package]:
        """Packages literally named ``name`` in pool order."""
        return [self.package_by_id(i) for i in self._by_name.get(name.lower(), [])]

    def what_provides(self, name: str, constraint: Constraint | None = None) -> list[Package]:
        """Packages satisfying ``name`` (and ``constraint``) directly or via provide/replace."""
        name = name.lower()
        key = (name, constraint.describe() if constraint is not None else "")
        if key in self._cache:
            return list(self._cache[key])

        result = [
            p
            for p in self.candidates(name)
            if constraint is None or constraint.matches(p.version)
        ]
        for package_id in self._providers.get(name, []):
            package = self.package_by_id(package_id)
            for link in package.provides + package.replaces:
                if link.target != name:
                    continue
                if constraint is None or link.constraint.intersects(constraint):
                    result.append(package)
                    break

        self._cache[key] = result
        return list(result)

    def literal_to_string(self, literal: int) -> str:
        package = self.package_by_id(abs(literal))
        return ("" if literal > 0 else "-") + package.pretty_string()


class PoolBuilder:
    """Loads every package reachable from a set of names into a Pool.

    Args:
        repositories: Sources in priority order; composites are flattened
        minimum_stability: Global stability floor
        stability_flags: Per-name overrides of the floor
        root_aliases: ``<version> as <alias>`` declarations from the manifest
        ignore_platform_reqs: Do not follow requirements on platform packages
        token: Checked between loading rounds
    """

    def __init__(
        self,
        repositories: list[Repository],
        minimum_stability: Stability = Stability.STABLE,
        stability_flags: dict[str, Stability] | None = None,
        root_aliases: list[RootAlias] | None = None,
        ignore_platform_reqs: bool = False,
        token: CancellationToken | None = None,
    ):
        self.repositories = []
        for repo in repositories:
            if isinstance(repo, CompositeRepository):
                self.repositories.extend(repo.flatten())
            else:
                self.repositories.append(repo)
        self.minimum_stability = minimum_stability
        self.stability_flags = stability_flags or {}
        self.root_aliases = root_aliases or []
        self.ignore_platform_reqs = ignore_platform_reqs
        self.token = token or CancellationToken()

    def _is_acceptable(self, package: Package, repo: Repository) -> bool:
        # installed, locked and platform packages are already decided
        if repo.kind.rank == 0:
            return True
        allowed = self.stability_flags.get(package.name, self.minimum_stability)
        return allowed.allows(package.stability)

    def _query(self, repo: Repository, name: str) -> list[Package]:
        try:
            found = repo.find_packages(name) + repo.find_providers(name)
        except InvalidPackageError as e:
            raise PoolConstructionError(f"{repo.name}: {e}", repo.name) from e
        for package in found:
            if not isinstance(package, Package):
                raise PoolConstructionError(
                    f"{repo.name} returned {type(package).__name__} for '{name}', expected a package",
                    repo.name,
                )
        # completion order of repositories must not leak into the pool
        return sorted(found, key=lambda p: (p.name, p.version.normalized, p.is_alias))

    async def _load_names(self, names: list[str]) -> list[tuple[int, list[Package]]]:
        queries = [
            (index, name)
            for name in names
            for index in range(len(self.repositories))
        ]
        results = await asyncio.gather(
            *[asyncio.to_thread(self._query, self.repositories[i], name) for i, name in queries]
        )
        return [(index, packages) for (index, _), packages in zip(queries, results)]

    def _follow(self, package: Package) -> Iterable[str]:
        for link in package.requires:
            if self.ignore_platform_reqs and is_platform_name(link.target):
                continue
            yield link.target

    async def build(self, names: Iterable[str]) -> Pool:
        """Load ``names`` and everything their candidates require.

        Raises:
            PoolConstructionError: If a repository returns malformed data
            OperationCancelledError: If the token is cancelled between rounds
        """
        chosen: dict[tuple, tuple[Package, _Origin]] = {}
        loaded: set[str] = set()
        pending = {n.lower() for n in names}
        if self.ignore_platform_reqs:
            pending = {n for n in pending if not is_platform_name(n)}

        rounds = 0
        while pending:
            self.token.raise_if_cancelled("pool construction")
            batch = sorted(pending - loaded)
            loaded.update(batch)
            pending = set()
            if not batch:
                break
            rounds += 1

            for index, packages in await self._load_names(batch):
                repo = self.repositories[index]
                origin = _Origin(repo.kind.rank, index)
                for package in packages:
                    if not self._is_acceptable(package, repo):
                        continue
                    current = chosen.get(package.identity)
                    if current is None or origin.key < current[1].key:
                        chosen[package.identity] = (package, origin)
                    if package.is_alias:
                        pending.add(package.alias_of.name)
                    pending.update(self._follow(package))
            pending -= loaded

        entries = list(chosen.values())
        entries.extend(self._root_alias_entries(chosen))
        pool = Pool(entries)
        _logging.debug(f"Pool built in {rounds} rounds: {len(pool)} packages")
        return pool

    def _root_alias_entries(
        self, chosen: dict[tuple, tuple[Package, _Origin]]
    ) -> list[tuple[Package, _Origin]]:
        entries = []
        for alias in self.root_aliases:
            for package, origin in list(chosen.values()):
                if (
                    package.name == alias.package
                    and not package.is_alias
                    and package.version.normalized == alias.version
                ):
                    aliased = make_alias(
                        package, parse_version(alias.alias_normalized, alias.alias), root_alias=True
                    )
                    if aliased.identity not in chosen:
                        entries.append((aliased, origin))
        return entries


def build_pool(repositories: list[Repository], names: Iterable[str], **options) -> Pool:
    """Synchronous wrapper around ``PoolBuilder.build``."""
    return asyncio.run(PoolBuilder(repositories, **options).build(names))


__all__ = ["Pool", "PoolBuilder", "build_pool"]

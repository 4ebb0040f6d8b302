"""The install/update pipeline.

One ``Installer.run()`` moves through
``IDLE -> POOL_BUILT -> SOLVED -> PLANNED -> (DRY_RUN_REPORTED | EXECUTED)
-> (LOCK_PERSISTED | LOCK_SKIPPED)``. Installing from a fresh lock skips the
pool and the solver and takes the locked packages as the solution. The lock
is written only after every operation succeeded, and never in dry-run mode.
"""

import logging
import re
from collections import deque

from lockwright.cancellation import CancellationToken
from lockwright.errors import StaleLockError, UnsatisfiableError
from lockwright.locker import Locker
from lockwright.package import Package, RootPackage, is_platform_name
from lockwright.repository import InstalledRepository, PlatformRepository, Repository
from lockwright.solver import (
    DefaultPolicy,
    Pool,
    PoolBuilder,
    Problem,
    Request,
    RuleSetGenerator,
    Solver,
)
from lockwright.versions import parse_version

from .installation import InstallationManager, apply_operations
from .models import InstallerState, InstallOptions, InstallResult
from .planning import plan_transaction

_logging = logging.getLogger(__name__)

ROOT_VERSION = "dev-root"


def _pattern(entry: str) -> re.Pattern:
    return re.compile("^" + ".*".join(re.escape(part) for part in entry.lower().split("*")) + "$")


class Installer:
    """Drives one install or update run.

    Args:
        root: The project's own requirements and settings
        repositories: Package sources in priority order
        locker: Lock file access
        installed: Currently installed packages; updated by ``manager``
        manager: Performs the planned operations
        options: Run mode
        token: Cooperative cancellation
    """

    def __init__(
        self,
        root: RootPackage,
        repositories: list[Repository],
        locker: Locker,
        installed: InstalledRepository,
        manager: InstallationManager,
        options: InstallOptions | None = None,
        token: CancellationToken | None = None,
    ):
        self.root = root
        self.repositories = list(repositories)
        self.locker = locker
        self.installed = installed
        self.manager = manager
        self.options = options or InstallOptions()
        self.token = token or CancellationToken()
        self.platform = PlatformRepository(root.platform_overrides)
        self.state = InstallerState.IDLE
        self.warnings: list[str] = []

    def _transition(self, state: InstallerState) -> None:
        _logging.debug(f"Installer: {self.state.value} -> {state.value}")
        self.state = state

    async def run(self) -> InstallResult:
        """Run the pipeline.

        Raises:
            StaleLockError: On install with a lock that does not match the manifest
            UnsatisfiableError: If the requirements cannot be resolved
            PoolConstructionError: If a repository returns malformed data
            CyclicDependencyError: If the operations cannot be ordered
            ExecutionError: If an operation fails
            OperationCancelledError: If the token is cancelled
        """
        self.state = InstallerState.IDLE
        self.warnings = []
        options = self.options
        from_lock = not options.update and self.locker.is_locked()

        if from_lock:
            if not self.locker.is_fresh():
                raise StaleLockError(
                    "The lock file is not up to date with the latest changes in the manifest"
                )
            _logging.debug("Installing from lock file, dependency resolution skipped")
            solution = self.locker.get_locked_repository(options.dev_mode).packages()
            await self._check_platform(self.locker.get_platform_requirements(options.dev_mode))
            self._transition(InstallerState.POOL_BUILT)
            self._transition(InstallerState.SOLVED)
        else:
            solution = await self._solve()

        self.token.raise_if_cancelled("planning")
        operations = plan_transaction(self.installed.packages(), solution)
        self._transition(InstallerState.PLANNED)

        lock_record = None
        if not from_lock:
            production, development = self._split_dev(solution)
            lock_record = self.locker.build_lock_record(production, development, self.root)

        result = InstallResult(
            self.state, operations, solution, lock_record, warnings=list(self.warnings)
        )

        if options.dry_run:
            self._transition(InstallerState.DRY_RUN_REPORTED)
            self._transition(InstallerState.LOCK_SKIPPED)
            result.state = self.state
            return result

        result.steps = await apply_operations(operations, self.manager, self.token)
        self._transition(InstallerState.EXECUTED)

        if from_lock:
            self._transition(InstallerState.LOCK_SKIPPED)
        else:
            result.lock_changed = self.locker.set_lock_data(production, development, self.root)
            self._transition(InstallerState.LOCK_PERSISTED)
        result.state = self.state
        return result

    def _root_links(self):
        links = list(self.root.requires)
        if self.options.dev_mode:
            links += list(self.root.dev_requires)
        return links

    def _root_as_package(self) -> Package:
        return Package(
            name=self.root.name,
            version=parse_version(ROOT_VERSION),
            type="root",
            conflicts=self.root.conflicts,
            provides=self.root.provides,
            replaces=self.root.replaces,
        )

    def _current_packages(self) -> dict[str, Package]:
        """Locked packages when a lock exists, else installed ones, by name."""
        if self.locker.is_locked():
            data = self.locker.get_lock_data()
            dev = self.options.dev_mode and data.get("packages-dev") is not None
            packages = self.locker.get_locked_repository(dev).packages()
        else:
            packages = self.installed.packages()
        return {p.name: p for p in packages if not p.is_alias and not p.is_platform}

    async def _solve(self) -> list[Package]:
        options = self.options
        root_package = self._root_as_package()
        installed = {p.name: p for p in self.installed.packages() if not p.is_alias}
        current = self._current_packages()
        partial = options.update and bool(options.update_whitelist)

        repositories: list[Repository] = [InstalledRepository([root_package], name="root"), self.installed]
        if partial and self.locker.is_locked():
            repositories.append(self.locker.get_locked_repository(
                options.dev_mode and self.locker.get_lock_data().get("packages-dev") is not None
            ))
        repositories.append(self.platform)
        repositories.extend(self.repositories)

        links = self._root_links()
        names = {link.target for link in links} | set(current) | set(installed) | {root_package.name}
        pool = await PoolBuilder(
            repositories,
            minimum_stability=self.root.minimum_stability,
            stability_flags=self.root.stability_flags,
            root_aliases=self.root.aliases,
            ignore_platform_reqs=options.ignore_platform_reqs,
            token=self.token,
        ).build(names)
        self._transition(InstallerState.POOL_BUILT)

        request = Request()
        request.lock(root_package)
        for link in links:
            request.install(link.target, link.constraint)

        scope = None
        if partial:
            scope = self._update_scope(pool, current, links)
            for name in sorted(scope):
                request.update(name)
            for name, package in sorted(current.items()):
                if name not in scope:
                    request.lock(package)

        policy = DefaultPolicy(pool, installed=installed, locked=current, update_scope=scope)
        solver = Solver(pool, policy, options.ignore_platform_reqs, self.token)
        solution = [p for p in solver.solve(request) if p.name != root_package.name]
        self._transition(InstallerState.SOLVED)
        return solution

    def _update_scope(self, pool: Pool, current: dict[str, Package], links) -> set[str]:
        """Names the whitelist allows to change, expanded with dependencies if asked."""
        known = sorted(set(current) | {link.target for link in links})
        scope: set[str] = set()
        for entry in self.options.update_whitelist or []:
            pattern = _pattern(entry)
            matched = {name for name in known if pattern.match(name)}
            if not matched:
                message = f"Package '{entry}' listed for update is not installed or required, ignoring"
                _logging.debug(message)
                self.warnings.append(message)
            scope |= matched

        if not self.options.whitelist_dependencies:
            return scope

        root_names = {link.target for link in links}
        queue = deque(sorted(scope))
        while queue:
            name = queue.popleft()
            for package in pool.candidates(name):
                for link in package.requires:
                    target = link.target
                    if target in scope or is_platform_name(target):
                        continue
                    # root requirements only move when listed themselves
                    if target in root_names:
                        _logging.debug(f"Not updating {target}: required by the root and not listed")
                        continue
                    scope.add(target)
                    queue.append(target)
        return scope

    def _split_dev(self, solution: list[Package]) -> tuple[list[Package], list[Package] | None]:
        """Separate packages only reachable through require-dev."""
        if not self.options.dev_mode:
            return solution, None

        def providers(name: str) -> list[Package]:
            return [p for p in solution if name in p.names]

        reachable: set[str] = set()
        queue = deque(link.target for link in self.root.requires)
        while queue:
            name = queue.popleft()
            for package in providers(name):
                if package.name in reachable:
                    continue
                reachable.add(package.name)
                queue.extend(link.target for link in package.requires)

        production = [p for p in solution if p.name in reachable]
        development = [p for p in solution if p.name not in reachable]
        return production, development

    async def _check_platform(self, requirements: dict[str, str]) -> None:
        """Verify the lock's platform requirements against the platform overrides."""
        if self.options.ignore_platform_reqs or not requirements:
            return
        pool = await PoolBuilder([self.platform], token=self.token).build(requirements)
        request = Request()
        for link in self.root.requires + self.root.dev_requires:
            if link.target in requirements:
                request.install(link.target, link.constraint)
        empty = [rule for rule in RuleSetGenerator(pool).generate(request) if rule.is_empty]
        if empty:
            raise UnsatisfiableError([Problem([rule]) for rule in empty], pool)


__all__ = ["Installer"]

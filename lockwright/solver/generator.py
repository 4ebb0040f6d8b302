"""Translation of jobs and package links into rules."""

import logging
from collections import deque
from itertools import combinations

from lockwright.package import Package, is_platform_name

from .pool import Pool
from .request import JobType, Request
from .rules import Rule, RuleReason, RuleSet

_logging = logging.getLogger(__name__)


class RuleSetGenerator:
    """Builds the rule set for one request.

    Only packages reachable from the jobs get package rules; everything
    else in the pool stays unconstrained and is never selected.
    """

    def __init__(self, pool: Pool, ignore_platform_reqs: bool = False):
        self.pool = pool
        self.ignore_platform_reqs = ignore_platform_reqs
        self.rules = RuleSet()
        self._added: set[int] = set()

    def _skip_link(self, target: str) -> bool:
        return self.ignore_platform_reqs and is_platform_name(target)

    def generate(self, request: Request) -> RuleSet:
        pending: deque[Package] = deque()

        for job in request:
            if job.type is JobType.INSTALL:
                if self._skip_link(job.name):
                    continue
                candidates = self.pool.what_provides(job.name, job.constraint)
                literals = tuple(dict.fromkeys(self.pool.package_id(p) for p in candidates))
                self.rules.add(Rule(literals, RuleReason.JOB_INSTALL, job))
                pending.extend(candidates)
            elif job.type is JobType.LOCK:
                package_id = self.pool.package_id(job.package)
                literals = (package_id,) if package_id is not None else ()
                self.rules.add(Rule(literals, RuleReason.JOB_LOCK, job))
                if package_id is not None:
                    pending.append(self.pool.package_by_id(package_id))
            elif job.type is JobType.REMOVE:
                for package in self.pool.what_provides(job.name, job.constraint):
                    self.rules.add(Rule((-self.pool.package_id(package),), RuleReason.JOB_REMOVE, job))

        while pending:
            self._add_package_rules(pending.popleft(), pending)

        self._add_exclusion_rules()
        _logging.debug(f"Generated {len(self.rules)} rules for {len(self._added)} packages")
        return self.rules

    def _add_package_rules(self, package: Package, pending: deque) -> None:
        package_id = self.pool.package_id(package)
        if package_id in self._added:
            return
        self._added.add(package_id)

        for link in package.requires:
            if self._skip_link(link.target):
                continue
            providers = self.pool.what_provides(link.target, link.constraint)
            literals = tuple(dict.fromkeys((-package_id,) + tuple(self.pool.package_id(p) for p in providers)))
            self.rules.add(Rule(literals, RuleReason.PACKAGE_REQUIRES, link))
            pending.extend(providers)

        for link in package.conflicts:
            for other in self.pool.what_provides(link.target, link.constraint):
                other_id = self.pool.package_id(other)
                if other_id == package_id:
                    continue
                self.rules.add(Rule((-package_id, -other_id), RuleReason.PACKAGE_CONFLICT, link))

        if package.is_alias:
            target_id = self.pool.package_id(package.alias_of)
            if target_id is not None:
                self.rules.add(Rule((-package_id, target_id), RuleReason.PACKAGE_ALIAS, package))
                self.rules.add(Rule((-target_id, package_id), RuleReason.PACKAGE_INVERSE_ALIAS, package))
                pending.append(package.alias_of)
        else:
            pending.extend(self.pool.package_by_id(i) for i in self.pool.aliases_of(package_id))

    def _is_alias_pair(self, a: Package, b: Package) -> bool:
        if a.is_alias and a.alias_of == b:
            return True
        if b.is_alias and b.alias_of == a:
            return True
        return a.is_alias and b.is_alias and a.alias_of == b.alias_of

    def _add_exclusion_rules(self) -> None:
        by_name: dict[str, list[int]] = {}
        for package_id in sorted(self._added):
            by_name.setdefault(self.pool.package_by_id(package_id).name, []).append(package_id)

        for name in sorted(by_name):
            for a, b in combinations(by_name[name], 2):
                pa, pb = self.pool.package_by_id(a), self.pool.package_by_id(b)
                if self._is_alias_pair(pa, pb):
                    continue
                self.rules.add(Rule((-a, -b), RuleReason.PACKAGE_SAME_NAME, pa))

        for package_id in sorted(self._added):
            package = self.pool.package_by_id(package_id)
            for link in package.replaces:
                for other_id in by_name.get(link.target, []):
                    other = self.pool.package_by_id(other_id)
                    if other.name == package.name or self._is_alias_pair(package, other):
                        continue
                    self.rules.add(Rule((-package_id, -other_id), RuleReason.PACKAGE_REPLACES, link))


__all__ = ["RuleSetGenerator"]

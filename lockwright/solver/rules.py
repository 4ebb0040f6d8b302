"""Clauses over "package P is selected" and their provenance.

A literal is a pool package id: ``+id`` means selected, ``-id`` not
selected. A rule is satisfied when at least one of its literals holds.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from lockwright.package import Link, Package

from .request import Job


class RuleReason(Enum):
    JOB_INSTALL = "job-install"
    JOB_REMOVE = "job-remove"
    JOB_LOCK = "job-lock"
    PACKAGE_REQUIRES = "package-requires"
    PACKAGE_CONFLICT = "package-conflict"
    PACKAGE_SAME_NAME = "package-same-name"
    PACKAGE_REPLACES = "package-replaces"
    PACKAGE_ALIAS = "package-alias"
    PACKAGE_INVERSE_ALIAS = "package-inverse-alias"
    LEARNED = "learned"

    @property
    def is_job(self) -> bool:
        return self in (RuleReason.JOB_INSTALL, RuleReason.JOB_REMOVE, RuleReason.JOB_LOCK)


def _versions(packages: list[Package]) -> str:
    """``a/a[1.0.0, 1.1.0], b/b[2.0.0]`` grouped by name."""
    grouped: dict[str, list[str]] = {}
    for package in packages:
        grouped.setdefault(package.pretty_name, [])
        if package.pretty_version not in grouped[package.pretty_name]:
            grouped[package.pretty_name].append(package.pretty_version)
    return ", ".join(f"{name}[{', '.join(versions)}]" for name, versions in grouped.items())


@dataclass(eq=False)
class Rule:
    """A disjunction of literals plus why it exists.

    ``reason_data`` is the Job, Link or Package the rule was derived from;
    learned rules instead keep the indices of the rules they were derived
    from in ``why``.
    """

    literals: tuple[int, ...]
    reason: RuleReason
    reason_data: Any = None
    why: frozenset[int] = field(default_factory=frozenset)
    index: int = -1

    @property
    def is_assertion(self) -> bool:
        return len(self.literals) == 1

    @property
    def is_empty(self) -> bool:
        return not self.literals

    @property
    def package_names(self) -> set[str]:
        data = self.reason_data
        if isinstance(data, Job):
            return {data.name}
        if isinstance(data, Link):
            return {data.source, data.target}
        if isinstance(data, Package):
            return {data.name}
        return set()

    def describe(self, pool) -> str:
        packages = [pool.package_by_id(abs(lit)) for lit in self.literals]
        positive = [pool.package_by_id(lit) for lit in self.literals if lit > 0]
        data = self.reason_data

        if self.reason is RuleReason.JOB_INSTALL:
            constraint = f" {data.constraint}" if data.constraint is not None else ""
            if positive:
                return f"Root manifest requires {data.name}{constraint} -> satisfiable by {_versions(positive)}."
            existing = pool.candidates(data.name)
            if existing:
                return (
                    f"Root manifest requires {data.name}{constraint}, it exists as "
                    f"{_versions(existing)} but these are rejected by your constraint."
                )
            return (
                f"Root manifest requires {data.name}{constraint}, it could not be found in any version, "
                "there may be a typo in the package name."
            )

        if self.reason is RuleReason.JOB_LOCK:
            if data.package.type == "root":
                return f"Root manifest {data.package.pretty_name} is part of every installation."
            if not packages:
                return f"{data.package.pretty_string()} is locked but is no longer available."
            return (
                f"{data.package.pretty_name} is locked to version {data.package.pretty_version} "
                "and an update of this package was not requested."
            )

        if self.reason is RuleReason.JOB_REMOVE:
            return f"Removal request for {data.name} -> {_versions(packages)} must not be installed."

        if self.reason is RuleReason.PACKAGE_REQUIRES:
            source = packages[0]
            text = f"{source.pretty_string()} requires {data.target} ({data.pretty_constraint})"
            if not positive:
                return text + " -> no matching package found."
            return f"{text} -> satisfiable by {_versions(positive)}."

        if self.reason is RuleReason.PACKAGE_CONFLICT:
            source = packages[0]
            label = "Root manifest" if source.type == "root" else source.pretty_string()
            return f"{label} conflicts with {_versions(packages[1:])}."

        if self.reason is RuleReason.PACKAGE_SAME_NAME:
            return f"Can only install one of: {_versions(packages)}."

        if self.reason is RuleReason.PACKAGE_REPLACES:
            return f"Can only install one of: {_versions(packages)} ({packages[0].pretty_name} replaces {data.target})."

        if self.reason in (RuleReason.PACKAGE_ALIAS, RuleReason.PACKAGE_INVERSE_ALIAS):
            alias, target = packages[0], packages[1]
            if self.reason is RuleReason.PACKAGE_INVERSE_ALIAS:
                alias, target = target, alias
            return f"{alias.pretty_string()} is an alias of {target.pretty_string()} and must be installed with it."

        return "Conclusion: " + " | ".join(pool.literal_to_string(lit) for lit in self.literals)

    def __str__(self) -> str:
        return f"({' | '.join(str(lit) for lit in self.literals)})"


class RuleSet:
    """Rules in generation order, without duplicate clauses."""

    def __init__(self) -> None:
        self.rules: list[Rule] = []
        self._seen: set[tuple[int, ...]] = set()

    def add(self, rule: Rule) -> Rule | None:
        key = tuple(sorted(rule.literals))
        # empty rules stay distinct: each one is a separate problem
        if key and key in self._seen:
            return None
        self._seen.add(key)
        rule.index = len(self.rules)
        self.rules.append(rule)
        return rule

    def __iter__(self) -> Iterator[Rule]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def __getitem__(self, index: int) -> Rule:
        return self.rules[index]


__all__ = ["Rule", "RuleReason", "RuleSet"]

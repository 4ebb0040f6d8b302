"""Transaction planning: from installed state to a solution, in dependency order."""

import logging
from typing import Iterable

from lockwright.errors import CyclicDependencyError
from lockwright.package import Link, Package

from .models import Operation, OperationType

_logging = logging.getLogger(__name__)


def _satisfies(package: Package, link: Link) -> bool:
    if package.name == link.target:
        return link.constraint.matches(package.version)
    return any(
        p.target == link.target and p.constraint.intersects(link.constraint)
        for p in package.provides + package.replaces
    )


def _node(package: Package) -> str:
    return package.alias_of.name if package.is_alias else package.name


def _kahn(
    nodes: list[str],
    edges: dict[str, set[str]],
    soft: set[tuple[str, str]] | None = None,
) -> list[str]:
    """Order ``nodes`` so every ``a -> b`` edge puts ``a`` first.

    Ties go alphabetically. When only cycles remain, one soft edge of a
    remaining cycle is dropped, the one into the alphabetically smallest
    node; a cycle made of hard edges only raises.
    """
    remaining = set(nodes)
    edges = {n: set(edges.get(n, ())) & remaining for n in nodes}
    soft = set(soft or ())
    order: list[str] = []

    while remaining:
        incoming = {n: 0 for n in remaining}
        for a in remaining:
            for b in edges[a]:
                if b in remaining:
                    incoming[b] += 1
        ready = sorted(n for n in remaining if incoming[n] == 0)
        if not ready:
            cycle = _find_cycle(remaining, edges)
            breakable = [(a, b) for a, b in zip(cycle, cycle[1:]) if (a, b) in soft]
            if not breakable:
                raise CyclicDependencyError(cycle)
            a, b = min(breakable, key=lambda edge: (edge[1], edge[0]))
            _logging.debug(f"Breaking cycle {' -> '.join(cycle)} by dropping {a} -> {b}")
            edges[a].discard(b)
            soft.discard((a, b))
            continue
        node = ready[0]
        order.append(node)
        remaining.discard(node)
    return order


def _find_cycle(nodes: set[str], edges: dict[str, set[str]]) -> list[str]:
    # every remaining node has a predecessor, so walking backwards must repeat
    predecessors = {n: sorted(a for a in nodes if n in edges[a]) for n in nodes}
    current = min(nodes)
    path = [current]
    seen = {current: 0}
    while True:
        current = predecessors[current][0]
        if current in seen:
            cycle = path[seen[current]:] + [current]
            return list(reversed(cycle))
        seen[current] = len(path)
        path.append(current)


def _dependency_edges(
    packages: dict[str, Package], providers: Iterable[Package]
) -> dict[str, set[tuple[str, Link]]]:
    """``dependency name -> {(dependent name, link)}`` among ``packages``."""
    candidates = list(providers)
    edges: dict[str, set[tuple[str, Link]]] = {}
    for name, package in packages.items():
        for link in package.requires:
            for provider in candidates:
                target = _node(provider)
                if target == name or target not in packages:
                    continue
                if _satisfies(provider, link):
                    edges.setdefault(target, set()).add((name, link))
    return edges


def plan_transaction(installed: list[Package], solution: list[Package]) -> list[Operation]:
    """Diff ``installed`` against ``solution`` into ordered operations.

    Order: alias unmarkings, then uninstalls (dependents before their
    dependencies), then installs and updates (dependencies first), each
    followed by the alias markings of the package it installed.

    Platform packages never produce operations. A package keeps its name
    across versions, so a changed version is always one update, never an
    uninstall/install pair. There is no dev-mode switch: ``solution``
    already holds exactly the packages of the chosen scope.

    Uninstalls run before any install, also when the leaving package
    provides a name a remaining package requires and an incoming one takes
    over that name; the capability is missing between those two steps.

    A requirement edge is soft when its dependent is a fresh install or
    the installed state already satisfies it. Cycles are broken through
    soft edges only.

    Raises:
        CyclicDependencyError: If install order is blocked by a cycle of
            updates whose installed dependents the reorder would break
    """
    installed = [p for p in installed if not p.is_platform]
    solution = [p for p in solution if not p.is_platform]

    old = {p.name: p for p in installed if not p.is_alias}
    new = {p.name: p for p in solution if not p.is_alias}
    old_aliases = {p.identity: p for p in installed if p.is_alias}
    new_aliases = {p.identity: p for p in solution if p.is_alias}

    changed: dict[str, Operation] = {}
    for name, package in new.items():
        current = old.get(name)
        if current is None:
            changed[name] = Operation(OperationType.INSTALL, package)
        elif (
            current.version.normalized != package.version.normalized
            or current.source_reference != package.source_reference
        ):
            changed[name] = Operation(OperationType.UPDATE, package, current)

    leaving = {name: package for name, package in old.items() if name not in new}

    # uninstalls: dependents first
    uninstall_edges = _dependency_edges(leaving, leaving.values())
    reverse = {n: {dependent for dependent, _ in deps} for n, deps in uninstall_edges.items()}
    forward: dict[str, set[str]] = {n: set() for n in leaving}
    for dependency, dependents in reverse.items():
        for dependent in dependents:
            forward[dependent].add(dependency)
    # a cycle among leaving packages cannot break anything still installed
    uninstall_soft = {(a, b) for a, targets in forward.items() for b in targets}
    uninstall_order = _kahn(sorted(leaving), forward, uninstall_soft)

    # installs and updates: dependencies first
    targets = {name: op.package for name, op in changed.items()}
    install_edges = _dependency_edges(targets, solution)
    ordering: dict[str, set[str]] = {n: set() for n in targets}
    soft: set[tuple[str, str]] = set()
    for dependency, dependents in install_edges.items():
        for dependent, link in dependents:
            ordering[dependency].add(dependent)
            # soft: fresh dependents, and links the installed state already satisfies
            if dependent not in old or any(_satisfies(p, link) for p in installed):
                soft.add((dependency, dependent))
    install_order = _kahn(sorted(targets), ordering, soft)

    operations = [
        Operation(OperationType.MARK_ALIAS_UNINSTALLED, alias)
        for identity, alias in sorted(old_aliases.items())
        if identity not in new_aliases
    ]
    operations += [Operation(OperationType.UNINSTALL, leaving[name]) for name in uninstall_order]

    pending_aliases = {
        identity: alias for identity, alias in new_aliases.items() if identity not in old_aliases
    }
    for name in install_order:
        operations.append(changed[name])
        for identity in sorted(i for i in pending_aliases if i[0] == name):
            operations.append(Operation(OperationType.MARK_ALIAS_INSTALLED, pending_aliases.pop(identity)))
    for identity in sorted(pending_aliases):
        operations.append(Operation(OperationType.MARK_ALIAS_INSTALLED, pending_aliases[identity]))

    _logging.debug(f"Planned {len(operations)} operations")
    return operations


__all__ = ["plan_transaction"]

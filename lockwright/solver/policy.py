"""Which candidate the solver tries first."""

from lockwright.package import Package

from .pool import Pool


class DefaultPolicy:
    """Orders candidate literals, best first.

    For names outside the update scope the locked package wins, then the
    installed one. After that: a package literally named as required beats
    a provider, more stable beats less stable, higher versions beat lower
    ones and higher-priority repositories break remaining ties.

    Args:
        pool: The pool the literals refer to
        installed: Installed packages by name
        locked: Locked packages by name
        update_scope: Names the run may move freely; ``None`` means all
    """

    def __init__(
        self,
        pool: Pool,
        installed: dict[str, Package] | None = None,
        locked: dict[str, Package] | None = None,
        update_scope: set[str] | None = None,
    ):
        self.pool = pool
        self.installed = installed or {}
        self.locked = locked or {}
        self.update_scope = update_scope

    def _is_fixed(self, package: Package, reference: dict[str, Package]) -> bool:
        if self.update_scope is None or package.name in self.update_scope:
            return False
        return reference.get(package.name) == package

    def _key(self, package_id: int, required_name: str | None) -> tuple:
        package = self.pool.package_by_id(package_id)
        return (
            not self._is_fixed(package, self.locked),
            not self._is_fixed(package, self.installed),
            required_name is not None and package.name != required_name,
            package.stability,
            _Descending(package.version),
            self.pool.priority(package_id),
            package_id,
        )

    def select_preferred(self, literals: list[int], required_name: str | None = None) -> list[int]:
        """Return the positive ``literals`` ordered best first.

        An alias is dropped when its target is also a candidate; selecting
        either selects both.
        """
        candidates = set(literals)
        pruned = []
        for literal in literals:
            package = self.pool.package_by_id(literal)
            if package.is_alias and self.pool.package_id(package.alias_of) in candidates:
                continue
            pruned.append(literal)
        return sorted(pruned, key=lambda lit: self._key(lit, required_name))


class _Descending:
    """Inverts the ordering of a wrapped value inside sort keys."""

    __slots__ = ("value",)

    def __init__(self, value):
        self.value = value

    def __lt__(self, other: "_Descending") -> bool:
        return other.value < self.value

    def __eq__(self, other) -> bool:
        return self.value == other.value


__all__ = ["DefaultPolicy"]

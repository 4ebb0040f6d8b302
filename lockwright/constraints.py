"""Version constraint parsing, matching and intersection.

A constraint string such as ``^1.2 || 2.0.* , !=2.0.3`` is parsed into a tree
of ``VersionConstraint`` leaves joined by conjunctive or disjunctive
``MultiConstraint`` nodes. ``matches()`` answers whether one concrete version
passes; ``intersects()`` answers whether two constraints admit a common
version, which is what provide/replace/conflict links need.

Branch versions (``dev-master``) only ever match ``==``/``!=`` comparisons;
range operators never select them.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache

from .versions import Version, normalize_version, parse_version

OPERATORS = ("==", "!=", "<", "<=", ">", ">=")

_STABILITIES = "stable|rc|beta|alpha|dev"
_VERSION_REGEX = (
    r"v?(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:\.(\d+))?"
    r"(?:[._-]?(?:(stable|beta|b|rc|alpha|a|patch|pl|p)((?:[.-]?\d+)*)?)?([.-]?dev)?)"
)
_HAS_MODIFIER = re.compile(
    r"-[._-]?(?:(stable|beta|b|rc|alpha|a|patch|pl|p)((?:[.-]?\d+)*)?)?([.-]?dev)?$"
)
_STABILITY_FLAG = re.compile(r"^([^,\s]*?)@(" + _STABILITIES + r")$", re.IGNORECASE)
_REFERENCE = re.compile(r"^(dev-[^,\s@]+?|[^,\s@]+?\.x-dev)#.+$")
_ALIAS = re.compile(r"^([^,\s]+) +as +([^,\s]+)$")
_MATCH_ALL = re.compile(r"^v?[xX*](?:\.[xX*])*$")
_TILDE = re.compile(r"^~>?" + _VERSION_REGEX + r"$", re.IGNORECASE)
_CARET = re.compile(r"^\^" + _VERSION_REGEX + r"$", re.IGNORECASE)
_WILDCARD = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:\.[xX*])+$")
_COMPARATOR = re.compile(r"^(<>|!=|>=?|<=?|==?)?\s*(.*)$")


class Constraint(ABC):
    """A predicate over versions."""

    pretty: str = ""

    @abstractmethod
    def matches(self, version: Version) -> bool:
        """Whether ``version`` satisfies this constraint."""

    @abstractmethod
    def _space(self) -> "_VersionSpace":
        """The set of versions this constraint admits."""

    def intersects(self, other: "Constraint") -> bool:
        """Whether at least one version satisfies both constraints."""
        return not self._space().intersection(other._space()).is_empty()

    def __str__(self) -> str:
        return self.pretty or self.describe()

    def describe(self) -> str:
        return self.pretty

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.describe()}>"


class MatchAllConstraint(Constraint):
    def __init__(self, pretty: str = "*"):
        self.pretty = pretty

    def matches(self, version: Version) -> bool:
        return True

    def _space(self) -> "_VersionSpace":
        return _VersionSpace.everything()

    def describe(self) -> str:
        return "*"


class MatchNoneConstraint(Constraint):
    def __init__(self, pretty: str = "<none>"):
        self.pretty = pretty

    def matches(self, version: Version) -> bool:
        return False

    def _space(self) -> "_VersionSpace":
        return _VersionSpace.nothing()

    def describe(self) -> str:
        return "<none>"


class VersionConstraint(Constraint):
    """A single ``<operator> <version>`` comparison."""

    def __init__(self, operator: str, version: Version | str, pretty: str = ""):
        if operator in ("=", ""):
            operator = "=="
        elif operator == "<>":
            operator = "!="
        if operator not in OPERATORS:
            raise ValueError(f"Invalid operator '{operator}'")
        self.operator = operator
        self.version = version if isinstance(version, Version) else parse_version(version)
        self.pretty = pretty

    def matches(self, version: Version) -> bool:
        if self.operator == "==":
            return version.normalized == self.version.normalized
        if self.operator == "!=":
            return version.normalized != self.version.normalized
        if version.is_branch or self.version.is_branch:
            return False
        if self.operator == "<":
            return version < self.version
        if self.operator == "<=":
            return version <= self.version
        if self.operator == ">":
            return version > self.version
        return version >= self.version

    def _space(self) -> "_VersionSpace":
        v = self.version
        if v.is_branch:
            if self.operator == "==":
                return _VersionSpace([], _BranchSet(frozenset([v.normalized]), False))
            if self.operator == "!=":
                return _VersionSpace(
                    [_Range(None, False, None, False)],
                    _BranchSet(frozenset([v.normalized]), True),
                )
            return _VersionSpace.nothing()

        no_branches = _BranchSet(frozenset(), False)
        if self.operator == "==":
            return _VersionSpace([_Range(v, True, v, True)], no_branches)
        if self.operator == "!=":
            return _VersionSpace(
                [_Range(None, False, v, False), _Range(v, False, None, False)],
                _BranchSet(frozenset(), True),
            )
        if self.operator == "<":
            return _VersionSpace([_Range(None, False, v, False)], no_branches)
        if self.operator == "<=":
            return _VersionSpace([_Range(None, False, v, True)], no_branches)
        if self.operator == ">":
            return _VersionSpace([_Range(v, False, None, False)], no_branches)
        return _VersionSpace([_Range(v, True, None, False)], no_branches)

    def describe(self) -> str:
        return f"{self.operator} {self.version.normalized}"


class MultiConstraint(Constraint):
    """Conjunction (all must match) or disjunction (any must match)."""

    def __init__(self, constraints: list[Constraint], conjunctive: bool = True, pretty: str = ""):
        self.constraints = tuple(constraints)
        self.conjunctive = conjunctive
        self.pretty = pretty

    def matches(self, version: Version) -> bool:
        if self.conjunctive:
            return all(c.matches(version) for c in self.constraints)
        return any(c.matches(version) for c in self.constraints)

    def _space(self) -> "_VersionSpace":
        spaces = [c._space() for c in self.constraints]
        result = spaces[0]
        for space in spaces[1:]:
            result = result.intersection(space) if self.conjunctive else result.union(space)
        return result

    def describe(self) -> str:
        glue = " " if self.conjunctive else " || "
        inner = glue.join(c.describe() for c in self.constraints)
        return f"[{inner}]"


@dataclass(frozen=True)
class _Range:
    low: Version | None
    low_inclusive: bool
    high: Version | None
    high_inclusive: bool

    def intersection(self, other: "_Range") -> "_Range":
        low, low_inc = self.low, self.low_inclusive
        if other.low is not None and (
            low is None or other.low > low or (other.low == low and not other.low_inclusive)
        ):
            low, low_inc = other.low, other.low_inclusive
        high, high_inc = self.high, self.high_inclusive
        if other.high is not None and (
            high is None or other.high < high or (other.high == high and not other.high_inclusive)
        ):
            high, high_inc = other.high, other.high_inclusive
        return _Range(low, low_inc, high, high_inc)

    def is_empty(self) -> bool:
        if self.low is None or self.high is None:
            return False
        if self.low > self.high:
            return True
        return self.low == self.high and not (self.low_inclusive and self.high_inclusive)


@dataclass(frozen=True)
class _BranchSet:
    """Either exactly ``names`` or every branch except ``names``."""

    names: frozenset
    complement: bool

    def intersection(self, other: "_BranchSet") -> "_BranchSet":
        if not self.complement and not other.complement:
            return _BranchSet(self.names & other.names, False)
        if not self.complement:
            return _BranchSet(self.names - other.names, False)
        if not other.complement:
            return _BranchSet(other.names - self.names, False)
        return _BranchSet(self.names | other.names, True)

    def union(self, other: "_BranchSet") -> "_BranchSet":
        if not self.complement and not other.complement:
            return _BranchSet(self.names | other.names, False)
        if not self.complement:
            return _BranchSet(other.names - self.names, True)
        if not other.complement:
            return _BranchSet(self.names - other.names, True)
        return _BranchSet(self.names & other.names, True)

    def is_empty(self) -> bool:
        return not self.complement and not self.names


class _VersionSpace:
    def __init__(self, ranges: list[_Range], branches: _BranchSet):
        self.ranges = [r for r in ranges if not r.is_empty()]
        self.branches = branches

    @classmethod
    def everything(cls) -> "_VersionSpace":
        return cls([_Range(None, False, None, False)], _BranchSet(frozenset(), True))

    @classmethod
    def nothing(cls) -> "_VersionSpace":
        return cls([], _BranchSet(frozenset(), False))

    def intersection(self, other: "_VersionSpace") -> "_VersionSpace":
        ranges = [a.intersection(b) for a in self.ranges for b in other.ranges]
        return _VersionSpace(ranges, self.branches.intersection(other.branches))

    def union(self, other: "_VersionSpace") -> "_VersionSpace":
        return _VersionSpace(self.ranges + other.ranges, self.branches.union(other.branches))

    def is_empty(self) -> bool:
        return not self.ranges and self.branches.is_empty()


def _manipulate(parts: list, position: int, increment: int = 0, pad: str = "0") -> str | None:
    """Pad everything after ``position`` and optionally bump that position."""
    parts = [p if p not in (None, "") else "0" for p in parts]
    for i in range(4, 0, -1):
        if i > position:
            parts[i - 1] = pad
        elif i == position and increment:
            value = int(parts[i - 1]) + increment
            if value < 0:
                parts[i - 1] = pad
                position -= 1
                if i == 1:
                    return None
            else:
                parts[i - 1] = str(value)
    return ".".join(str(p) for p in parts)


def _position(match: re.Match, floor: int = 1) -> int:
    for i in (4, 3, 2):
        if match.group(i):
            return i
    return floor


def _expand_stability(modifier: str) -> str:
    modifier = modifier.lower()
    return {"a": "alpha", "b": "beta", "p": "patch", "pl": "patch", "rc": "RC"}.get(
        modifier, modifier
    )


def _parse_single(text: str) -> list[Constraint]:
    pretty = text
    flag = _STABILITY_FLAG.match(text)
    stability_modifier = None
    if flag:
        text = flag.group(1) or "*"
        if flag.group(2).lower() != "stable":
            stability_modifier = flag.group(2).lower()
            if stability_modifier == "rc":
                stability_modifier = "RC"

    reference = _REFERENCE.match(text)
    if reference:
        text = reference.group(1)

    if _MATCH_ALL.match(text):
        return [MatchAllConstraint(pretty)]

    match = _TILDE.match(text)
    if match:
        if text.startswith("~>"):
            raise ValueError(
                f"Could not parse version constraint {text}: Invalid operator \"~>\", "
                "you probably meant to use the \"~\" operator"
            )
        position = _position(match)
        suffix = ""
        if match.group(5):
            suffix += "-" + _expand_stability(match.group(5)) + (match.group(6) or "")
        if match.group(7):
            suffix += "-dev"
        if not suffix:
            suffix = "-dev"
        parts = [match.group(i) for i in range(1, 5)]
        low = _manipulate(parts, position) + suffix
        high = _manipulate(parts, max(1, position - 1), 1) + "-dev"
        return [
            VersionConstraint(">=", parse_version(low), pretty),
            VersionConstraint("<", parse_version(high), pretty),
        ]

    match = _CARET.match(text)
    if match:
        if match.group(1) != "0" or not match.group(2):
            position = 1
        elif match.group(2) != "0" or not match.group(3):
            position = 2
        else:
            position = 3
        suffix = "" if (match.group(5) or match.group(7)) else "-dev"
        low = normalize_version(text[1:] + suffix)
        parts = [match.group(i) for i in range(1, 5)]
        high = _manipulate(parts, position, 1) + "-dev"
        return [
            VersionConstraint(">=", parse_version(low), pretty),
            VersionConstraint("<", parse_version(high), pretty),
        ]

    match = _WILDCARD.match(text)
    if match:
        position = 3 if match.group(3) else 2 if match.group(2) else 1
        parts = [match.group(i) for i in range(1, 4)] + [None]
        low = _manipulate(parts, position) + "-dev"
        high = _manipulate(parts, position, 1) + "-dev"
        upper = VersionConstraint("<", parse_version(high), pretty)
        if low == "0.0.0.0-dev":
            return [upper]
        return [VersionConstraint(">=", parse_version(low), pretty), upper]

    match = _COMPARATOR.match(text)
    if match and match.group(2):
        operator, raw = match.group(1) or "==", match.group(2).strip()
        try:
            normalized = normalize_version(raw)
        except ValueError:
            raise ValueError(f"Could not parse version constraint {pretty}") from None
        version_string = normalized
        if stability_modifier and parse_version(normalized).stability.name == "STABLE":
            version_string += "-" + stability_modifier
        elif operator in ("<", ">=") and not _HAS_MODIFIER.search(raw.lower()):
            if not raw.startswith("dev-"):
                version_string += "-dev"
        return [VersionConstraint(operator, parse_version(version_string, raw), pretty)]

    raise ValueError(f"Could not parse version constraint {pretty}")


def _parse_hyphen(text: str) -> list[Constraint] | None:
    parts = re.split(r" +- +", text)
    if len(parts) != 2:
        return None
    low_raw, high_raw = parts
    low_match = re.match(r"^" + _VERSION_REGEX + r"$", low_raw, re.IGNORECASE)
    high_match = re.match(r"^" + _VERSION_REGEX + r"$", high_raw, re.IGNORECASE)
    if not (low_match and high_match):
        return None

    low_suffix = "" if (low_match.group(5) or low_match.group(7)) else "-dev"
    lower = VersionConstraint(">=", parse_version(normalize_version(low_raw) + low_suffix), text)

    if (high_match.group(2) and high_match.group(3)) or high_match.group(5) or high_match.group(7):
        upper = VersionConstraint("<=", parse_version(normalize_version(high_raw)), text)
    else:
        parts = [high_match.group(i) for i in range(1, 5)]
        position = 1 if not high_match.group(2) else 2
        upper = VersionConstraint("<", parse_version(_manipulate(parts, position, 1) + "-dev"), text)
    return [lower, upper]


@lru_cache(maxsize=4096)
def parse_constraints(text: str) -> Constraint:
    """Parse a constraint string.

    >>> parse_constraints("^1.0").matches(parse_version("1.4.2"))
    True
    >>> parse_constraints("^1.0").matches(parse_version("2.0.0"))
    False

    Raises:
        ValueError: If the string cannot be parsed
    """
    pretty = text
    text = text.strip()
    alias = _ALIAS.match(text)
    if alias:
        text = alias.group(1)

    if not text:
        return MatchAllConstraint(pretty or "*")

    or_groups = []
    for group in re.split(r"\s*\|\|?\s*", text):
        if not group:
            raise ValueError(f"Could not parse version constraint {pretty}")
        constraints = _parse_hyphen(group)
        if constraints is None:
            # "> = 1.0" and ">= 1.0" both mean ">=1.0"
            group = re.sub(r"(?<=[<>=!~^])\s+", "", group)
            constraints = []
            for single in re.split(r"\s*,\s*|\s+", group.strip()):
                if single:
                    constraints.extend(_parse_single(single))
        if len(constraints) == 1:
            or_groups.append(constraints[0])
        else:
            or_groups.append(MultiConstraint(constraints, True, group))

    if len(or_groups) == 1:
        result = or_groups[0]
    else:
        result = MultiConstraint(or_groups, False)
    result.pretty = pretty.strip() or "*"
    return result


def split_stability_flag(text: str) -> tuple[str, str | None]:
    """Return the constraint without its ``@stability`` flags and the loosest flag.

    >>> split_stability_flag("^1.0@beta")
    ('^1.0', 'beta')
    """
    flags = []
    cleaned = []
    for part in re.split(r"(\s*\|\|?\s*|\s*,\s*|\s+)", text):
        match = _STABILITY_FLAG.match(part)
        if match:
            flags.append(match.group(2).lower())
            part = match.group(1) or "*"
        cleaned.append(part)
    if not flags:
        return text, None
    order = ["stable", "rc", "beta", "alpha", "dev"]
    return "".join(cleaned), max(flags, key=order.index)


__all__ = [
    "Constraint",
    "MatchAllConstraint",
    "MatchNoneConstraint",
    "MultiConstraint",
    "OPERATORS",
    "VersionConstraint",
    "parse_constraints",
    "split_stability_flag",
]

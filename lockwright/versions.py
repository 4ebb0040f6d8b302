"""Version normalisation, stability tiers and ordering."""

import re
from dataclasses import dataclass, field
from enum import IntEnum
from functools import lru_cache, total_ordering


class Stability(IntEnum):
    """Stability tiers; a lower value is more stable.

    The numeric values are the ones written to ``stability-flags`` in lock
    files, so they must not change.
    """

    STABLE = 0
    RC = 5
    BETA = 10
    ALPHA = 15
    DEV = 20

    @classmethod
    def from_name(cls, name: str) -> "Stability":
        try:
            return _STABILITY_NAMES[name.strip().lower()]
        except KeyError:
            raise ValueError(
                f"Invalid stability '{name}', expected one of: "
                + ", ".join(_STABILITY_NAMES)
            ) from None

    @property
    def label(self) -> str:
        return "RC" if self is Stability.RC else self.name.lower()

    def allows(self, other: "Stability") -> bool:
        """Whether a version of stability ``other`` passes this minimum."""
        return other <= self


_STABILITY_NAMES = {
    "stable": Stability.STABLE,
    "rc": Stability.RC,
    "beta": Stability.BETA,
    "alpha": Stability.ALPHA,
    "dev": Stability.DEV,
}

# Used for ``x`` wildcards in branch names: 1.0.x-dev -> 1.0.9999999.9999999-dev
BRANCH_WILDCARD = 9999999

_MODIFIER = (
    r"[._-]?(?:(stable|beta|b|rc|alpha|a|patch|pl|p)((?:[.-]?\d+)*)?)?([.-]?dev)?"
)
_CLASSICAL = re.compile(
    r"^v?(\d{1,5})(\.\d+)?(\.\d+)?(\.\d+)?" + _MODIFIER + r"$", re.IGNORECASE
)
_DATE = re.compile(
    r"^v?(\d{4}(?:[.:-]?\d{2}){1,6}(?:[.:-]?\d{1,3})?)" + _MODIFIER + r"$",
    re.IGNORECASE,
)
_BRANCH_NUMERIC = re.compile(
    r"^v?(\d+)(\.(?:\d+|[xX*]))?(\.(?:\d+|[xX*]))?(\.(?:\d+|[xX*]))?$"
)
_ALIAS = re.compile(r"^([^,\s]+) +as +([^,\s]+)$")
_DEV_SUFFIX = re.compile(r"^(.*?)[.-]?dev$", re.IGNORECASE)
_STABILITY_SUFFIX = re.compile(
    r"[._-]?(?:(stable|beta|b|rc|alpha|a|patch|pl|p)((?:[.-]?\d+)*)?)?([.-]?dev)?$",
    re.IGNORECASE,
)

_PRE_RANK = {"dev": 0, "alpha": 1, "beta": 2, "RC": 3, "": 4, "patch": 5}


def _expand_modifier(modifier: str) -> str:
    modifier = modifier.lower()
    if modifier in ("a", "alpha"):
        return "alpha"
    if modifier in ("b", "beta"):
        return "beta"
    if modifier in ("p", "pl", "patch"):
        return "patch"
    if modifier == "rc":
        return "RC"
    return ""


def normalize_branch(name: str) -> str:
    """Normalise a branch name into a version string.

    >>> normalize_branch("1.x")
    '1.9999999.9999999.9999999-dev'
    >>> normalize_branch("feature/foo")
    'dev-feature/foo'
    """
    name = name.strip()
    if name in ("master", "trunk", "default"):
        return f"dev-{name}"

    match = _BRANCH_NUMERIC.match(name)
    if match:
        parts = []
        for i in range(1, 5):
            group = match.group(i)
            if group is None:
                parts.append("x")
            else:
                parts.append(group.lstrip("."))
        parts = [
            str(BRANCH_WILDCARD) if p in ("x", "X", "*") else p for p in parts
        ]
        return ".".join(parts) + "-dev"

    return f"dev-{name}"


@lru_cache(maxsize=4096)
def normalize_version(version: str) -> str:
    """Normalise a version string to its canonical four-part form.

    >>> normalize_version("1.0")
    '1.0.0.0'
    >>> normalize_version("v2.1.3-beta2")
    '2.1.3.0-beta2'
    >>> normalize_version("1.0.x-dev")
    '1.0.9999999.9999999-dev'

    Raises:
        ValueError: If the string is not a recognisable version
    """
    original = version
    version = version.strip()
    if not version:
        raise ValueError("Invalid version string: empty")

    alias = _ALIAS.match(version)
    if alias:
        version = alias.group(1)

    if re.match(r"^(?:dev-)?(?:master|trunk|default)$", version, re.IGNORECASE):
        return "dev-" + version[4:] if version.lower().startswith("dev-") else f"dev-{version}"

    if version.lower().startswith("dev-"):
        return "dev-" + version[4:]

    # build metadata does not take part in identity
    version = version.split("+", 1)[0]

    match = _CLASSICAL.match(version)
    if match:
        release = match.group(1)
        for i in (2, 3, 4):
            release += match.group(i) or ".0"
        index = 5
    else:
        match = _DATE.match(version)
        if not match:
            dev = _DEV_SUFFIX.match(version)
            if dev and dev.group(1):
                return normalize_branch(dev.group(1))
            raise ValueError(f"Invalid version string '{original}'")
        release = re.sub(r"\D", ".", match.group(1))
        index = 2

    modifier, number, dev = match.group(index), match.group(index + 1), match.group(index + 2)
    if modifier and modifier.lower() == "stable":
        modifier = None
    if modifier:
        release += "-" + _expand_modifier(modifier)
        if number:
            release += number.lstrip(".-")
    if dev:
        release += "-dev"
    return release


def parse_stability(version: str) -> Stability:
    """Return the stability tier of a (pretty or normalised) version string."""
    version = re.sub(r"#.+$", "", version.strip())
    lowered = version.lower()
    if lowered.startswith("dev-") or lowered.endswith("-dev"):
        return Stability.DEV

    match = _STABILITY_SUFFIX.search(lowered)
    if match and match.group(3):
        return Stability.DEV
    if match and match.group(1):
        modifier = match.group(1)
        if modifier in ("beta", "b"):
            return Stability.BETA
        if modifier in ("alpha", "a"):
            return Stability.ALPHA
        if modifier == "rc":
            return Stability.RC
    return Stability.STABLE


@total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A normalised version; totally ordered, hashed by its normalised form.

    Branch versions (``dev-foo``) sort below every numeric version and among
    themselves by name.
    """

    normalized: str
    pretty: str
    stability: Stability
    branch: str | None = None
    release: tuple[int, ...] = ()
    _key: tuple = field(default=(), repr=False)

    @property
    def is_branch(self) -> bool:
        return self.branch is not None

    @property
    def is_dev(self) -> bool:
        return self.stability is Stability.DEV

    def __eq__(self, other) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.normalized == other.normalized

    def __lt__(self, other) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key < other._key

    def __hash__(self) -> int:
        return hash(self.normalized)

    def __str__(self) -> str:
        return self.pretty


def _sort_key(normalized: str) -> tuple:
    if normalized.startswith("dev-"):
        return (0, normalized[4:])

    head, _, tail = normalized.partition("-")
    release = tuple(int(p) for p in head.split("."))
    dev_rank = 1
    if tail.endswith("dev"):
        dev_rank = 0
        tail = tail[:-3].rstrip("-")
    if not tail:
        pre_rank = _PRE_RANK["dev"] if dev_rank == 0 else _PRE_RANK[""]
        return (1, release, pre_rank, (), 1)

    match = re.match(r"^(alpha|beta|RC|patch)(.*)$", tail)
    if not match:
        return (1, release, _PRE_RANK[""], (), dev_rank)
    numbers = tuple(int(n) for n in re.findall(r"\d+", match.group(2)))
    return (1, release, _PRE_RANK[match.group(1)], numbers, dev_rank)


@lru_cache(maxsize=8192)
def parse_version(version: str, pretty: str | None = None) -> Version:
    """Parse a version string into a ``Version``.

    ``pretty`` overrides the display form; by default the input string is
    used as given.
    """
    normalized = normalize_version(version)
    key = _sort_key(normalized)
    branch = normalized[4:] if normalized.startswith("dev-") else None
    release = key[1] if key[0] == 1 else ()
    return Version(
        normalized=normalized,
        pretty=pretty if pretty is not None else version.strip(),
        stability=parse_stability(normalized),
        branch=branch,
        release=release,
        _key=key,
    )


def compare_versions(version1: str, version2: str) -> int:
    """Compare two version strings. Returns -1, 0, or 1."""
    v1 = parse_version(version1)
    v2 = parse_version(version2)
    if v1 < v2:
        return -1
    elif v1 > v2:
        return 1
    else:
        return 0


__all__ = [
    "BRANCH_WILDCARD",
    "Stability",
    "Version",
    "compare_versions",
    "normalize_branch",
    "normalize_version",
    "parse_stability",
    "parse_version",
]

"""Data models for packages and the links between them."""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from lockwright.constraints import Constraint, VersionConstraint
from lockwright.versions import Stability, Version

PLATFORM_PACKAGE_REGEX = re.compile(
    r"^(?:php(?:-64bit|-ipv6|-zts|-debug)?|hhvm|(?:ext|lib)-[a-z0-9](?:[_.-]?[a-z0-9]+)*)$",
    re.IGNORECASE,
)

SELF_VERSION = "self.version"


def is_platform_name(name: str) -> bool:
    return PLATFORM_PACKAGE_REGEX.match(name) is not None


class LinkType(Enum):
    REQUIRE = "require"
    REQUIRE_DEV = "require-dev"
    CONFLICT = "conflict"
    REPLACE = "replace"
    PROVIDE = "provide"

    @property
    def verb(self) -> str:
        return {
            LinkType.REQUIRE: "requires",
            LinkType.REQUIRE_DEV: "requires (for development)",
            LinkType.CONFLICT: "conflicts with",
            LinkType.REPLACE: "replaces",
            LinkType.PROVIDE: "provides",
        }[self]


@dataclass(frozen=True)
class Link:
    """A typed edge from a package to a target name and constraint."""

    source: str
    target: str
    constraint: Constraint = field(compare=False)
    link_type: LinkType
    pretty_constraint: str = ""

    def __str__(self) -> str:
        return f"{self.source} {self.link_type.verb} {self.target} ({self.pretty_constraint})"


@dataclass(frozen=True, eq=False)
class Package:
    """An immutable package descriptor; identity is ``(name, version)``."""

    name: str
    version: Version
    pretty_name: str = ""
    type: str = "library"
    requires: tuple[Link, ...] = ()
    dev_requires: tuple[Link, ...] = ()
    conflicts: tuple[Link, ...] = ()
    provides: tuple[Link, ...] = ()
    replaces: tuple[Link, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.pretty_name:
            object.__setattr__(self, "pretty_name", self.name)
        object.__setattr__(self, "name", self.name.lower())

    @property
    def pretty_version(self) -> str:
        return self.version.pretty

    @property
    def stability(self) -> Stability:
        return self.version.stability

    @property
    def is_platform(self) -> bool:
        return is_platform_name(self.name)

    @property
    def is_alias(self) -> bool:
        return False

    @property
    def source_reference(self) -> str | None:
        source = self.metadata.get("source")
        if isinstance(source, dict):
            return source.get("reference")
        return None

    @property
    def unique_name(self) -> str:
        return f"{self.name}-{self.version.normalized}"

    @property
    def identity(self) -> tuple:
        return (self.name, self.version.normalized, None)

    @property
    def names(self) -> set[str]:
        """Every name this package answers to: its own, replaced and provided."""
        result = {self.name}
        result.update(link.target for link in self.provides)
        result.update(link.target for link in self.replaces)
        return result

    def pretty_string(self) -> str:
        return f"{self.pretty_name} ({self.pretty_version})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, Package):
            return NotImplemented
        return self.identity == other.identity

    def __hash__(self) -> int:
        return hash(self.identity)

    def __str__(self) -> str:
        return f"{self.pretty_name} {self.pretty_version}"

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.unique_name}>"


@dataclass(frozen=True, eq=False)
class AliasPackage(Package):
    """A package answering to another version of an existing package.

    Branch aliases (``dev-master`` as ``1.0.x-dev``) and root aliases
    (``dev-master as 1.0.0`` in the manifest) both produce one of these.
    """

    alias_of: Package | None = None
    root_alias: bool = False

    @property
    def is_alias(self) -> bool:
        return True

    @property
    def identity(self) -> tuple:
        return (self.name, self.version.normalized, self.alias_of.version.normalized)

    def pretty_string(self) -> str:
        return f"{self.pretty_name} ({self.pretty_version})"


def make_alias(package: Package, version: Version, root_alias: bool = False) -> AliasPackage:
    """Create an alias of ``package`` answering to ``version``.

    Links declared as ``self.version`` follow the alias version.
    """

    def rebind(links: tuple[Link, ...]) -> tuple[Link, ...]:
        rebound = []
        for link in links:
            if link.pretty_constraint == SELF_VERSION:
                link = replace(
                    link,
                    constraint=VersionConstraint("==", version, version.pretty),
                )
            rebound.append(link)
        return tuple(rebound)

    if isinstance(package, AliasPackage):
        package = package.alias_of

    return AliasPackage(
        name=package.name,
        version=version,
        pretty_name=package.pretty_name,
        type=package.type,
        requires=rebind(package.requires),
        dev_requires=rebind(package.dev_requires),
        conflicts=rebind(package.conflicts),
        provides=rebind(package.provides),
        replaces=rebind(package.replaces),
        metadata=package.metadata,
        alias_of=package,
        root_alias=root_alias,
    )


@dataclass
class RootAlias:
    """A manifest-level ``<version> as <alias>`` declaration."""

    package: str
    version: str
    pretty_version: str
    alias: str
    alias_normalized: str

    def to_dict(self) -> dict[str, str]:
        return {
            "alias": self.alias,
            "alias_normalized": self.alias_normalized,
            "version": self.version,
            "package": self.package,
        }


@dataclass
class RootPackage:
    """The project itself, as declared in the manifest.

    Never added to a pool: its requirements become solver jobs.
    """

    name: str
    requires: tuple[Link, ...] = ()
    dev_requires: tuple[Link, ...] = ()
    conflicts: tuple[Link, ...] = ()
    provides: tuple[Link, ...] = ()
    replaces: tuple[Link, ...] = ()
    minimum_stability: Stability = Stability.STABLE
    stability_flags: dict[str, Stability] = field(default_factory=dict)
    prefer_stable: bool = False
    aliases: list[RootAlias] = field(default_factory=list)
    platform_overrides: dict[str, str] = field(default_factory=dict)

    def platform_requires(self, dev: bool = False) -> dict[str, str]:
        links = self.dev_requires if dev else self.requires
        return {
            link.target: link.pretty_constraint for link in links if is_platform_name(link.target)
        }


__all__ = [
    "AliasPackage",
    "Link",
    "LinkType",
    "Package",
    "PLATFORM_PACKAGE_REGEX",
    "RootAlias",
    "RootPackage",
    "SELF_VERSION",
    "is_platform_name",
    "make_alias",
]

"""Conversion between raw package dicts and Package objects."""

import re
from typing import Any

from lockwright.constraints import VersionConstraint, parse_constraints, split_stability_flag
from lockwright.errors import InvalidPackageError, format_field_error
from lockwright.versions import Stability, normalize_version, parse_stability, parse_version

from .models import (
    SELF_VERSION,
    Link,
    LinkType,
    Package,
    RootAlias,
    RootPackage,
    make_alias,
)

_LINK_KEYS = {
    LinkType.REQUIRE: "require",
    LinkType.REQUIRE_DEV: "require-dev",
    LinkType.CONFLICT: "conflict",
    LinkType.PROVIDE: "provide",
    LinkType.REPLACE: "replace",
}

# Keys that Package models directly; everything else is carried in metadata.
_MODELLED_KEYS = {"name", "version", "version_normalized", "type", *_LINK_KEYS.values()}

_DUMP_ORDER = ["source", "dist", "require", "require-dev", "conflict", "replace", "provide", "type", "extra"]


def _load_links(
    entity: str,
    source: str,
    link_type: LinkType,
    data: Any,
    self_version=None,
) -> tuple[Link, ...]:
    if data is None:
        return ()
    key = _LINK_KEYS[link_type]
    if not isinstance(data, dict):
        raise InvalidPackageError(
            format_field_error(entity, key, f"must be an object, got {type(data).__name__}")
        )

    links = []
    for target, pretty in data.items():
        if not isinstance(target, str) or not target:
            raise InvalidPackageError(format_field_error(entity, key, "has an empty package name"))
        if not isinstance(pretty, str):
            raise InvalidPackageError(
                format_field_error(entity, f"{key}.{target}", "must be a string")
            )
        if pretty == SELF_VERSION and self_version is not None:
            constraint = VersionConstraint("==", self_version, self_version.pretty)
        else:
            try:
                constraint = parse_constraints(pretty)
            except ValueError as e:
                raise InvalidPackageError(
                    format_field_error(entity, f"{key}.{target}", f"is invalid: {e}")
                ) from e
        links.append(Link(source, target.lower(), constraint, link_type, pretty))
    return tuple(links)


def load_package(data: Any) -> Package:
    """Build a Package from its dict form.

    Raises:
        InvalidPackageError: If required fields are missing or malformed
    """
    if not isinstance(data, dict):
        raise InvalidPackageError(
            f"Package data must be an object, got {type(data).__name__}", data
        )

    name = data.get("name")
    if not name or not isinstance(name, str):
        raise InvalidPackageError("Package field 'name' must be a non-empty string", data)
    entity = f"Package '{name}'"

    pretty_version = data.get("version")
    if not pretty_version or not isinstance(pretty_version, str):
        raise InvalidPackageError(format_field_error(entity, "version", "must be a non-empty string"), data)

    try:
        normalized = data.get("version_normalized") or normalize_version(pretty_version)
        version = parse_version(normalized, pretty_version)
    except ValueError as e:
        raise InvalidPackageError(format_field_error(entity, "version", f"is invalid: {e}"), data) from e

    package_type = data.get("type", "library")
    if not isinstance(package_type, str):
        raise InvalidPackageError(format_field_error(entity, "type", "must be a string"), data)

    source = name.lower()
    links = {
        link_type: _load_links(entity, source, link_type, data.get(key), version)
        for link_type, key in _LINK_KEYS.items()
    }
    metadata = {k: v for k, v in data.items() if k not in _MODELLED_KEYS}

    return Package(
        name=name,
        version=version,
        pretty_name=name,
        type=package_type,
        requires=links[LinkType.REQUIRE],
        dev_requires=links[LinkType.REQUIRE_DEV],
        conflicts=links[LinkType.CONFLICT],
        provides=links[LinkType.PROVIDE],
        replaces=links[LinkType.REPLACE],
        metadata=metadata,
    )


def _branch_alias(package: Package) -> Package | None:
    extra = package.metadata.get("extra")
    if not isinstance(extra, dict):
        return None
    aliases = extra.get("branch-alias")
    if not isinstance(aliases, dict):
        return None

    target = aliases.get(package.pretty_version)
    if not package.version.is_dev or not isinstance(target, str):
        return None
    # only x.y.x-dev style targets are meaningful aliases
    if not target.endswith("-dev"):
        return None
    try:
        alias_version = parse_version(normalize_version(target), target)
    except ValueError:
        return None
    if not alias_version.normalized.endswith("-dev") or alias_version.is_branch:
        return None
    return make_alias(package, alias_version)


def load_packages(entries: Any) -> list[Package]:
    """Load a list (or ``{name: {version: data}}`` mapping) of package dicts.

    Branch aliases declared in ``extra.branch-alias`` are added after the
    package they alias.
    """
    if isinstance(entries, dict):
        flattened = []
        for name, versions in entries.items():
            if not isinstance(versions, dict):
                raise InvalidPackageError(
                    f"Versions of '{name}' must be an object, got {type(versions).__name__}"
                )
            for data in versions.values():
                if isinstance(data, dict) and "name" not in data:
                    data = {"name": name, **data}
                flattened.append(data)
        entries = flattened

    if not isinstance(entries, list):
        raise InvalidPackageError(
            f"Package list must be an array, got {type(entries).__name__}"
        )

    packages = []
    for data in entries:
        package = load_package(data)
        packages.append(package)
        alias = _branch_alias(package)
        if alias is not None:
            packages.append(alias)
    return packages


def _dump_links(links: tuple[Link, ...]) -> dict[str, str]:
    return {link.target: link.pretty_constraint for link in links}


def dump_package(package: Package) -> dict[str, Any]:
    """Return the dict form of ``package`` in a stable key order."""
    if package.is_alias:
        package = package.alias_of

    data: dict[str, Any] = {"name": package.pretty_name, "version": package.pretty_version}
    fields = {
        "require": _dump_links(package.requires),
        "require-dev": _dump_links(package.dev_requires),
        "conflict": _dump_links(package.conflicts),
        "replace": _dump_links(package.replaces),
        "provide": _dump_links(package.provides),
        "type": package.type,
    }
    for key in _DUMP_ORDER:
        value = fields[key] if key in fields else package.metadata.get(key)
        if value:
            data[key] = value
    for key in sorted(package.metadata):
        if key not in data and key not in _DUMP_ORDER:
            data[key] = package.metadata[key]
    return data


def _extract_stability_flags(
    requires: dict[str, str], minimum: Stability, flags: dict[str, Stability]
) -> dict[str, Stability]:
    for name, constraint in requires.items():
        name = name.lower()
        _, flag = split_stability_flag(constraint)
        if flag is not None:
            stability = Stability.from_name(flag)
            if name not in flags or flags[name] < stability:
                flags[name] = stability
            continue

        # an explicit unstable version (1.0-beta2, dev-master) implies a flag
        for part in re.split(r"\s*\|\|?\s*", constraint.strip()):
            plain = re.sub(r"^([^,\s@]+) as .+$", r"\1", part)
            if not re.match(r"^[^,\s@]+$", plain):
                continue
            try:
                stability = parse_stability(plain)
            except ValueError:
                continue
            if stability is Stability.STABLE or stability < minimum:
                continue
            if name in flags and flags[name] > stability:
                continue
            flags[name] = stability
    return flags


def _extract_aliases(requires: dict[str, str]) -> list[RootAlias]:
    aliases = []
    for name, constraint in requires.items():
        match = re.match(r"^([^,\s#]+)(?:#[^ ]+)? +as +([^,\s]+)$", constraint.strip())
        if not match:
            continue
        target, alias = match.group(1), match.group(2)
        target, _ = split_stability_flag(target)
        aliases.append(
            RootAlias(
                package=name.lower(),
                version=normalize_version(target),
                pretty_version=target,
                alias=alias,
                alias_normalized=normalize_version(alias),
            )
        )
    return aliases


def load_root_alias(entry: Any, packages: list[Package]) -> Package:
    """Rebuild a root alias recorded as ``{package, version, alias, alias_normalized}``.

    Raises:
        InvalidPackageError: If the entry is malformed or its target is missing
    """
    if not isinstance(entry, dict) or not all(
        isinstance(entry.get(key), str) for key in ("package", "version", "alias")
    ):
        raise InvalidPackageError(f"Malformed alias entry: {entry!r}")
    name = entry["package"].lower()
    for package in packages:
        if package.name == name and not package.is_alias and package.version.normalized == entry["version"]:
            alias = entry["alias"]
            try:
                normalized = entry.get("alias_normalized") or normalize_version(alias)
                version = parse_version(normalized, alias)
            except ValueError as e:
                raise InvalidPackageError(f"Alias {alias} of {name} is invalid: {e}") from e
            return make_alias(package, version, root_alias=True)
    raise InvalidPackageError(
        f"Alias {entry['alias']} of {name} refers to a version that is not present"
    )


def load_root_package(manifest) -> RootPackage:
    """Build the RootPackage for a validated ``Manifest``.

    Raises:
        InvalidPackageError: If a constraint cannot be parsed
    """
    entity = f"Root package '{manifest.name}'"
    source = manifest.name.lower()

    minimum = Stability.from_name(manifest.minimum_stability)
    flags: dict[str, Stability] = {}
    _extract_stability_flags(manifest.require, minimum, flags)
    _extract_stability_flags(manifest.require_dev, minimum, flags)

    aliases = _extract_aliases(manifest.require) + _extract_aliases(manifest.require_dev)

    return RootPackage(
        name=source,
        requires=_load_links(entity, source, LinkType.REQUIRE, manifest.require),
        dev_requires=_load_links(entity, source, LinkType.REQUIRE_DEV, manifest.require_dev),
        conflicts=_load_links(entity, source, LinkType.CONFLICT, manifest.conflict),
        provides=_load_links(entity, source, LinkType.PROVIDE, manifest.provide),
        replaces=_load_links(entity, source, LinkType.REPLACE, manifest.replace),
        minimum_stability=minimum,
        stability_flags=flags,
        prefer_stable=manifest.prefer_stable,
        aliases=aliases,
        platform_overrides=dict(manifest.platform),
    )


__all__ = [
    "dump_package",
    "load_package",
    "load_packages",
    "load_root_alias",
    "load_root_package",
]

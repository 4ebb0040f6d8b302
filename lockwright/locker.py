"""Lock file handling: the content hash, the locked repository and persistence.

A lock record ties an exact package selection to the manifest that
produced it through ``hash``, an md5 over the manifest's
dependency-relevant fields. Records are serialised canonically, so locking
the same selection twice yields byte-identical text.
"""

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from lockwright.config import ConfigError, Manifest
from lockwright.errors import InvalidPackageError, StaleLockError
from lockwright.package import Package, RootPackage, dump_package, load_packages, load_root_alias
from lockwright.repository import LockedRepository

_logging = logging.getLogger(__name__)

LockRecord = dict[str, Any]

LOCK_README = [
    "This file locks the dependencies of your project to a known state",
    "It is generated by lockwright; commit it and do not edit it by hand",
]


def compute_content_hash(manifest: Manifest) -> str:
    """md5 over the manifest fields that influence resolution.

    Formatting, comments, key order and fields such as ``name`` or
    ``extra`` do not take part.
    """
    relevant: dict[str, Any] = {
        "require": manifest.require,
        "require-dev": manifest.require_dev,
        "conflict": manifest.conflict,
        "replace": manifest.replace,
        "provide": manifest.provide,
        "minimum-stability": manifest.minimum_stability,
        "prefer-stable": manifest.prefer_stable,
        "repositories": manifest.repositories,
        "platform": manifest.platform,
    }
    relevant = {k: v for k, v in relevant.items() if v not in ({}, [], None)}
    encoded = json.dumps(relevant, sort_keys=True, separators=(",", ":"))
    return hashlib.md5(encoded.encode("utf-8")).hexdigest()


def dump_lock(record: LockRecord) -> str:
    """Canonical text form of a lock record."""
    return json.dumps(record, indent=4) + "\n"


class LockStore(ABC):
    """Where lock text lives."""

    @abstractmethod
    def read_text(self) -> str | None:
        """The stored text, or None when nothing is stored."""

    @abstractmethod
    def write_text(self, text: str) -> None:
        """Replace the stored text."""


class JsonLockFile(LockStore):
    def __init__(self, path: Path):
        self.path = Path(path)

    def read_text(self) -> str | None:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise ConfigError(f"Error reading lock file {self.path}: {e}") from e

    def write_text(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(text, encoding="utf-8")

    def __repr__(self) -> str:
        return f"<JsonLockFile {self.path}>"


class InMemoryLockStore(LockStore):
    """Keeps lock text in memory; ``writes`` counts how often it was replaced."""

    def __init__(self, record: LockRecord | None = None):
        self.text = dump_lock(record) if record is not None else None
        self.writes = 0

    def read_text(self) -> str | None:
        return self.text

    def write_text(self, text: str) -> None:
        self.text = text
        self.writes += 1


class Locker:
    """Reads, validates and writes lock records.

    Args:
        store: Backing storage for the lock text
        content_hash: Hash of the current manifest; written to new records
    """

    def __init__(self, store: LockStore, content_hash: str):
        self.store = store
        self.content_hash = content_hash
        self._data: LockRecord | None = None

    def _read(self) -> LockRecord | None:
        if self._data is None:
            text = self.store.read_text()
            if text is None:
                return None
            try:
                data = json.loads(text)
            except json.JSONDecodeError as e:
                raise ConfigError(
                    f"Lock file is not valid JSON (line {e.lineno}, col {e.colno}: {e.msg})"
                ) from e
            if not isinstance(data, dict):
                raise ConfigError(f"Lock file must be an object, got {type(data).__name__}")
            self._data = data
        return self._data

    def is_locked(self) -> bool:
        data = self._read()
        return data is not None and "packages" in data

    def is_fresh(self, manifest: Manifest | None = None) -> bool:
        """Whether the stored hash matches ``manifest`` (default: the current one)."""
        data = self._read()
        if data is None:
            return False
        expected = compute_content_hash(manifest) if manifest is not None else self.content_hash
        return data.get("hash") == expected

    def get_lock_data(self) -> LockRecord:
        data = self._read()
        if data is None or "packages" not in data:
            raise StaleLockError("No lock file present")
        return data

    def get_locked_repository(self, dev_mode: bool = False) -> LockedRepository:
        """The locked packages (plus the dev section in ``dev_mode``) as a repository.

        Raises:
            StaleLockError: If dev packages are wanted but the lock was
                written without them
        """
        data = self.get_lock_data()
        entries = list(data.get("packages") or [])
        if dev_mode:
            if data.get("packages-dev") is None:
                raise StaleLockError(
                    "The lock file does not contain require-dev information, "
                    "install with --no-dev or run update to install those packages"
                )
            entries += data["packages-dev"]

        try:
            packages = load_packages(entries)
            names = {p.name for p in packages}
            for entry in data.get("aliases") or []:
                if isinstance(entry, dict) and str(entry.get("package", "")).lower() in names:
                    packages.append(load_root_alias(entry, packages))
        except InvalidPackageError as e:
            raise ConfigError(f"Lock file contains an invalid package: {e}") from e
        return LockedRepository(packages)

    def get_platform_requirements(self, dev_mode: bool = False) -> dict[str, str]:
        data = self.get_lock_data()
        requirements = dict(data.get("platform") or {})
        if dev_mode:
            requirements.update(data.get("platform-dev") or {})
        return requirements

    def build_lock_record(
        self,
        packages: list[Package],
        dev_packages: list[Package] | None,
        root: RootPackage,
    ) -> LockRecord:
        """Build the record for a selection without touching the store.

        ``dev_packages`` is None when the selection was made without dev
        requirements; the record then carries ``packages-dev: null``.
        """

        def dump(selection: list[Package]) -> list[dict[str, Any]]:
            real = sorted((p for p in selection if not p.is_alias and not p.is_platform), key=lambda p: p.name)
            return [dump_package(p) for p in real]

        record: LockRecord = {
            "_readme": LOCK_README,
            "hash": self.content_hash,
            "packages": dump(packages),
            "packages-dev": dump(dev_packages) if dev_packages is not None else None,
            "aliases": [alias.to_dict() for alias in sorted(root.aliases, key=lambda a: a.package)],
            "minimum-stability": root.minimum_stability.label,
            "stability-flags": {
                name: int(flag) for name, flag in sorted(root.stability_flags.items())
            },
            "prefer-stable": root.prefer_stable,
            "platform": root.platform_requires(dev=False),
            "platform-dev": root.platform_requires(dev=True),
        }
        if root.platform_overrides:
            record["platform-overrides"] = dict(sorted(root.platform_overrides.items()))
        return record

    def set_lock_data(
        self,
        packages: list[Package],
        dev_packages: list[Package] | None,
        root: RootPackage,
    ) -> bool:
        """Persist the record for a selection; return whether the text changed."""
        text = dump_lock(self.build_lock_record(packages, dev_packages, root))
        if self.store.read_text() == text:
            _logging.debug("Lock file unchanged")
            return False
        self.store.write_text(text)
        self._data = None
        _logging.debug(f"Lock file written to {self.store!r}")
        return True


__all__ = [
    "InMemoryLockStore",
    "JsonLockFile",
    "LOCK_README",
    "LockRecord",
    "LockStore",
    "Locker",
    "compute_content_hash",
    "dump_lock",
]

"""Pytest fixtures and builders for lockwright tests."""

import asyncio

import pytest

from lockwright.config import validate_manifest
from lockwright.installer import InstallOptions, Installer, RecordingInstallationManager
from lockwright.locker import InMemoryLockStore, Locker, compute_content_hash
from lockwright.package import Package, load_package, load_root_package
from lockwright.repository import ArrayRepository, InstalledRepository


def make_package(name: str, version: str, **fields) -> Package:
    """Build a package from keyword fields named like the dict form.

    ``require_dev`` and friends map to ``require-dev``; ``ref`` sets the
    source reference.
    """
    data = {"name": name, "version": version}
    ref = fields.pop("ref", None)
    if ref is not None:
        data["source"] = {"type": "git", "url": f"https://example.org/{name}.git", "reference": ref}
    for key, value in fields.items():
        data[key.replace("_", "-")] = value
    return load_package(data)


def make_repository(*packages: Package, name: str = "test") -> ArrayRepository:
    return ArrayRepository(list(packages), name=name)


def make_manifest(**fields):
    """A validated manifest; keyword names use underscores for dashes."""
    return validate_manifest({key.replace("_", "-"): value for key, value in fields.items()})


class Project:
    """An in-memory project: manifest, repositories, installed state and lock."""

    def __init__(self, repositories, installed=None, lock=None, **manifest_fields):
        self.repositories = list(repositories)
        self.installed = InstalledRepository(list(installed or []))
        self.store = InMemoryLockStore(lock)
        self.set_manifest(**manifest_fields)

    def set_manifest(self, **fields) -> None:
        self.manifest = make_manifest(**fields)
        self.root = load_root_package(self.manifest)
        self.content_hash = compute_content_hash(self.manifest)

    def installer(self, token=None, fail_on=None, **options) -> Installer:
        self.manager = RecordingInstallationManager(self.installed, fail_on=fail_on)
        return Installer(
            self.root,
            self.repositories,
            Locker(self.store, self.content_hash),
            self.installed,
            self.manager,
            InstallOptions(**options),
            token,
        )

    def run(self, **options):
        return asyncio.run(self.installer(**options).run())

    def installed_versions(self) -> dict[str, str]:
        return {p.name: p.pretty_version for p in self.installed.packages() if not p.is_alias}


@pytest.fixture
def project_factory():
    """Create in-memory projects."""
    return Project

"""Scenario tests driven by ``fixtures/installer/*.test`` files.

Each file holds ``--SECTION--`` headers followed by their content:

* ``TEST``: one-line description
* ``COMPOSER``: the manifest; relative repository urls resolve next to
  the fixture, so ``{"type": "composer", "url": "x.packages.json"}``
  reads a sibling file
* ``LOCK``: optional lock record; a missing ``hash`` is filled in
* ``INSTALLED``: optional list of installed packages
* ``RUN``: the command line, e.g. ``update a/a --with-dependencies``
* ``EXPECT-LOCK``: optional lock record expected afterwards
* ``EXPECT-OUTPUT``: optional, the full command output, stderr included
* ``EXPECT-EXIT-CODE``: optional, defaults to 0
* ``EXPECT``: the operation trace, one operation per line
"""

import json
import re
import shlex
from pathlib import Path

import pytest
from click.testing import CliRunner

from lockwright.commands import cli
from lockwright.config import validate_manifest
from lockwright.installer import Installer, RecordingInstallationManager
from lockwright.locker import InMemoryLockStore, Locker, compute_content_hash
from lockwright.package import load_packages, load_root_package
from lockwright.repository import InstalledRepository, RepositoryManager

FIXTURES = Path(__file__).parent / "fixtures" / "installer"

SECTION = re.compile(r"^--([A-Z-]+)--[ \t]*$", re.MULTILINE)

REQUIRED = {"TEST", "COMPOSER", "RUN", "EXPECT"}


def read_fixture(path: Path) -> dict[str, str]:
    parts = SECTION.split(path.read_text(encoding="utf-8"))
    sections = {name: body.strip() for name, body in zip(parts[1::2], parts[2::2])}
    missing = REQUIRED - set(sections)
    if missing:
        raise ValueError(f"{path.name} is missing sections: {', '.join(sorted(missing))}")
    return sections


def comparable_lock(record: dict) -> dict:
    return {k: v for k, v in record.items() if k not in ("hash", "_readme")}


@pytest.mark.parametrize("path", sorted(FIXTURES.glob("*.test")), ids=lambda p: p.stem)
def test_installer_fixture(path: Path):
    sections = read_fixture(path)
    manifest = validate_manifest(json.loads(sections["COMPOSER"]))
    root = load_root_package(manifest)
    repositories = RepositoryManager(path.parent).create_repositories(manifest.repositories)
    content_hash = compute_content_hash(manifest)

    installed = InstalledRepository(
        load_packages(json.loads(sections["INSTALLED"])) if "INSTALLED" in sections else []
    )
    lock = None
    if "LOCK" in sections:
        lock = json.loads(sections["LOCK"])
        lock.setdefault("hash", content_hash)
    store = InMemoryLockStore(lock)

    def factory(manifest_path, options, token):
        return Installer(
            root,
            repositories,
            Locker(store, content_hash),
            installed,
            RecordingInstallationManager(installed),
            options,
            token,
        )

    result = CliRunner().invoke(cli, shlex.split(sections["RUN"]), obj={"installer_factory": factory})

    assert result.exit_code == int(sections.get("EXPECT-EXIT-CODE", "0")), result.output
    trace = [line[4:] for line in result.output.splitlines() if line.startswith("  - ")]
    assert trace == [line.strip() for line in sections["EXPECT"].splitlines() if line.strip()]

    if "EXPECT-OUTPUT" in sections:
        assert result.output.strip() == sections["EXPECT-OUTPUT"]

    if "EXPECT-LOCK" in sections:
        assert store.text is not None, "no lock was written"
        expected = json.loads(sections["EXPECT-LOCK"])
        assert comparable_lock(json.loads(store.text)) == comparable_lock(expected)

"""Repositories backed by JSON files on disk."""

import json
import logging
from pathlib import Path
from typing import Any

from lockwright.errors import InvalidPackageError, PoolConstructionError
from lockwright.package import Package, dump_package, load_packages, load_root_alias

from .base import InstalledRepository, Repository, RepositoryKind

_logging = logging.getLogger(__name__)


def _read_json(path: Path, label: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise PoolConstructionError(f"{label}: {path} not found", label) from None
    except json.JSONDecodeError as e:
        raise PoolConstructionError(
            f"{label}: {path} is not valid JSON (line {e.lineno}, col {e.colno}: {e.msg})",
            label,
        ) from e
    except OSError as e:
        raise PoolConstructionError(f"{label}: cannot read {path}: {e}", label) from e


class FileRepository(Repository):
    """A ``packages.json`` index read from disk on first use.

    The document is either a list of package objects, or an object with a
    ``packages`` key holding such a list or a ``{name: {version: data}}``
    mapping.
    """

    def __init__(self, path: Path, kind: RepositoryKind = RepositoryKind.LOCAL, name: str = ""):
        super().__init__(name or str(path))
        self.path = Path(path)
        self.kind = kind
        self._packages: list[Package] | None = None

    def packages(self) -> list[Package]:
        if self._packages is None:
            self._packages = self._load()
        return list(self._packages)

    def _load(self) -> list[Package]:
        data = _read_json(self.path, self.name)
        if isinstance(data, dict):
            if "packages" not in data:
                raise PoolConstructionError(
                    f"{self.name}: missing 'packages' key", self.name
                )
            data = data["packages"]
        try:
            packages = load_packages(data)
        except InvalidPackageError as e:
            raise PoolConstructionError(f"{self.name}: {e}", self.name) from e
        _logging.debug(f"Loaded {len(packages)} packages from {self.path}")
        return packages


class JsonInstalledRepository(InstalledRepository):
    """Installed state persisted as ``<vendor-dir>/installed.json``.

    Root aliases are stored explicitly; branch aliases are rebuilt from each
    package's ``extra.branch-alias`` when the file is read back.
    """

    def __init__(self, path: Path, name: str = "installed"):
        self.path = Path(path)
        packages = []
        if self.path.exists():
            data = _read_json(self.path, name)
            aliases = []
            if isinstance(data, dict):
                aliases = data.get("aliases") or []
                data = data.get("packages", [])
            try:
                packages = load_packages(data)
                packages += [load_root_alias(entry, packages) for entry in aliases]
            except InvalidPackageError as e:
                raise PoolConstructionError(f"{name}: {e}", name) from e
        super().__init__(packages, name)

    def write(self) -> None:
        real = sorted(
            (p for p in self.packages() if not p.is_alias), key=lambda p: p.name
        )
        root_aliases = sorted(
            (p for p in self.packages() if p.is_alias and p.root_alias),
            key=lambda p: (p.name, p.version.normalized),
        )
        document = {
            "packages": [dump_package(p) for p in real],
            "aliases": [
                {
                    "package": p.name,
                    "version": p.alias_of.version.normalized,
                    "alias": p.pretty_version,
                    "alias_normalized": p.version.normalized,
                }
                for p in root_aliases
            ],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(document, indent=4) + "\n", encoding="utf-8")
        _logging.debug(f"Wrote {len(real)} installed packages to {self.path}")


__all__ = [
    "FileRepository",
    "JsonInstalledRepository",
]

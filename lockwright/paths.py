"""Project file path helpers for lockwright."""

import os
from pathlib import Path

MANIFEST_FILENAME = "lockwright.json"
LOCK_FILENAME = "lockwright.lock"
INSTALLED_FILENAME = "installed.json"
DEFAULT_VENDOR_DIR = "vendor"


def get_manifest_path(explicit: str | os.PathLike | None = None) -> Path:
    """Return the path of the project manifest.

    Priority:
    1. ``explicit`` (the ``--manifest`` option), if given
    2. LOCKWRIGHT_MANIFEST environment variable (if set)
    3. ./lockwright.json
    """
    if explicit:
        return Path(explicit)
    if os.environ.get("LOCKWRIGHT_MANIFEST"):
        return Path(os.environ["LOCKWRIGHT_MANIFEST"])
    return Path.cwd() / MANIFEST_FILENAME


def get_lock_path(manifest_path: Path) -> Path:
    """Return the lock file path that belongs to ``manifest_path``.

    ``lockwright.json`` -> ``lockwright.lock``; any other manifest name keeps
    its stem (``app.yaml`` -> ``app.lock``).
    """
    return manifest_path.with_suffix(".lock")


def get_vendor_dir(manifest_path: Path, vendor_dir: str | None = None) -> Path:
    """Return the vendor directory, relative paths resolved against the manifest."""
    path = Path(vendor_dir or DEFAULT_VENDOR_DIR)
    if not path.is_absolute():
        path = manifest_path.parent / path
    return path


def get_installed_path(manifest_path: Path, vendor_dir: str | None = None) -> Path:
    return get_vendor_dir(manifest_path, vendor_dir) / INSTALLED_FILENAME


__all__ = [
    "DEFAULT_VENDOR_DIR",
    "INSTALLED_FILENAME",
    "LOCK_FILENAME",
    "MANIFEST_FILENAME",
    "get_installed_path",
    "get_lock_path",
    "get_manifest_path",
    "get_vendor_dir",
]

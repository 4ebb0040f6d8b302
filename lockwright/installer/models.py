"""Data models for the installation pipeline."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from lockwright.package import Package


class OperationType(Enum):
    INSTALL = "install"
    UPDATE = "update"
    UNINSTALL = "uninstall"
    MARK_ALIAS_INSTALLED = "markAliasInstalled"
    MARK_ALIAS_UNINSTALLED = "markAliasUninstalled"


class InstallerState(Enum):
    IDLE = "idle"
    POOL_BUILT = "pool-built"
    SOLVED = "solved"
    PLANNED = "planned"
    DRY_RUN_REPORTED = "dry-run-reported"
    EXECUTED = "executed"
    LOCK_PERSISTED = "lock-persisted"
    LOCK_SKIPPED = "lock-skipped"


_SHA1 = re.compile(r"^[0-9a-f]{40}$")


def full_pretty_version(package: Package) -> str:
    """Pretty version, plus the short source reference for dev versions."""
    reference = package.source_reference
    if not package.version.is_dev or not reference:
        return package.pretty_version
    if _SHA1.match(reference):
        reference = reference[:7]
    return f"{package.pretty_version} {reference}"


def _label(package: Package) -> str:
    return f"{package.pretty_name} ({full_pretty_version(package)})"


@dataclass(frozen=True)
class Operation:
    """One step of a transaction; ``from_package`` is set for updates only."""

    type: OperationType
    package: Package
    from_package: Package | None = None

    def __str__(self) -> str:
        if self.type is OperationType.INSTALL:
            return f"Installing {_label(self.package)}"
        if self.type is OperationType.UPDATE:
            return f"Updating {_label(self.from_package)} to {_label(self.package)}"
        if self.type is OperationType.UNINSTALL:
            return f"Uninstalling {_label(self.package)}"
        state = "installed" if self.type is OperationType.MARK_ALIAS_INSTALLED else "uninstalled"
        return (
            f"Marking {_label(self.package)} as {state}, "
            f"alias of {_label(self.package.alias_of)}"
        )


@dataclass
class InstallOptions:
    dev_mode: bool = True
    update: bool = False
    dry_run: bool = False
    update_whitelist: list[str] | None = None
    whitelist_dependencies: bool = False
    ignore_platform_reqs: bool = False


@dataclass
class StepResult:
    operation: Operation
    status: str
    output: str = ""


@dataclass
class InstallResult:
    """What one run did, or would do in dry-run mode."""

    state: InstallerState
    operations: list[Operation]
    packages: list[Package] = field(default_factory=list)
    lock_record: dict[str, Any] | None = None
    lock_changed: bool = False
    steps: list[StepResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def trace(self) -> list[str]:
        return [str(op) for op in self.operations]


__all__ = [
    "InstallOptions",
    "InstallResult",
    "InstallerState",
    "Operation",
    "OperationType",
    "StepResult",
    "full_pretty_version",
]

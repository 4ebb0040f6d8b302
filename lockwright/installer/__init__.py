"""Transaction planning, execution and the install/update pipeline."""

from .installation import InstallationManager, RecordingInstallationManager, apply_operations
from .models import (
    InstallerState,
    InstallOptions,
    InstallResult,
    Operation,
    OperationType,
    StepResult,
    full_pretty_version,
)
from .orchestrator import Installer
from .planning import plan_transaction

__all__ = [
    "InstallOptions",
    "InstallResult",
    "InstallationManager",
    "Installer",
    "InstallerState",
    "Operation",
    "OperationType",
    "RecordingInstallationManager",
    "StepResult",
    "apply_operations",
    "full_pretty_version",
    "plan_transaction",
]

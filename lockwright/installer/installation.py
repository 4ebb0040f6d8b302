"""Executing planned operations against an installation manager."""

import logging
from abc import ABC, abstractmethod

from lockwright.cancellation import CancellationToken
from lockwright.errors import ExecutionError
from lockwright.repository import InstalledRepository

from .models import Operation, OperationType, StepResult

_logging = logging.getLogger(__name__)


class InstallationManager(ABC):
    """Performs the physical side of operations.

    ``execute`` reports failure through ``StepResult.status == "failed"``
    rather than raising; ``apply_operations`` turns that into an
    ``ExecutionError`` and stops.
    """

    @abstractmethod
    async def execute(self, operation: Operation) -> StepResult:
        """Run one operation."""

    def finish(self) -> None:
        """Called once after the last operation ran, also after a failure."""


class RecordingInstallationManager(InstallationManager):
    """Applies operations to an installed repository and records a trace.

    Nothing touches the filesystem. ``fail_on`` names packages whose
    install, update or uninstall fails, for exercising error paths.
    """

    def __init__(self, installed: InstalledRepository, fail_on: set[str] | None = None):
        self.installed = installed
        self.fail_on = {name.lower() for name in fail_on or ()}
        self.trace: list[str] = []

    async def execute(self, operation: Operation) -> StepResult:
        package = operation.package
        if package.name in self.fail_on and operation.type in (
            OperationType.INSTALL,
            OperationType.UPDATE,
            OperationType.UNINSTALL,
        ):
            return StepResult(operation, "failed", f"{package.pretty_name} refused the operation")

        if operation.type is OperationType.UPDATE:
            self.installed.remove_package(operation.from_package)
            self.installed.add_package(package)
        elif operation.type in (OperationType.INSTALL, OperationType.MARK_ALIAS_INSTALLED):
            self.installed.add_package(package)
        else:
            self.installed.remove_package(package)
        self.trace.append(str(operation))
        return StepResult(operation, "success")

    def finish(self) -> None:
        self.installed.write()


async def apply_operations(
    operations: list[Operation],
    manager: InstallationManager,
    token: CancellationToken | None = None,
) -> list[StepResult]:
    """Run ``operations`` in order, stopping at the first failure.

    Already executed operations are not rolled back.

    Raises:
        ExecutionError: With the failed step and the ones that succeeded
        OperationCancelledError: If the token is cancelled between operations
    """
    token = token or CancellationToken()
    results: list[StepResult] = []
    try:
        for operation in operations:
            token.raise_if_cancelled("installation")
            _logging.debug(f"Executing: {operation}")
            result = await manager.execute(operation)
            if result.status != "success":
                raise ExecutionError(result.operation, [r.operation for r in results], result.output)
            results.append(result)
    finally:
        manager.finish()
    return results


__all__ = [
    "InstallationManager",
    "RecordingInstallationManager",
    "apply_operations",
]

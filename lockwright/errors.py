"""Error taxonomy and message formatting for lockwright.

Every failure the resolution core can report is a subclass of
``LockwrightError``. Each class carries the process exit code the CLI uses
for it, so callers can distinguish an unsatisfiable request from a stale lock
or a failed installation without parsing messages.

Error Style Guide:
- User-facing errors use 'Error: ' prefix
- Field errors use structured format: '<entity> field '<field>' <issue>'
- Use present tense: 'must be', 'is required'
- Include actionable hints where helpful
"""

from typing import Any


EXIT_CONFIG = 1
EXIT_UNSATISFIABLE = 2
EXIT_STALE_LOCK = 3
EXIT_PLANNER = 4
EXIT_EXECUTION = 5
EXIT_POOL = 6
EXIT_CANCELLED = 130


class LockwrightError(Exception):
    """Base class for every error raised by the resolver and installer."""

    exit_code = EXIT_CONFIG


class InvalidPackageError(LockwrightError, ValueError):
    """Raised when package data cannot be turned into a Package."""

    def __init__(self, message: str, data: Any = None):
        super().__init__(message)
        self.data = data


class PoolConstructionError(LockwrightError):
    """Raised when a repository hands back malformed data."""

    exit_code = EXIT_POOL

    def __init__(self, message: str, repository: str | None = None):
        super().__init__(message)
        self.repository = repository


class UnsatisfiableError(LockwrightError):
    """Raised when the solver proves the request cannot be satisfied.

    ``problems`` holds one ``Problem`` per independent failure; each problem
    renders the chain of rules that made it impossible.
    """

    exit_code = EXIT_UNSATISFIABLE

    def __init__(self, problems: list, pool=None):
        self.problems = problems
        self.pool = pool
        super().__init__(self.render())

    @property
    def package_names(self) -> list[str]:
        names: set[str] = set()
        for problem in self.problems:
            names.update(problem.package_names)
        return sorted(names)

    def render(self) -> str:
        lines = [
            "Your requirements could not be resolved to an installable set of packages."
        ]
        for i, problem in enumerate(self.problems, 1):
            lines.append("")
            lines.append(f"  Problem {i}")
            lines.extend(f"    - {line}" for line in problem.describe(self.pool))
        return "\n".join(lines)


class StaleLockError(LockwrightError):
    """Raised when the lock file cannot be trusted for an install."""

    exit_code = EXIT_STALE_LOCK


class CyclicDependencyError(LockwrightError):
    """Raised when install order cannot be computed because of a hard cycle."""

    exit_code = EXIT_PLANNER

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(
            "Circular dependency between packages: " + " -> ".join(cycle)
        )


class ExecutionError(LockwrightError):
    """Raised when the installation manager fails one operation.

    Operations that ran before the failure are listed in ``succeeded`` and are
    not rolled back.
    """

    exit_code = EXIT_EXECUTION

    def __init__(self, failed, succeeded: list, output: str = ""):
        self.failed = failed
        self.succeeded = succeeded
        self.output = output
        message = f"{failed} failed"
        if output:
            message += f": {output}"
        super().__init__(message)


class OperationCancelledError(LockwrightError):
    """Raised at a phase boundary after cancellation was requested."""

    exit_code = EXIT_CANCELLED


def format_error(message: str) -> str:
    """Format an error message with consistent prefix.

    Examples:
        >>> format_error("lock file not found")
        'Error: lock file not found'
    """
    return f"Error: {message}"


def format_field_error(entity: str, field: str, issue: str) -> str:
    """Format a field validation error with structured format.

    Examples:
        >>> format_field_error("Package 'a/a'", "version", "is required")
        "Package 'a/a' field 'version' is required"
    """
    return f"{entity} field '{field}' {issue}"


def format_suggestion(message: str, suggestion: str) -> str:
    """Format an error message with a helpful suggestion.

    Examples:
        >>> format_suggestion("lock file is stale", "run 'lockwright update'")
        "Error: lock file is stale. Hint: run 'lockwright update'"
    """
    return f"{format_error(message)}. Hint: {suggestion}"


__all__ = [
    "EXIT_CONFIG",
    "EXIT_UNSATISFIABLE",
    "EXIT_STALE_LOCK",
    "EXIT_PLANNER",
    "EXIT_EXECUTION",
    "EXIT_POOL",
    "EXIT_CANCELLED",
    "LockwrightError",
    "InvalidPackageError",
    "PoolConstructionError",
    "UnsatisfiableError",
    "StaleLockError",
    "CyclicDependencyError",
    "ExecutionError",
    "OperationCancelledError",
    "format_error",
    "format_field_error",
    "format_suggestion",
]

"""lockwright: dependency resolution and lock-file driven installation."""

import logging

from lockwright.config import ConfigError, Manifest, load_manifest
from lockwright.errors import (
    CyclicDependencyError,
    ExecutionError,
    LockwrightError,
    OperationCancelledError,
    PoolConstructionError,
    StaleLockError,
    UnsatisfiableError,
)

__version__ = "0.1.0"

_debug_enabled = False


def set_debug(enabled: bool):
    """Enable or disable debug mode globally."""
    global _debug_enabled
    _debug_enabled = enabled


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return _debug_enabled


def setup_logging(debug: bool = False) -> None:
    """Route lockwright's loggers to stderr; DEBUG when ``debug`` is set."""
    set_debug(debug)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
    )
    logging.getLogger("lockwright").setLevel(logging.DEBUG if debug else logging.WARNING)


__all__ = [
    "ConfigError",
    "CyclicDependencyError",
    "ExecutionError",
    "LockwrightError",
    "Manifest",
    "OperationCancelledError",
    "PoolConstructionError",
    "StaleLockError",
    "UnsatisfiableError",
    "__version__",
    "is_debug",
    "load_manifest",
    "set_debug",
    "setup_logging",
]

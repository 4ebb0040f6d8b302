"""Package sources: the Repository interface and its implementations."""

from .base import (
    ArrayRepository,
    CompositeRepository,
    InstalledRepository,
    LockedRepository,
    PlatformRepository,
    Repository,
    RepositoryKind,
)
from .filesystem import FileRepository, JsonInstalledRepository
from .manager import RepositoryManager

__all__ = [
    "ArrayRepository",
    "CompositeRepository",
    "FileRepository",
    "InstalledRepository",
    "JsonInstalledRepository",
    "LockedRepository",
    "PlatformRepository",
    "Repository",
    "RepositoryKind",
    "RepositoryManager",
]

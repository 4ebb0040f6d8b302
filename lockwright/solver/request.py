"""Jobs handed to the solver."""

from dataclasses import dataclass, field
from enum import Enum

from lockwright.constraints import Constraint
from lockwright.package import Package


class JobType(Enum):
    INSTALL = "install"
    UPDATE = "update"
    REMOVE = "remove"
    LOCK = "lock"


@dataclass(frozen=True)
class Job:
    """One solver request.

    ``install`` requires some candidate of ``name`` to be selected;
    ``update`` only widens the update scope to ``name``; ``remove`` forbids
    every matching candidate; ``lock`` pins exactly ``package``.
    """

    type: JobType
    name: str
    constraint: Constraint | None = field(default=None, compare=False)
    package: Package | None = None

    def __str__(self) -> str:
        text = f"{self.type.value} {self.name}"
        if self.package is not None:
            text += f" {self.package.pretty_version}"
        elif self.constraint is not None:
            text += f" {self.constraint}"
        return text


class Request:
    """An ordered collection of jobs."""

    def __init__(self) -> None:
        self.jobs: list[Job] = []

    def install(self, name: str, constraint: Constraint | None = None) -> None:
        self.jobs.append(Job(JobType.INSTALL, name.lower(), constraint))

    def update(self, name: str) -> None:
        self.jobs.append(Job(JobType.UPDATE, name.lower()))

    def remove(self, name: str, constraint: Constraint | None = None) -> None:
        self.jobs.append(Job(JobType.REMOVE, name.lower(), constraint))

    def lock(self, package: Package) -> None:
        self.jobs.append(Job(JobType.LOCK, package.name, package=package))

    @property
    def update_names(self) -> set[str]:
        return {job.name for job in self.jobs if job.type is JobType.UPDATE}

    @property
    def names(self) -> set[str]:
        return {job.name for job in self.jobs}

    def __iter__(self):
        return iter(self.jobs)

    def __len__(self) -> int:
        return len(self.jobs)


__all__ = ["Job", "JobType", "Request"]

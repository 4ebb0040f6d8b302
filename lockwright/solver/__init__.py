"""Dependency resolution: pool, rules, policy and the CDCL solver."""

from .generator import RuleSetGenerator
from .policy import DefaultPolicy
from .pool import Pool, PoolBuilder, build_pool
from .problems import Problem
from .request import Job, JobType, Request
from .rules import Rule, RuleReason, RuleSet
from .solver import Solver

__all__ = [
    "DefaultPolicy",
    "Job",
    "JobType",
    "Pool",
    "PoolBuilder",
    "Problem",
    "Request",
    "Rule",
    "RuleReason",
    "RuleSet",
    "RuleSetGenerator",
    "Solver",
    "build_pool",
]

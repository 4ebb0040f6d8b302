"""Tests for rule generation, policy and the CDCL solver."""

import pytest

from lockwright.cancellation import CancellationToken
from lockwright.constraints import parse_constraints
from lockwright.errors import OperationCancelledError, UnsatisfiableError
from lockwright.package import RootAlias
from lockwright.repository import InstalledRepository, LockedRepository
from lockwright.solver import (
    DefaultPolicy,
    Request,
    RuleReason,
    RuleSetGenerator,
    Solver,
    build_pool,
)
from lockwright.versions import Stability

from .conftest import make_package, make_repository


def solve(repositories, requires, policy_factory=None, **pool_options):
    request = Request()
    for name, constraint in requires.items():
        request.install(name, parse_constraints(constraint))
    pool = build_pool(repositories, list(requires), **pool_options)
    policy = policy_factory(pool) if policy_factory else None
    solver = Solver(pool, policy, pool_options.get("ignore_platform_reqs", False))
    return solver, solver.solve(request)


def versions(packages):
    return [(p.name, p.pretty_version) for p in packages if not p.is_alias]


class TestRuleSetGenerator:
    """Test translation of jobs and links into rules."""

    def test_rule_kinds(self):
        """Test that requires, conflicts and same-name rules are produced."""
        repo = make_repository(
            make_package("a/a", "1.0.0", require={"b/b": "^1.0"}, conflict={"c/c": "*"}),
            make_package("a/a", "2.0.0"),
            make_package("b/b", "1.0.0"),
            make_package("c/c", "1.0.0"),
        )
        pool = build_pool([repo], ["a/a", "c/c"])
        request = Request()
        request.install("a/a")
        rules = RuleSetGenerator(pool).generate(request)
        reasons = {rule.reason for rule in rules}
        assert RuleReason.JOB_INSTALL in reasons
        assert RuleReason.PACKAGE_REQUIRES in reasons
        assert RuleReason.PACKAGE_CONFLICT in reasons
        assert RuleReason.PACKAGE_SAME_NAME in reasons

    def test_duplicate_rules_are_merged(self):
        """Test that identical literal sets are only kept once."""
        repo = make_repository(make_package("a/a", "1.0.0"))
        pool = build_pool([repo], ["a/a"])
        request = Request()
        request.install("a/a")
        request.install("a/a", parse_constraints("^1.0"))
        assert len(RuleSetGenerator(pool).generate(request)) == 1

    def test_missing_package_gives_empty_rule(self):
        """Test that an unknown name yields an empty job rule."""
        pool = build_pool([make_repository()], ["nope/nope"])
        request = Request()
        request.install("nope/nope")
        rules = list(RuleSetGenerator(pool).generate(request))
        assert len(rules) == 1 and rules[0].is_empty


class TestSolver:
    """Test solutions for satisfiable requests."""

    def test_prefers_highest_version(self):
        """Test that the newest matching version is selected."""
        repo = make_repository(*(make_package("a/a", v) for v in ("1.0.0", "1.5.0", "2.0.0")))
        _, solution = solve([repo], {"a/a": "^1.0"})
        assert versions(solution) == [("a/a", "1.5.0")]

    def test_transitive(self):
        """Test that requirements of selected packages are selected too."""
        repo = make_repository(
            make_package("a/a", "1.0.0", require={"b/b": "^2.0"}),
            make_package("b/b", "1.0.0"),
            make_package("b/b", "2.1.0", require={"c/c": "*"}),
            make_package("c/c", "3.0.0"),
        )
        _, solution = solve([repo], {"a/a": "*"})
        assert versions(solution) == [("a/a", "1.0.0"), ("b/b", "2.1.0"), ("c/c", "3.0.0")]

    def test_backtracks_out_of_a_conflict(self):
        """Test that a conflicting first choice is undone by learning."""
        repo = make_repository(
            make_package("a/a", "2.0.0", require={"b/b": "^2.0"}),
            make_package("a/a", "1.0.0", require={"b/b": "^1.0"}),
            make_package("b/b", "2.0.0", conflict={"c/c": "*"}),
            make_package("b/b", "1.0.0"),
            make_package("c/c", "1.0.0"),
            make_package("c/c", "1.1.0"),
        )
        solver, solution = solve([repo], {"a/a": "*", "c/c": "*"})
        assert versions(solution) == [("a/a", "1.0.0"), ("b/b", "1.0.0"), ("c/c", "1.1.0")]
        assert solver.conflicts >= 1

    def test_solution_satisfies_every_requirement(self):
        """Test soundness on a wider graph."""
        packages = [
            make_package("app/core", "1.0.0", require={"lib/http": "^2.0", "lib/log": "^1.0"}),
            make_package("lib/http", "2.0.0", require={"lib/log": "^1.1"}),
            make_package("lib/http", "2.3.0", require={"lib/log": "^1.2", "lib/json": "*"}),
            make_package("lib/log", "1.0.0"),
            make_package("lib/log", "1.1.0"),
            make_package("lib/log", "1.2.0", conflict={"lib/json": "<1.5"}),
            make_package("lib/json", "1.4.0"),
        ]
        _, solution = solve([make_repository(*packages)], {"app/core": "*"})
        chosen = {p.name: p for p in solution}
        for package in solution:
            for link in package.requires:
                assert link.target in chosen
                assert link.constraint.matches(chosen[link.target].version)
            for link in package.conflicts:
                other = chosen.get(link.target)
                assert other is None or not link.constraint.matches(other.version)
        assert len({p.name for p in solution}) == len(solution)

    def test_replace(self):
        """Test that a replacing package satisfies and excludes the replaced name."""
        repo = make_repository(
            make_package("new/lib", "1.0.0", replace={"old/lib": "*"}),
            make_package("old/lib", "1.0.0"),
        )
        _, solution = solve([repo], {"new/lib": "*", "old/lib": "*"})
        assert versions(solution) == [("new/lib", "1.0.0")]

    def test_provide(self):
        """Test that a virtual requirement is met by a provider."""
        repo = make_repository(
            make_package("a/a", "1.0.0", require={"psr/log-implementation": "^1.0"}),
            make_package("impl/log", "1.0.0", provide={"psr/log-implementation": "1.0.0"}),
        )
        _, solution = solve([repo], {"a/a": "*"})
        assert versions(solution) == [("a/a", "1.0.0"), ("impl/log", "1.0.0")]

    def test_root_alias_is_selected_with_its_target(self):
        """Test that an alias satisfying a requirement drags in its target."""
        repo = make_repository(
            make_package("a/a", "dev-master"),
            make_package("b/b", "1.0.0", require={"a/a": "^1.0"}),
        )
        alias = RootAlias("a/a", "dev-master", "dev-master", "1.0.0", "1.0.0.0")
        _, solution = solve(
            [repo],
            {"a/a": "dev-master as 1.0.0", "b/b": "*"},
            stability_flags={"a/a": Stability.DEV},
            root_aliases=[alias],
        )
        assert [(p.name, p.pretty_version, p.is_alias) for p in solution] == [
            ("a/a", "dev-master", False),
            ("a/a", "1.0.0", True),
            ("b/b", "1.0.0", False),
        ]

    def test_ignored_platform_requirements(self):
        """Test that platform links are dropped with ignore_platform_reqs."""
        repo = make_repository(make_package("a/a", "1.0.0", require={"php": ">=8.0"}))
        _, solution = solve([repo], {"a/a": "*", "php": ">=8.0"}, ignore_platform_reqs=True)
        assert versions(solution) == [("a/a", "1.0.0")]

    def test_cancellation(self):
        """Test that a cancelled token aborts the search."""
        repo = make_repository(make_package("a/a", "1.0.0"), make_package("a/a", "2.0.0"))
        pool = build_pool([repo], ["a/a"])
        request = Request()
        request.install("a/a")
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelledError, match="dependency resolution"):
            Solver(pool, token=token).solve(request)


class TestPolicy:
    """Test candidate preference."""

    def setup_method(self):
        self.locked = make_package("a/a", "1.0.0")
        self.installed = make_package("a/a", "1.1.0")
        self.repositories = [
            LockedRepository([self.locked]),
            InstalledRepository([self.installed]),
            make_repository(make_package("a/a", "1.2.0"), make_package("a/a", "1.3.0-beta1")),
        ]

    def preferred(self, update_scope, **pool_options):
        def factory(pool):
            return DefaultPolicy(
                pool,
                installed={"a/a": self.installed},
                locked={"a/a": self.locked},
                update_scope=update_scope,
            )

        _, solution = solve(self.repositories, {"a/a": "*"}, factory, **pool_options)
        return solution[0].pretty_version

    def test_locked_beats_installed_outside_update_scope(self):
        """Test that the locked version wins for names not being updated."""
        assert self.preferred(update_scope=set()) == "1.0.0"

    def test_installed_beats_newer_outside_update_scope(self):
        """Test that without a lock entry the installed version wins."""
        self.repositories[0] = LockedRepository([])

        def factory(pool):
            return DefaultPolicy(pool, installed={"a/a": self.installed}, update_scope=set())

        _, solution = solve(self.repositories, {"a/a": "*"}, factory)
        assert solution[0].pretty_version == "1.1.0"

    def test_update_scope_frees_the_name(self):
        """Test that names in scope take the newest stable version."""
        assert self.preferred(update_scope={"a/a"}) == "1.2.0"
        assert self.preferred(update_scope=None) == "1.2.0"

    def test_stable_beats_newer_unstable(self):
        """Test that stability outranks version."""
        assert self.preferred(update_scope=None, minimum_stability=Stability.BETA) == "1.2.0"

    def test_literal_name_beats_provider(self):
        """Test that a package named as required beats one providing the name."""
        repo = make_repository(
            make_package("a/a", "1.0.0", require={"log/log": "*"}),
            make_package("log/log", "1.0.0"),
            make_package("zzz/log", "9.0.0", provide={"log/log": "1.0.0"}),
        )
        _, solution = solve([repo], {"a/a": "*"})
        assert versions(solution) == [("a/a", "1.0.0"), ("log/log", "1.0.0")]


class TestUnsatisfiable:
    """Test error reporting for impossible requests."""

    def test_unknown_package(self):
        """Test the message for a name no repository knows."""
        with pytest.raises(UnsatisfiableError) as exc_info:
            solve([make_repository()], {"nope/nope": "^1.0"})
        assert "could not be found in any version" in exc_info.value.render()
        assert exc_info.value.exit_code == 2

    def test_rejected_by_constraint(self):
        """Test the message when only other versions exist."""
        repo = make_repository(make_package("a/a", "1.0.0"))
        pool = build_pool([repo], ["a/a"])
        request = Request()
        request.install("a/a", parse_constraints("^2.0"))
        with pytest.raises(UnsatisfiableError) as exc_info:
            Solver(pool).solve(request)
        assert "rejected by your constraint" in exc_info.value.render()

    def test_conflict_names_both_sides(self):
        """Test that a conflict problem names the packages involved."""
        repo = make_repository(
            make_package("a/a", "1.0.0", conflict={"b/b": "<2.0"}),
            make_package("b/b", "1.0.0"),
        )
        with pytest.raises(UnsatisfiableError) as exc_info:
            solve([repo], {"a/a": "*", "b/b": "^1.0"})
        error = exc_info.value
        rendered = error.render()
        assert "Problem 1" in rendered
        assert "a/a (1.0.0) conflicts with b/b[1.0.0]" in rendered
        assert {"a/a", "b/b"} <= set(error.package_names)

    def test_requirement_chain(self):
        """Test that a failure deep in the graph reports the chain."""
        repo = make_repository(
            make_package("a/a", "1.0.0", require={"b/b": "^1.0"}),
            make_package("b/b", "1.0.0", require={"c/c": "^3.0"}),
            make_package("c/c", "2.0.0"),
        )
        with pytest.raises(UnsatisfiableError) as exc_info:
            solve([repo], {"a/a": "*"})
        rendered = exc_info.value.render()
        assert "b/b (1.0.0) requires c/c (^3.0) -> no matching package found." in rendered
        assert "Root manifest requires a/a" in rendered

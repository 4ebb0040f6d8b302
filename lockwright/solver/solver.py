"""Conflict-driven clause-learning search over the generated rules.

The search keeps an explicit trail of assigned literals split into decision
levels. Level 1 holds facts (unit rules and what they imply); every decision
opens a new level. Unit propagation uses two watched literals per rule. On a
conflict the first unique implication point is learned as a new rule and the
search jumps back to the second-highest level in that rule, so unrelated
decisions in between are undone without being retried one by one.
"""

import logging

from lockwright.cancellation import CancellationToken
from lockwright.errors import UnsatisfiableError
from lockwright.package import Package

from .generator import RuleSetGenerator
from .policy import DefaultPolicy
from .pool import Pool
from .problems import Problem
from .request import Request
from .rules import Rule, RuleReason

_logging = logging.getLogger(__name__)


class Solver:
    """Finds a set of packages satisfying every rule of a request.

    Args:
        pool: Candidate universe
        policy: Decides which candidate is tried first
        ignore_platform_reqs: Drop requirements on platform packages
        token: Checked before every decision
    """

    def __init__(
        self,
        pool: Pool,
        policy: DefaultPolicy | None = None,
        ignore_platform_reqs: bool = False,
        token: CancellationToken | None = None,
    ):
        self.pool = pool
        self.policy = policy or DefaultPolicy(pool)
        self.ignore_platform_reqs = ignore_platform_reqs
        self.token = token or CancellationToken()
        self.decisions = 0
        self.conflicts = 0

    def solve(self, request: Request) -> list[Package]:
        """Return the selected packages sorted by name.

        Raises:
            UnsatisfiableError: If no assignment satisfies the rules
            OperationCancelledError: If the token is cancelled mid-search
        """
        rules = RuleSetGenerator(self.pool, self.ignore_platform_reqs).generate(request)

        empty = [rule for rule in rules if rule.is_empty]
        if empty:
            raise UnsatisfiableError([Problem([rule]) for rule in empty], self.pool)

        self._reset(list(rules))

        conflict = self._assert_units()
        if conflict is None:
            conflict = self._propagate()
        if conflict is not None:
            raise self._unsolvable(conflict)

        while True:
            self.token.raise_if_cancelled("dependency resolution")
            literal = self._next_decision()
            if literal is None:
                break

            self.decisions += 1
            self._level_now += 1
            self._trail_lim.append(len(self._trail))
            _logging.debug(
                f"Decision {self.decisions} at level {self._level_now}: "
                f"{self.pool.literal_to_string(literal)}"
            )
            self._assign(literal, None)

            while True:
                conflict = self._propagate()
                if conflict is None:
                    break
                self.conflicts += 1
                if self._level_now == 1:
                    raise self._unsolvable(conflict)
                learned, level, why = self._analyze(conflict)
                _logging.debug(
                    f"Conflict in {self._all[conflict]}, learned {learned}, "
                    f"jumping from level {self._level_now} to {level}"
                )
                self._backjump(level)
                rule = self._learn(learned, why)
                self._assign(learned[0], rule.index)

        selected = [
            self.pool.package_by_id(var) for var, value in self._value.items() if value
        ]
        _logging.debug(
            f"Solved with {self.decisions} decisions and {self.conflicts} conflicts: "
            f"{len(selected)} packages selected"
        )
        return sorted(selected, key=lambda p: (p.name, p.is_alias, p.version))

    def _reset(self, rules: list[Rule]) -> None:
        self._rules = rules
        self._all: list[Rule] = list(rules)
        self._clauses: list[list[int]] = [list(rule.literals) for rule in rules]
        self._watches: dict[int, list[int]] = {}
        self._value: dict[int, bool] = {}
        self._level: dict[int, int] = {}
        self._reason: dict[int, int | None] = {}
        self._trail: list[int] = []
        self._trail_lim: list[int] = []
        self._propagated = 0
        self._level_now = 1
        for index, clause in enumerate(self._clauses):
            if len(clause) >= 2:
                self._watch(index)

    def _watch(self, index: int) -> None:
        clause = self._clauses[index]
        self._watches.setdefault(clause[0], []).append(index)
        self._watches.setdefault(clause[1], []).append(index)

    def _lit_value(self, literal: int) -> bool | None:
        value = self._value.get(abs(literal))
        if value is None:
            return None
        return value if literal > 0 else not value

    def _assign(self, literal: int, reason: int | None) -> None:
        var = abs(literal)
        self._value[var] = literal > 0
        self._level[var] = self._level_now
        self._reason[var] = reason
        self._trail.append(literal)

    def _assert_units(self) -> int | None:
        for rule in self._rules:
            if not rule.is_assertion:
                continue
            literal = rule.literals[0]
            value = self._lit_value(literal)
            if value is None:
                self._assign(literal, rule.index)
            elif value is False:
                return rule.index
        return None

    def _propagate(self) -> int | None:
        """Propagate unit implications; return the index of a violated rule."""
        while self._propagated < len(self._trail):
            false_literal = -self._trail[self._propagated]
            self._propagated += 1

            watchers = self._watches.get(false_literal, [])
            kept: list[int] = []
            for position, index in enumerate(watchers):
                clause = self._clauses[index]
                if clause[0] == false_literal:
                    clause[0], clause[1] = clause[1], clause[0]
                other = clause[0]
                if self._lit_value(other) is True:
                    kept.append(index)
                    continue

                for j in range(2, len(clause)):
                    if self._lit_value(clause[j]) is not False:
                        clause[1], clause[j] = clause[j], clause[1]
                        self._watches.setdefault(clause[1], []).append(index)
                        break
                else:
                    kept.append(index)
                    if self._lit_value(other) is False:
                        kept.extend(watchers[position + 1:])
                        self._watches[false_literal] = kept
                        return index
                    self._assign(other, index)

            self._watches[false_literal] = kept
        return None

    def _next_decision(self) -> int | None:
        """Pick a literal for the first rule that only a positive choice can satisfy.

        Rules with an undecided negative literal are left alone: leaving the
        rest of the pool unselected satisfies them.
        """
        for rule in self._rules:
            if rule.is_assertion:
                continue
            undecided = []
            done = False
            for literal in rule.literals:
                value = self._lit_value(literal)
                if value is True or (value is None and literal < 0):
                    done = True
                    break
                if value is None:
                    undecided.append(literal)
            if done or not undecided:
                continue
            preferred = self.policy.select_preferred(undecided, self._required_name(rule))
            return preferred[0]
        return None

    @staticmethod
    def _required_name(rule: Rule) -> str | None:
        if rule.reason is RuleReason.JOB_INSTALL:
            return rule.reason_data.name
        if rule.reason is RuleReason.PACKAGE_REQUIRES:
            return rule.reason_data.target
        return None

    def _analyze(self, conflict: int) -> tuple[list[int], int, frozenset[int]]:
        """First-UIP analysis of a conflict at the current level."""
        seen: set[int] = set()
        tail: list[int] = []
        why = {conflict}
        counter = 0
        clause = self._clauses[conflict]
        index = len(self._trail) - 1

        while True:
            for literal in clause:
                var = abs(literal)
                if var in seen:
                    continue
                seen.add(var)
                level = self._level[var]
                if level == self._level_now:
                    counter += 1
                elif level > 1:
                    tail.append(literal)
                elif self._reason[var] is not None:
                    why.add(self._reason[var])

            while abs(self._trail[index]) not in seen:
                index -= 1
            literal = self._trail[index]
            index -= 1
            counter -= 1
            if counter == 0:
                break
            reason = self._reason[abs(literal)]
            why.add(reason)
            clause = self._clauses[reason]

        learned = [-literal] + tail
        level = max((self._level[abs(lit)] for lit in tail), default=1)
        return learned, level, frozenset(why)

    def _backjump(self, level: int) -> None:
        start = self._trail_lim[level - 1]
        for literal in self._trail[start:]:
            var = abs(literal)
            del self._value[var]
            del self._level[var]
            del self._reason[var]
        del self._trail[start:]
        del self._trail_lim[level - 1:]
        self._level_now = level
        self._propagated = len(self._trail)

    def _learn(self, learned: list[int], why: frozenset[int]) -> Rule:
        rule = Rule(tuple(learned), RuleReason.LEARNED, why=why, index=len(self._all))
        clause = list(learned)
        self._all.append(rule)
        self._clauses.append(clause)
        if len(clause) >= 2:
            # second watch on the literal assigned last
            highest = max(range(1, len(clause)), key=lambda k: self._level[abs(clause[k])])
            clause[1], clause[highest] = clause[highest], clause[1]
            self._watch(rule.index)
        return rule

    def _unsolvable(self, conflict: int) -> UnsatisfiableError:
        implicated: set[int] = set()
        visited: set[int] = set()
        stack = [conflict]
        while stack:
            index = stack.pop()
            if index in visited:
                continue
            visited.add(index)
            rule = self._all[index]
            if rule.reason is RuleReason.LEARNED:
                stack.extend(rule.why)
            else:
                implicated.add(index)
            for literal in rule.literals:
                reason = self._reason.get(abs(literal))
                if reason is not None:
                    stack.append(reason)

        problem = Problem([self._all[i] for i in sorted(implicated)])
        _logging.debug(f"Unsolvable: {problem}")
        return UnsatisfiableError([problem], self.pool)


__all__ = ["Solver"]

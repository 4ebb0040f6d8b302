"""Explanations for unsatisfiable requests."""

from .rules import Rule


class Problem:
    """The rules that together make one part of a request impossible."""

    def __init__(self, rules: list[Rule]):
        # job rules read best first, then the chain in generation order
        self.rules = sorted(rules, key=lambda r: (not r.reason.is_job, r.index))

    @property
    def package_names(self) -> set[str]:
        names: set[str] = set()
        for rule in self.rules:
            names.update(rule.package_names)
        return names

    def describe(self, pool) -> list[str]:
        lines = []
        for rule in self.rules:
            line = rule.describe(pool) if pool is not None else str(rule)
            if line not in lines:
                lines.append(line)
        return lines

    def __repr__(self) -> str:
        return f"<Problem {', '.join(str(r) for r in self.rules)}>"


__all__ = ["Problem"]

"""
Rule: a single stateful predicate bound to one entity.

Two states, untriggered (initial) and triggered. Every ``check_rule`` call
moves between them based solely on the predicate's result; nothing beyond
the last call is remembered except the message text (see RuleResult).
"""

from typing import Callable, Optional

from placement_kernel.models.entity import MapEntity
from placement_kernel.models.rule import RuleReport, RuleResult, Severity

Predicate = Callable[[MapEntity], RuleResult]


class Rule:
    """
    A placement rule with severity, trigger state and messages.

    The observable ``severity`` is 0 while untriggered so a consumer can sum
    or max severities over a rule set without special cases.
    """

    def __init__(
        self,
        severity: int,
        short_message: str,
        message: str,
        predicate: Predicate,
        name: Optional[str] = None,
    ):
        if severity not in (0, 1, 2, 3):
            raise ValueError(f"Severity must be 0-3, got {severity}")
        self._severity = Severity(severity)
        self._triggered = False
        self._predicate = predicate

        self.name = name or getattr(predicate, "__name__", "rule")
        self.short_message = short_message
        self.message = message

    @property
    def severity(self) -> int:
        return int(self._severity) if self._triggered else 0

    @property
    def triggered(self) -> bool:
        return self._triggered

    def check_rule(self, entity: MapEntity) -> None:
        """Run the predicate against the entity. Predicate errors propagate."""
        result = self._predicate(entity)
        self._triggered = result.triggered
        if result.short_message:
            self.short_message = result.short_message
        if result.message:
            self.message = result.message

    def report(self) -> RuleReport:
        return RuleReport(
            name=self.name,
            triggered=self._triggered,
            severity=self.severity,
            short_message=self.short_message,
            message=self.message,
        )

    def __repr__(self) -> str:
        return f"Rule({self.name!r}, severity={self.severity}, triggered={self._triggered})"

"""
Rule Evaluator: runs an entity's rule set and aggregates the outcome.

Behavioral Contract:
- Rules run in list order, each exactly once per evaluation
- The report severity is the maximum observable severity (0 if nothing triggered)
- A failing predicate aborts the evaluation and propagates unchanged
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from placement_kernel.models.entity import MapEntity
from placement_kernel.models.rule import EntityReport
from placement_kernel.rules.rule import Rule

logger = logging.getLogger(__name__)


class RuleEvaluator:
    """Evaluates rule sets against entities."""

    def evaluate(
        self,
        entity: MapEntity,
        rules: List[Rule],
        current_time: Optional[datetime] = None,
    ) -> EntityReport:
        if current_time is None:
            current_time = datetime.now(timezone.utc)

        for rule in rules:
            rule.check_rule(entity)

        reports = [rule.report() for rule in rules]
        triggered = [r.name for r in reports if r.triggered]
        severity = max((r.severity for r in reports), default=0)

        if triggered:
            logger.debug(
                "Entity %s triggered %s (severity %d)", entity.id, triggered, severity
            )

        return EntityReport(
            entity_id=entity.id,
            severity=severity,
            rules=reports,
            triggered=triggered,
            evaluated_at=current_time,
        )

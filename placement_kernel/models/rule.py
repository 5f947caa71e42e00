"""Rule evaluation results and per-entity reports."""

from datetime import datetime
from enum import IntEnum
from typing import List, Optional

from pydantic import BaseModel


class Severity(IntEnum):
    """How serious a triggered rule is. NONE always means "not triggered"."""
    NONE = 0
    INFO = 1
    WARNING = 2
    CRITICAL = 3


class RuleResult(BaseModel):
    """
    Outcome of a single predicate call.

    ``short_message`` / ``message`` left as None mean "keep whatever the rule
    currently shows". Rules that only flip ``triggered`` therefore keep their
    constructor text, while rules that compute text overwrite it. A value
    written once stays until another result replaces it, even across
    untriggered evaluations.
    """

    triggered: bool
    short_message: Optional[str] = None
    message: Optional[str] = None


class RuleReport(BaseModel):
    """Snapshot of a rule's observable state after evaluation."""

    name: str
    triggered: bool
    severity: int
    short_message: str
    message: str


class EntityReport(BaseModel):
    """Result of running an entity's full rule set."""

    entity_id: int
    severity: int = 0                       # Max over all rules
    rules: List[RuleReport] = []
    triggered: List[str] = []               # Names of triggered rules
    evaluated_at: datetime

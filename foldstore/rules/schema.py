from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

Operator = Literal["eq", "neq", "lt", "lte", "gt", "gte", "includes", "not_includes", "exists", "missing"]
Channel = Literal["log", "webhook", "storage"]
Severity = Literal["info", "warn", "critical"]

OPERATORS: tuple[str, ...] = ("eq", "neq", "lt", "lte", "gt", "gte", "includes", "not_includes", "exists", "missing")
CHANNELS: tuple[str, ...] = ("log", "webhook", "storage")
SEVERITIES: tuple[str, ...] = ("info", "warn", "critical")


@dataclass(frozen=True)
class RuleCondition:
    path: str
    op: Operator
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"path": self.path, "op": self.op}
        if self.op not in ("exists", "missing") or self.value is not None:
            out["value"] = self.value
        return out


@dataclass(frozen=True)
class RuleAction:
    type: Literal["alert"] = "alert"
    channel: Channel = "log"
    target: str | None = None
    severity: Severity = "info"


@dataclass(frozen=True)
class RuleDefinition:
    id: str
    match_entity: str
    conditions: list[RuleCondition] = field(default_factory=list)
    action: RuleAction = field(default_factory=RuleAction)
    description: str | None = None
    env: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class EvaluationResult:
    rule: RuleDefinition
    passed: bool
    matched: list[RuleCondition] = field(default_factory=list)
    failed: list[RuleCondition] = field(default_factory=list)


@dataclass(frozen=True)
class AlertRecord:
    id: str
    rule_id: str
    entity_id: str
    entity: str
    env: str
    evaluated_at: str
    snapshot_ptr: str
    severity: Severity
    rule_description: str | None = None
    matched_conditions: list[RuleCondition] = field(default_factory=list)
    failed_conditions: list[RuleCondition] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        details: dict[str, Any] = {
            "matched_conditions": [c.to_dict() for c in self.matched_conditions],
            "failed_conditions": [c.to_dict() for c in self.failed_conditions],
        }
        if self.rule_description is not None:
            details["rule_description"] = self.rule_description
        out = asdict(self)
        for key in ("rule_description", "matched_conditions", "failed_conditions"):
            out.pop(key)
        out["details"] = details
        return out

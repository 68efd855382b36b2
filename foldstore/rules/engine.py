from __future__ import annotations

from typing import Any, Callable

import httpx
from loguru import logger

from ..envelope import Document
from ..errors import ObjectNotFound, PreconditionFailed, StoreUnavailable
from ..outcome import StageOutcome
from ..paths import alert_path, parse_snapshot_path, snapshot_path
from ..storage import ObjectStore, Preconditions, read_json, write_json
from ..ulid import derived_ulid
from ..util import now_rfc3339, parse_timestamp
from .dispatch import AlertDispatcher
from .load import load_rules
from .schema import AlertRecord, EvaluationResult, RuleCondition, RuleDefinition

STAGE = "rules-engine"


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def get_value(doc: Any, path: str) -> Any:
    """
    Resolve a dot path. Any non-container along the way yields MISSING.

    Numeric segments index into lists.
    """
    if not path:
        return MISSING
    current = doc
    for key in path.split("."):
        if isinstance(current, dict):
            current = current.get(key, MISSING)
        elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            return MISSING
        if current is MISSING:
            return MISSING
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _same(a: Any, b: Any) -> bool:
    """Equality without cross-type coercion (``1 != True``, ``1 != "1"``)."""
    if a is MISSING or b is MISSING:
        return a is b
    if _is_number(a) and _is_number(b):
        return a == b
    return type(a) is type(b) and a == b


def _includes(value: Any, expected: Any) -> bool:
    if isinstance(value, list):
        return any(_same(item, expected) for item in value)
    if isinstance(value, str) and isinstance(expected, str):
        return expected in value
    return False


def _compare(op: str, value: Any, expected: Any) -> bool:
    if not (_is_number(value) and _is_number(expected)):
        return False
    if op == "lt":
        return value < expected
    if op == "lte":
        return value <= expected
    if op == "gt":
        return value > expected
    return value >= expected


def evaluate_condition(condition: RuleCondition, doc: Any) -> bool:
    value = get_value(doc, condition.path)
    op = condition.op
    if op == "eq":
        return _same(value, condition.value)
    if op == "neq":
        return not _same(value, condition.value)
    if op in ("lt", "lte", "gt", "gte"):
        return _compare(op, value, condition.value)
    if op == "includes":
        return _includes(value, condition.value)
    if op == "not_includes":
        return not _includes(value, condition.value)
    if op == "exists":
        return value is not MISSING and value is not None
    if op == "missing":
        return value is MISSING or value is None
    return False


def evaluate_rule(rule: RuleDefinition, snapshot: Any) -> EvaluationResult:
    """
    Evaluate every condition of `rule` against `snapshot`.

    A rule passes only when the snapshot's entity kind is the rule's target
    and all conditions hold.
    """
    if not isinstance(snapshot, dict) or snapshot.get("entity") != rule.match_entity:
        return EvaluationResult(rule=rule, passed=False, failed=list(rule.conditions))

    matched: list[RuleCondition] = []
    failed: list[RuleCondition] = []
    for condition in rule.conditions:
        (matched if evaluate_condition(condition, snapshot) else failed).append(condition)
    return EvaluationResult(rule=rule, passed=not failed, matched=matched, failed=failed)


def alert_id_for(rule: RuleDefinition, snapshot: Document) -> str:
    """
    Deterministic alert id for one (rule version, snapshot version) pair.

    A redelivered notification produces the same id and hence the same
    alert name.
    """
    updated = parse_timestamp(snapshot["updated_at"])
    key = "|".join([rule.id, rule.updated_at or "", str(snapshot["id"]), str(snapshot["updated_at"])])
    return derived_ulid(int(updated.timestamp() * 1000), key)


def build_alert(
    rule: RuleDefinition,
    snapshot: Document,
    result: EvaluationResult,
    *,
    evaluated_at: str | None = None,
) -> AlertRecord:
    return AlertRecord(
        id=alert_id_for(rule, snapshot),
        rule_id=rule.id,
        entity_id=snapshot["id"],
        entity=snapshot["entity"],
        env=snapshot["env"],
        evaluated_at=evaluated_at or now_rfc3339(),
        snapshot_ptr=snapshot_path(snapshot["env"], snapshot["entity"], snapshot["id"]),
        severity=rule.action.severity,
        rule_description=rule.description,
        matched_conditions=list(result.matched),
        failed_conditions=list(result.failed),
    )


class RulesEngine:
    """Pipeline stage: evaluate the environment's rules against a committed snapshot."""

    def __init__(
        self,
        store: ObjectStore,
        dispatcher: AlertDispatcher,
        *,
        rules_loader: Callable[[ObjectStore, str], list[RuleDefinition]] = load_rules,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.rules_loader = rules_loader

    def handle(self, name: str) -> StageOutcome:
        log = logger.bind(stage=STAGE, object=name)

        ref = parse_snapshot_path(name)
        if ref is None:
            return StageOutcome.skip(STAGE, name, "not_snapshot")

        try:
            snapshot = read_json(self.store, name)
        except (ObjectNotFound, StoreUnavailable) as e:
            log.bind(error=str(e)).error("snapshot read failed")
            return StageOutcome.skip(STAGE, name, "read_failed", error=str(e))
        except ValueError as e:
            return StageOutcome.skip(STAGE, name, "invalid_envelope", error=str(e))

        if not isinstance(snapshot, dict) or snapshot.get("env") != ref.env:
            log.warning("snapshot env does not match its path")
            return StageOutcome.skip(STAGE, name, "env_mismatch")
        try:
            parse_timestamp(snapshot.get("updated_at"))
        except ValueError as e:
            return StageOutcome.skip(STAGE, name, "invalid_envelope", error=str(e))

        try:
            rules = self.rules_loader(self.store, ref.env)
        except StoreUnavailable as e:
            log.bind(error=str(e)).error("rule listing failed")
            return StageOutcome.skip(STAGE, name, "read_failed", error=str(e))
        if not rules:
            return StageOutcome.skip(STAGE, name, "no_rules")

        return self.evaluate(snapshot, rules, name=name)

    def evaluate(self, snapshot: Document, rules: list[RuleDefinition], *, name: str) -> StageOutcome:
        log = logger.bind(stage=STAGE, object=name)
        triggered: list[dict[str, str]] = []
        duplicates: list[str] = []

        for rule in rules:
            if rule.env and rule.env != snapshot.get("env"):
                continue
            result = evaluate_rule(rule, snapshot)
            if not result.passed:
                continue

            alert = build_alert(rule, snapshot, result)
            path = alert_path(alert.env, alert.rule_id, alert.entity_id, alert.id)
            try:
                write_json(self.store, path, alert.to_dict(), preconditions=Preconditions.absent())
            except PreconditionFailed:
                # Already raised for this snapshot version; do not notify twice.
                duplicates.append(path)
                continue
            except StoreUnavailable as e:
                log.bind(error=str(e), ruleId=rule.id).error("alert write failed")
                return StageOutcome.skip(STAGE, name, "write_failed", error=str(e))

            try:
                self.dispatcher.dispatch(alert, rule)
            except (ValueError, httpx.HTTPError) as e:
                log.bind(ruleId=rule.id, error=str(e)).error("alert dispatch failed")
            except Exception as e:
                # The alert is already persisted.
                log.bind(ruleId=rule.id, error=repr(e)).exception("alert dispatch crashed")
            triggered.append({"ruleId": rule.id, "alertPath": path})

        if not triggered:
            reason = "duplicate" if duplicates else "no_triggers"
            return StageOutcome.skip(STAGE, name, reason, duplicates=duplicates)  # type: ignore[arg-type]
        log.bind(triggered=len(triggered)).info("rules triggered")
        return StageOutcome.done(STAGE, name, triggered=triggered, duplicates=duplicates)

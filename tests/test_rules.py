"""Tests for rule loading, evaluation, alert persistence and dispatch."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from foldstore.errors import RuleDefinitionError
from foldstore.paths import alert_path, snapshot_path
from foldstore.rules import (
    AlertDispatcher,
    RuleCondition,
    RulesEngine,
    build_alert,
    evaluate_condition,
    evaluate_rule,
    get_value,
    load_rules,
    load_rules_file,
    rule_from_dict,
)
from foldstore.rules.engine import MISSING, alert_id_for
from foldstore.secrets import EnvSecretsProvider, SecretManagerProvider
from foldstore.storage import read_json, write_json

LOW_MRR = {
    "id": "low-mrr",
    "description": "MRR under 1k for an active venture",
    "match": {
        "entity": "venture",
        "conditions": [
            {"path": "metrics.mrr", "op": "lt", "value": 1000},
            {"path": "status", "op": "eq", "value": "active"},
        ],
    },
    "action": {"type": "alert", "channel": "log", "severity": "warn"},
}


class RecordingDispatcher:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def dispatch(self, alert, rule) -> str:
        self.sent.append((alert.id, rule.id))
        return rule.action.channel


# -----------------------------------------------------------------------------
# Definitions
# -----------------------------------------------------------------------------


def test_rule_from_dict() -> None:
    rule = rule_from_dict(LOW_MRR)
    assert rule.id == "low-mrr"
    assert rule.match_entity == "venture"
    assert rule.conditions[0] == RuleCondition(path="metrics.mrr", op="lt", value=1000)
    assert rule.action.severity == "warn"
    assert rule.action.channel == "log"


@pytest.mark.parametrize(
    "patch, message",
    [
        ({"id": ""}, "id is required"),
        ({"match": {"entity": "spaceship"}}, "unknown match.entity"),
        ({"match": {"entity": "venture", "conditions": [{"path": "x", "op": "like"}]}}, "unknown operator"),
        ({"action": {"channel": "sms"}}, "unknown channel"),
        ({"action": {"type": "email"}}, "unsupported action type"),
    ],
)
def test_invalid_rules(patch, message) -> None:
    with pytest.raises(RuleDefinitionError, match=message):
        rule_from_dict({**LOW_MRR, **patch})


def test_load_rules_file_toml(tmp_path: Path) -> None:
    path = tmp_path / "rules.toml"
    path.write_text(
        """
[[rules]]
id = "stalled"

[rules.match]
entity = "idea"
conditions = [{ path = "stage", op = "eq", value = "validation" }]

[rules.action]
channel = "storage"
""",
        encoding="utf-8",
    )
    rules = load_rules_file(path)
    assert [r.id for r in rules] == ["stalled"]
    assert rules[0].action.channel == "storage"


def test_load_rules_file_json_shapes(tmp_path: Path) -> None:
    single = tmp_path / "one.json"
    single.write_text(json.dumps(LOW_MRR), encoding="utf-8")
    wrapped = tmp_path / "many.json"
    wrapped.write_text(json.dumps({"rules": [LOW_MRR, {**LOW_MRR, "id": "other"}]}), encoding="utf-8")

    assert [r.id for r in load_rules_file(single)] == ["low-mrr"]
    assert [r.id for r in load_rules_file(wrapped)] == ["low-mrr", "other"]


def test_load_rules_from_snapshots(store) -> None:
    write_json(store, snapshot_path("dev", "rule", "low-mrr"), LOW_MRR)
    write_json(store, snapshot_path("dev", "rule", "broken"), {"id": "broken"})
    store.write(snapshot_path("dev", "rule", "garbage"), b"{nope")

    assert [r.id for r in load_rules(store, "dev")] == ["low-mrr"]
    assert load_rules(store, "prod") == []


# -----------------------------------------------------------------------------
# Evaluation
# -----------------------------------------------------------------------------


def test_get_value() -> None:
    doc = {"metrics": {"mrr": 5}, "milestones": [{"title": "launch"}]}
    assert get_value(doc, "metrics.mrr") == 5
    assert get_value(doc, "milestones.0.title") == "launch"
    assert get_value(doc, "milestones.3.title") is MISSING
    assert get_value(doc, "metrics.mrr.value") is MISSING


@pytest.mark.parametrize(
    "op, value, doc, expected",
    [
        ("eq", 1, {"x": 1}, True),
        ("eq", 1, {"x": True}, False),
        ("eq", "1", {"x": 1}, False),
        ("eq", 1, {"x": 1.0}, True),
        ("neq", "a", {"x": "b"}, True),
        ("lt", 10, {"x": 3}, True),
        ("lt", 10, {"x": "3"}, False),
        ("gte", 3, {"x": 3}, True),
        ("gt", 3, {}, False),
        ("includes", "ai", {"x": ["ai", "b2b"]}, True),
        ("includes", "fin", {"x": "fintech"}, True),
        ("not_includes", "ai", {"x": ["b2b"]}, True),
        ("exists", None, {"x": 0}, True),
        ("exists", None, {"x": None}, False),
        ("missing", None, {}, True),
    ],
)
def test_evaluate_condition(op, value, doc, expected) -> None:
    assert evaluate_condition(RuleCondition(path="x", op=op, value=value), doc) is expected


def test_rule_requires_matching_entity(make_doc) -> None:
    rule = rule_from_dict(LOW_MRR)
    idea = make_doc(entity="idea", status="active", metrics={"mrr": 1})
    result = evaluate_rule(rule, idea)
    assert not result.passed
    assert result.failed == rule.conditions


def test_alert_ids_are_stable(make_doc) -> None:
    rule = rule_from_dict(LOW_MRR)
    snapshot = make_doc(status="active", metrics={"mrr": 500})
    assert alert_id_for(rule, snapshot) == alert_id_for(rule, dict(snapshot))
    assert alert_id_for(rule, snapshot) != alert_id_for(rule, {**snapshot, "updated_at": "2026-02-01T00:00:00Z"})


def test_alert_record_shape(make_doc) -> None:
    rule = rule_from_dict(LOW_MRR)
    snapshot = make_doc(status="active", metrics={"mrr": 500})
    alert = build_alert(rule, snapshot, evaluate_rule(rule, snapshot), evaluated_at="2026-01-10T12:00:01.000Z")

    doc = alert.to_dict()
    assert doc["rule_id"] == "low-mrr"
    assert doc["entity_id"] == "v1"
    assert doc["snapshot_ptr"] == "env/dev/snapshots/ventures/v1.json"
    assert doc["severity"] == "warn"
    assert doc["details"]["rule_description"] == LOW_MRR["description"]
    assert len(doc["details"]["matched_conditions"]) == 2
    assert doc["details"]["failed_conditions"] == []


# -----------------------------------------------------------------------------
# Engine stage
# -----------------------------------------------------------------------------


def _snapshot(store, doc) -> str:
    name = snapshot_path(doc["env"], doc["entity"], doc["id"])
    write_json(store, name, doc)
    return name


def test_low_mrr_alert(store, make_doc) -> None:
    write_json(store, snapshot_path("dev", "rule", "low-mrr"), LOW_MRR)
    dispatcher = RecordingDispatcher()
    engine = RulesEngine(store, dispatcher)
    name = _snapshot(store, make_doc(status="active", metrics={"mrr": 500}))

    outcome = engine.handle(name)

    assert not outcome.skipped
    [triggered] = outcome.result["triggered"]
    alerts = store.list("env/dev/reports/alerts/low-mrr/v1/")
    assert alerts == [triggered["alertPath"]]
    assert read_json(store, alerts[0])["rule_id"] == "low-mrr"
    assert len(dispatcher.sent) == 1


def test_redelivery_does_not_alert_twice(store, make_doc) -> None:
    write_json(store, snapshot_path("dev", "rule", "low-mrr"), LOW_MRR)
    dispatcher = RecordingDispatcher()
    engine = RulesEngine(store, dispatcher)
    name = _snapshot(store, make_doc(status="active", metrics={"mrr": 500}))

    engine.handle(name)
    outcome = engine.handle(name)

    assert outcome.skipped and outcome.reason == "duplicate"
    assert len(store.list("env/dev/reports/alerts/")) == 1
    assert len(dispatcher.sent) == 1


def test_quiet_snapshot(store, make_doc) -> None:
    write_json(store, snapshot_path("dev", "rule", "low-mrr"), LOW_MRR)
    engine = RulesEngine(store, RecordingDispatcher())
    name = _snapshot(store, make_doc(status="active", metrics={"mrr": 5000}))

    assert engine.handle(name).reason == "no_triggers"
    assert store.list("env/dev/reports/") == []


def test_no_rules(store, make_doc) -> None:
    engine = RulesEngine(store, RecordingDispatcher())
    assert engine.handle(_snapshot(store, make_doc())).reason == "no_rules"


def test_rules_scoped_to_other_env_are_ignored(store, make_doc) -> None:
    write_json(store, snapshot_path("dev", "rule", "low-mrr"), {**LOW_MRR, "env": "prod"})
    engine = RulesEngine(store, RecordingDispatcher())
    name = _snapshot(store, make_doc(status="active", metrics={"mrr": 1}))
    assert engine.handle(name).reason == "no_triggers"


def test_env_mismatch(store, make_doc) -> None:
    name = snapshot_path("dev", "venture", "v1")
    write_json(store, name, make_doc(env="prod"))
    assert RulesEngine(store, RecordingDispatcher()).handle(name).reason == "env_mismatch"


def test_not_a_snapshot(store) -> None:
    engine = RulesEngine(store, RecordingDispatcher())
    assert engine.handle("env/dev/manifests/ventures/by-id/v1.json").reason == "not_snapshot"


# -----------------------------------------------------------------------------
# Dispatch
# -----------------------------------------------------------------------------


def _webhook_rule(target: str | None):
    return rule_from_dict({**LOW_MRR, "action": {"channel": "webhook", "target": target, "severity": "critical"}})


def test_webhook_dispatch(make_doc) -> None:
    received: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append({"url": str(request.url), "body": json.loads(request.content)})
        return httpx.Response(204)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    provider = EnvSecretsProvider({"ALERT_HOOK": "https://hooks.example.test/alerts"})
    dispatcher = AlertDispatcher(provider, client=client)
    rule = _webhook_rule("env://ALERT_HOOK")
    snapshot = make_doc(status="active", metrics={"mrr": 1})
    alert = build_alert(rule, snapshot, evaluate_rule(rule, snapshot))

    assert dispatcher.dispatch(alert, rule) == "webhook"
    assert received[0]["url"] == "https://hooks.example.test/alerts"
    assert received[0]["body"]["ruleId"] == "low-mrr"
    assert received[0]["body"]["alert"]["id"] == alert.id


def test_webhook_without_target(make_doc) -> None:
    dispatcher = AlertDispatcher(EnvSecretsProvider({}))
    rule = _webhook_rule(None)
    snapshot = make_doc(status="active", metrics={"mrr": 1})
    with pytest.raises(ValueError):
        dispatcher.dispatch(build_alert(rule, snapshot, evaluate_rule(rule, snapshot)), rule)


def test_failed_delivery_keeps_alert(store, make_doc) -> None:
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    dispatcher = AlertDispatcher(EnvSecretsProvider({}), fallback_target="https://hooks.example.test/x", client=client)
    write_json(
        store,
        snapshot_path("dev", "rule", "low-mrr"),
        {**LOW_MRR, "action": {"channel": "webhook", "severity": "critical"}},
    )
    name = _snapshot(store, make_doc(status="active", metrics={"mrr": 1}))

    outcome = RulesEngine(store, dispatcher).handle(name)

    assert not outcome.skipped
    assert len(store.list("env/dev/reports/alerts/low-mrr/")) == 1


def test_alert_path_layout(make_doc) -> None:
    rule = rule_from_dict(LOW_MRR)
    snapshot = make_doc(status="active", metrics={"mrr": 1})
    alert = build_alert(rule, snapshot, evaluate_rule(rule, snapshot))
    assert alert_path("dev", rule.id, "v1", alert.id).startswith("env/dev/reports/alerts/low-mrr/v1/")


class BrokenProvider:
    def supports(self, ref: str) -> bool:
        return True

    def get(self, ref: str) -> str | None:
        raise RuntimeError("secret backend exploded")


@pytest.mark.parametrize(
    "provider",
    [SecretManagerProvider(None, client=object()), BrokenProvider()],
    ids=["unresolvable", "crashing"],
)
def test_unresolvable_webhook_target_does_not_fail_stage(store, make_doc, provider) -> None:
    write_json(
        store,
        snapshot_path("dev", "rule", "low-mrr"),
        {**LOW_MRR, "action": {"channel": "webhook", "target": "sm://hook", "severity": "critical"}},
    )
    name = _snapshot(store, make_doc(status="active", metrics={"mrr": 1}))
    engine = RulesEngine(store, AlertDispatcher(provider))

    outcome = engine.handle(name)

    assert not outcome.skipped
    assert len(store.list("env/dev/reports/alerts/low-mrr/v1/")) == 1
    assert engine.handle(name).reason == "duplicate"

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from loguru import logger

from ..envelope import SEGMENTS
from ..errors import ObjectNotFound, RuleDefinitionError
from ..paths import snapshot_prefix
from ..storage import ObjectStore, read_json
from .schema import CHANNELS, OPERATORS, SEVERITIES, RuleAction, RuleCondition, RuleDefinition


def _coerce_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def rule_from_dict(doc: Any) -> RuleDefinition:
    """
    Build a rule from its JSON (or TOML) document.

    Raises:
        RuleDefinitionError: required parts are missing or use unknown values.
    """
    if not isinstance(doc, dict):
        raise RuleDefinitionError("rule must be an object")

    rule_id = str(doc.get("id", "")).strip()
    if not rule_id:
        raise RuleDefinitionError("rule id is required")

    match = _coerce_dict(doc.get("match"))
    match_entity = str(match.get("entity", "")).strip()
    if match_entity not in SEGMENTS:
        raise RuleDefinitionError(f"rule {rule_id}: unknown match.entity {match_entity!r}")

    conditions: list[RuleCondition] = []
    for raw in match.get("conditions") or []:
        raw = _coerce_dict(raw)
        path = str(raw.get("path", "")).strip()
        op = str(raw.get("op", "")).strip()
        if not path:
            raise RuleDefinitionError(f"rule {rule_id}: condition path is required")
        if op not in OPERATORS:
            raise RuleDefinitionError(f"rule {rule_id}: unknown operator {op!r}")
        conditions.append(RuleCondition(path=path, op=op, value=raw.get("value")))  # type: ignore[arg-type]

    action_raw = _coerce_dict(doc.get("action"))
    action_type = str(action_raw.get("type", "alert")).strip() or "alert"
    if action_type != "alert":
        raise RuleDefinitionError(f"rule {rule_id}: unsupported action type {action_type!r}")
    channel = str(action_raw.get("channel") or "log").strip()
    if channel not in CHANNELS:
        raise RuleDefinitionError(f"rule {rule_id}: unknown channel {channel!r}")
    severity = str(action_raw.get("severity") or "info").strip()
    if severity not in SEVERITIES:
        raise RuleDefinitionError(f"rule {rule_id}: unknown severity {severity!r}")

    return RuleDefinition(
        id=rule_id,
        match_entity=match_entity,
        conditions=conditions,
        action=RuleAction(
            channel=channel,  # type: ignore[arg-type]
            target=_optional_str(action_raw.get("target")),
            severity=severity,  # type: ignore[arg-type]
        ),
        description=_optional_str(doc.get("description")),
        env=_optional_str(doc.get("env")),
        updated_at=_optional_str(doc.get("updated_at")),
    )


def load_rules_file(path: Path) -> list[RuleDefinition]:
    """
    Load rules from a TOML or JSON file.

    TOML files hold ``[[rules]]`` tables. JSON files hold one rule, a list
    of rules, or ``{"rules": [...]}``.
    """
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".toml":
        import tomllib

        data: Any = tomllib.loads(text)
    else:
        data = json.loads(text)

    if isinstance(data, dict) and "rules" in data:
        items = data["rules"]
    elif isinstance(data, list):
        items = data
    else:
        items = [data]
    if not isinstance(items, list):
        raise RuleDefinitionError("rules must be a list")
    return [rule_from_dict(item) for item in items]


def load_rules(store: ObjectStore, env: str) -> list[RuleDefinition]:
    """
    Load the current rule snapshots for an environment.

    Unreadable or invalid rules are logged and skipped.
    """
    rules: list[RuleDefinition] = []
    for name in store.list(snapshot_prefix(env, "rule")):
        if not name.endswith(".json"):
            continue
        try:
            rules.append(rule_from_dict(read_json(store, name)))
        except (ObjectNotFound, ValueError, RuleDefinitionError) as e:
            logger.bind(stage="rules-engine", object=name, error=str(e)).warning("skipping unusable rule")
    return rules

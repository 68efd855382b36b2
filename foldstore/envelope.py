"""
Entity envelope.

Every persisted record carries ``id``, ``entity``, ``env``,
``schema_version``, ``created_at`` and ``updated_at``. Bodies are otherwise
free-form JSON objects (:data:`Document`); the pipeline stages only rely on
the envelope and on field paths looked up by the projector and rules.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, get_args

from .errors import EnvelopeError
from .util import now_rfc3339, parse_timestamp, try_parse_timestamp

Document = dict[str, Any]

EntityKind = Literal[
    "idea",
    "venture",
    "resource",
    "budget",
    "kpi",
    "investor",
    "partner",
    "service",
    "talent",
    "experiment",
    "round",
    "cap_table",
    "playbook",
    "playbook_run",
    "comment",
    "show_page",
    "rule",
    "benchmark",
    "report",
    "model",
    "simulation",
    "dataroom",
]
Env = Literal["dev", "stg", "prod"]

ENTITY_KINDS: tuple[str, ...] = get_args(EntityKind)
ENVIRONMENTS: tuple[str, ...] = get_args(Env)

# Path segment per entity kind. Most are plural; a few are fixed aliases.
SEGMENTS: dict[str, str] = {
    "idea": "ideas",
    "venture": "ventures",
    "resource": "resources",
    "budget": "budgets",
    "kpi": "kpis",
    "investor": "investors",
    "partner": "partners",
    "service": "services",
    "talent": "talent",
    "experiment": "experiments",
    "round": "rounds",
    "cap_table": "cap_tables",
    "playbook": "playbooks",
    "playbook_run": "playbook_runs",
    "comment": "comments",
    "show_page": "show_pages",
    "rule": "rules",
    "benchmark": "benchmarks",
    "report": "reports",
    "model": "models",
    "simulation": "simulations",
    "dataroom": "dataroom",
}
ENTITY_BY_SEGMENT: dict[str, str] = {seg: kind for kind, seg in SEGMENTS.items()}

ENVELOPE_FIELDS = ("id", "entity", "env", "schema_version", "created_at", "updated_at")


def segment_for(entity: str) -> str:
    try:
        return SEGMENTS[entity]
    except KeyError:
        raise ValueError(f"unknown entity kind: {entity!r}") from None


def entity_for_segment(segment: str) -> str | None:
    return ENTITY_BY_SEGMENT.get(segment)


def is_valid_id(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip()) and "/" not in value


@dataclass(frozen=True)
class Envelope:
    id: str
    entity: str
    env: str
    schema_version: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_dict(cls, doc: Document) -> "Envelope":
        problems = validate_envelope(doc)
        if problems:
            raise EnvelopeError(problems)
        return cls(
            id=doc["id"],
            entity=doc["entity"],
            env=doc["env"],
            schema_version=str(doc["schema_version"]),
            created_at=parse_timestamp(doc["created_at"]),
            updated_at=parse_timestamp(doc["updated_at"]),
        )


def validate_envelope(doc: object) -> list[str]:
    """
    Check the minimal envelope.

    Returns:
        A list of problems; empty when the envelope is valid.
    """
    if not isinstance(doc, dict):
        return ["record must be a JSON object"]

    problems: list[str] = []
    for field_name in ENVELOPE_FIELDS:
        if doc.get(field_name) in (None, ""):
            problems.append(f"{field_name}: required")

    if "id" in doc and doc.get("id") not in (None, "") and not is_valid_id(doc.get("id")):
        problems.append("id: must be a non-empty string without '/'")
    entity = doc.get("entity")
    if entity not in (None, "") and entity not in SEGMENTS:
        problems.append(f"entity: unknown kind {entity!r}")
    env = doc.get("env")
    if env not in (None, "") and env not in ENVIRONMENTS:
        problems.append(f"env: must be one of {', '.join(ENVIRONMENTS)}")
    version = doc.get("schema_version")
    if version not in (None, "") and not isinstance(version, str):
        problems.append("schema_version: must be a string")

    created = updated = None
    for field_name in ("created_at", "updated_at"):
        value = doc.get(field_name)
        if value in (None, ""):
            continue
        parsed = try_parse_timestamp(value) if isinstance(value, str) else None
        if parsed is None:
            problems.append(f"{field_name}: not an ISO-8601 timestamp")
        elif field_name == "created_at":
            created = parsed
        else:
            updated = parsed

    if created is not None and updated is not None and updated < created:
        problems.append("updated_at: must not be earlier than created_at")
    return problems


def require_envelope(doc: object) -> Envelope:
    if not isinstance(doc, dict):
        raise EnvelopeError(["record must be a JSON object"])
    return Envelope.from_dict(doc)


def new_envelope(id: str, entity: str, env: str, schema_version: str = "1.0.0") -> Document:
    ts = now_rfc3339()
    return {
        "id": id,
        "entity": entity,
        "env": env,
        "schema_version": schema_version,
        "created_at": ts,
        "updated_at": ts,
    }


def touch(doc: Document) -> Document:
    """Return a copy of `doc` with ``updated_at`` set to now."""
    out = dict(doc)
    out["updated_at"] = now_rfc3339()
    return out

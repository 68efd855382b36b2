"""
Manifest records.

A manifest is a small listing record derived from a snapshot: the envelope,
a handful of display and filter fields, and ``ptr`` (the snapshot's name).
It is recomputed from scratch on every snapshot change.
"""

from __future__ import annotations

from typing import Any

from .envelope import Document
from .errors import EnvelopeError
from .paths import snapshot_path

ManifestRecord = dict[str, Any]

REQUIRED_FIELDS = ("id", "entity", "env", "schema_version", "updated_at")

# Copied verbatim when present as strings.
STRING_FIELDS = ("title", "status", "lead", "ventureId", "stage", "asOf", "function", "owner", "version")

# Field spellings that are mirrored into each other.
AUDIT_VARIANTS = (
    ("createdAt", "created_at"),
    ("updatedAt", "updated_at"),
    ("createdBy", "created_by"),
)

IDEA_STRING_FIELDS = ("theme", "problem", "market", "team", "tech", "title", "description")


def _copy_variants(record: ManifestRecord, source: Document, variants: tuple[str, ...]) -> None:
    value = next((source[k] for k in variants if isinstance(source.get(k), str) and source[k]), None)
    if value is not None:
        for key in variants:
            record[key] = value


def _copy_idea_fields(snapshot: Document, record: ManifestRecord) -> None:
    for key in IDEA_STRING_FIELDS:
        value = snapshot.get(key)
        if isinstance(value, str) and value:
            record[key] = value

    score = snapshot.get("score")
    if isinstance(score, dict):
        record["score"] = score

    for key in ("tags", "attachments"):
        items = snapshot.get(key)
        if isinstance(items, list):
            record[key] = [item for item in items if isinstance(item, str)]

    stage_history = snapshot.get("stage_history")
    if isinstance(stage_history, list):
        record["stage_history"] = stage_history

    _copy_variants(record, snapshot, ("stageOwner", "stage_owner"))
    _copy_variants(record, snapshot, ("stageDueDate", "stage_due_date"))


def _copy_show_page_fields(snapshot: Document, record: ManifestRecord) -> None:
    _copy_variants(record, snapshot, ("title",))
    _copy_variants(record, snapshot, ("tagline",))
    _copy_variants(record, snapshot, ("ventureId", "venture_id"))
    if isinstance(snapshot.get("published"), bool):
        record["published"] = snapshot["published"]


def manifest_from_snapshot(snapshot: Document) -> ManifestRecord:
    """
    Derive the manifest record for a snapshot.

    Raises:
        EnvelopeError: the snapshot lacks id, entity, env, schema_version
            or updated_at.
    """
    if not isinstance(snapshot, dict):
        raise EnvelopeError(["snapshot must be a JSON object"])
    missing = [f"{key}: required" for key in REQUIRED_FIELDS if not snapshot.get(key)]
    if missing:
        raise EnvelopeError(missing)

    env, entity, id = snapshot["env"], snapshot["entity"], snapshot["id"]
    try:
        ptr = snapshot_path(env, entity, id)
    except ValueError as e:
        raise EnvelopeError([str(e)]) from e

    record: ManifestRecord = {
        "id": id,
        "entity": entity,
        "env": env,
        "schema_version": snapshot["schema_version"],
        "updated_at": snapshot["updated_at"],
        "ptr": ptr,
    }

    for variants in AUDIT_VARIANTS:
        _copy_variants(record, snapshot, variants)

    for key in STRING_FIELDS:
        if isinstance(snapshot.get(key), str):
            record[key] = snapshot[key]
    idea_id = snapshot.get("ideaId") or snapshot.get("idea_id")
    if isinstance(idea_id, str):
        record["ideaId"] = idea_id
    effectiveness = snapshot.get("effectiveness_score")
    if isinstance(effectiveness, (int, float)) and not isinstance(effectiveness, bool):
        record["effectiveness_score"] = effectiveness

    if entity == "idea":
        _copy_idea_fields(snapshot, record)
    elif entity == "show_page":
        _copy_show_page_fields(snapshot, record)

    return record

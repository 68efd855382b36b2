"""
Secondary index pointers.

Each entity kind declares its index families (``by-status``, ``by-lead``,
...). A pointer is the manifest record plus the indexed attribute, stored
at ``env/E/indices/S/by-<family>/<value>/<id>.json``. Cap tables are the
exception: one pointer per venture at
``env/E/indices/cap_tables/by-venture/<ventureId>.json``, overwritten in
place and dropped once it no longer names the cap table's venture.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable

from .envelope import Document, is_valid_id
from .manifest import ManifestRecord, manifest_from_snapshot
from .paths import index_family_prefix, index_path, venture_cap_table_path
from .util import slugify, try_parse_timestamp

INDEX_FAMILIES: dict[str, tuple[str, ...]] = {
    "venture": ("status", "lead", "next-due"),
    "idea": ("status", "stage", "owner", "score"),
    "round": ("venture",),
    "playbook": ("stage", "function", "owner", "tag"),
    "playbook_run": ("playbook", "venture"),
    "comment": ("idea",),
}

_DONE_STATUSES = {"done", "completed", "complete"}


@dataclass(frozen=True)
class PointerPlan:
    path: str
    pointer: dict[str, Any]
    # None for per-venture cap-table pointers, which have no family directory.
    family: str | None = None


def families_for(entity: str) -> tuple[str, ...]:
    return INDEX_FAMILIES.get(entity, ())


def family_prefixes(env: str, entity: str) -> list[str]:
    return [index_family_prefix(env, entity, family) for family in families_for(entity)]


# -----------------------------------------------------------------------------
# Attribute extraction
# -----------------------------------------------------------------------------


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _id_value(value: Any) -> str | None:
    """Raw id used verbatim as a path segment."""
    return value if is_valid_id(value) else None


def _milestone_done(milestone: dict[str, Any]) -> bool:
    if milestone.get("completed") is True:
        return True
    status = milestone.get("status")
    return isinstance(status, str) and status.strip().lower() in _DONE_STATUSES


def next_due_month(milestones: Any) -> str | None:
    """Year-month (``YYYY-MM``) of the earliest open milestone with a due date."""
    if not isinstance(milestones, list):
        return None
    dates = []
    for milestone in milestones:
        if not isinstance(milestone, dict) or _milestone_done(milestone):
            continue
        due = try_parse_timestamp(milestone.get("dueDate"))
        if due is not None:
            dates.append(due)
    if not dates:
        return None
    earliest = min(dates)
    return f"{earliest.year:04d}-{earliest.month:02d}"


def _clamp_score(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return min(10.0, max(0.0, float(value)))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def overall_score(snapshot: Document) -> float | None:
    raw = snapshot.get("score")
    if _is_number(raw):
        return _clamp_score(raw)
    if isinstance(raw, dict) and _is_number(raw.get("overall")):
        return _clamp_score(raw["overall"])
    legacy = snapshot.get("score_overall", snapshot.get("scoreOverall"))
    if _is_number(legacy):
        return _clamp_score(legacy)
    return None


def score_bucket(value: float) -> str:
    return f"{math.floor(_clamp_score(value)):02d}"


# -----------------------------------------------------------------------------
# Pointer builders, one per entity kind
# -----------------------------------------------------------------------------


class _Plans:
    def __init__(self, snapshot: Document, base: ManifestRecord):
        self.snapshot = snapshot
        self.base = base
        self.env = base["env"]
        self.entity = base["entity"]
        self.id = base["id"]
        self.items: list[PointerPlan] = []

    def add(self, family: str, value: str, **extra: Any) -> None:
        self.items.append(
            PointerPlan(
                path=index_path(self.env, self.entity, family, value, self.id),
                pointer={**self.base, **extra},
                family=family,
            )
        )

    def add_slug(self, family: str, field_name: str, pointer_key: str | None = None) -> None:
        value = _text(self.snapshot.get(field_name))
        if value is not None:
            self.add(family, slugify(value), **{pointer_key or field_name: value})


def _venture(p: _Plans) -> None:
    p.add_slug("status", "status")
    p.add_slug("lead", "lead")
    due = next_due_month(p.snapshot.get("milestones"))
    if due is not None:
        p.add("next-due", due, nextDue=due)


def _idea(p: _Plans) -> None:
    p.add_slug("status", "status")
    p.add_slug("stage", "stage")
    owner = _text(p.snapshot.get("stageOwner")) or _text(p.snapshot.get("stage_owner"))
    if owner is not None:
        p.add("owner", slugify(owner), stageOwner=owner)
    score = overall_score(p.snapshot)
    if score is not None:
        p.add("score", score_bucket(score), score=p.base.get("score", p.snapshot.get("score")))


def _round(p: _Plans) -> None:
    venture_id = _id_value(p.snapshot.get("ventureId"))
    if venture_id is not None:
        p.add("venture", venture_id, ventureId=venture_id)


def _cap_table(p: _Plans) -> None:
    venture_id = _id_value(p.snapshot.get("ventureId"))
    if venture_id is not None:
        p.items.append(
            PointerPlan(
                path=venture_cap_table_path(p.env, venture_id),
                pointer={**p.base, "ventureId": venture_id},
            )
        )


def _playbook(p: _Plans) -> None:
    p.add_slug("stage", "stage")
    p.add_slug("function", "function")
    p.add_slug("owner", "owner")
    tags = p.snapshot.get("tags")
    if isinstance(tags, list):
        for tag in tags:
            if _text(tag) is not None:
                p.add("tag", slugify(tag), tag=tag)


def _playbook_run(p: _Plans) -> None:
    playbook_id = _id_value(p.snapshot.get("playbookId"))
    if playbook_id is not None:
        p.add("playbook", playbook_id, playbookId=playbook_id)
    venture_id = _id_value(p.snapshot.get("ventureId"))
    if venture_id is not None:
        p.add("venture", venture_id, ventureId=venture_id)


def _comment(p: _Plans) -> None:
    idea_id = _id_value(p.snapshot.get("ideaId") or p.snapshot.get("idea_id"))
    if idea_id is not None:
        p.add("idea", idea_id, ideaId=idea_id)


_BUILDERS: dict[str, Callable[[_Plans], None]] = {
    "venture": _venture,
    "idea": _idea,
    "round": _round,
    "cap_table": _cap_table,
    "playbook": _playbook,
    "playbook_run": _playbook_run,
    "comment": _comment,
}


def build_index_pointers(snapshot: Document) -> list[PointerPlan]:
    """
    Compute every index pointer for a snapshot.

    Pointers are deduplicated by path (two tags with the same slug yield
    one pointer). Entity kinds without index families yield nothing.
    """
    builder = _BUILDERS.get(str(snapshot.get("entity")))
    if builder is None:
        return []
    plans = _Plans(snapshot, manifest_from_snapshot(snapshot))
    builder(plans)

    seen: set[str] = set()
    unique: list[PointerPlan] = []
    for plan in plans.items:
        if plan.path in seen:
            continue
        seen.add(plan.path)
        unique.append(plan)
    return unique

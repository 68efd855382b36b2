"""
Snapshot migration and compaction.

Migration is minor-additive only: optional fields introduced after 1.0.0
are filled with defaults when absent. Nothing is removed or renamed.
"""

from __future__ import annotations

import copy
from typing import Any, Callable

from .envelope import Document

# Optional fields and their defaults, per entity kind.
ADDITIVE_DEFAULTS: dict[str, dict[str, Callable[[], Any]]] = {
    "venture": {"milestones": list, "tags": list},
    "idea": {"tags": list, "attachments": list},
    "playbook": {"tags": list},
    "cap_table": {"holders": list},
}


def migrate_minor_additive(doc: Document) -> Document:
    out = copy.deepcopy(doc)
    for field_name, factory in ADDITIVE_DEFAULTS.get(str(out.get("entity")), {}).items():
        if field_name not in out:
            out[field_name] = factory()
    return out


def _quantity(value: Any) -> int | float:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return 0
        return int(number) if number.is_integer() else number
    return 0


def _compact_cap_table(doc: Document) -> None:
    holders = doc.get("holders")
    if not isinstance(holders, list):
        return
    by_id: dict[str, dict[str, Any]] = {}
    for holder in holders:
        if not isinstance(holder, dict):
            continue
        key = str(holder.get("holderId") or "")
        if not key:
            continue
        prev = by_id.get(key)
        if prev is None:
            by_id[key] = dict(holder)
        else:
            prev["quantity"] = _quantity(prev.get("quantity")) + _quantity(holder.get("quantity"))
    doc["holders"] = list(by_id.values())


_COMPACTORS: dict[str, Callable[[Document], None]] = {
    "cap_table": _compact_cap_table,
}


def compact_high_churn(doc: Document) -> Document:
    """Merge duplicate line items that share a natural key."""
    out = copy.deepcopy(doc)
    compactor = _COMPACTORS.get(str(out.get("entity")))
    if compactor is not None:
        compactor(out)
    return out


def prepare_snapshot(doc: Document) -> Document:
    return compact_high_churn(migrate_minor_additive(doc))

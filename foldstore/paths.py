"""
Canonical object names.

All functions here are pure: the same inputs always give the same name.

    env/E/S/I/history/YYYY/MM/DD/<timestamp>_<ulid>.json
    env/E/snapshots/S/I.json
    env/E/manifests/S/by-id/I.json
    env/E/manifests/S/_index_shard=<key>.ndjson
    env/E/indices/S/by-<attr>/<value>/I.json
    env/E/reports/alerts/<rule>/<entity_id>/<alert>.json
"""

from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass
from datetime import datetime

from .envelope import ENVIRONMENTS, entity_for_segment, is_valid_id, segment_for
from .util import to_rfc3339

SHARD_PREFIX = "_index_shard="
SHARD_SUFFIX = ".ndjson"


# -----------------------------------------------------------------------------
# Builders
# -----------------------------------------------------------------------------


def history_path(env: str, entity: str, id: str, at: datetime, ulid: str) -> str:
    seg = segment_for(entity)
    stamp = to_rfc3339(at, millis=False)
    return f"env/{env}/{seg}/{id}/history/{stamp[0:4]}/{stamp[5:7]}/{stamp[8:10]}/{stamp}_{ulid}.json"


def history_prefix(env: str, entity: str, id: str | None = None) -> str:
    seg = segment_for(entity)
    if id is None:
        return f"env/{env}/{seg}/"
    return f"env/{env}/{seg}/{id}/history/"


def snapshot_path(env: str, entity: str, id: str) -> str:
    return f"env/{env}/snapshots/{segment_for(entity)}/{id}.json"


def snapshot_prefix(env: str, entity: str) -> str:
    return f"env/{env}/snapshots/{segment_for(entity)}/"


def manifest_path(env: str, entity: str, id: str) -> str:
    return f"env/{env}/manifests/{segment_for(entity)}/by-id/{id}.json"


def manifest_prefix(env: str, entity: str) -> str:
    return f"env/{env}/manifests/{segment_for(entity)}/by-id/"


def shard_prefix(env: str, entity: str) -> str:
    return f"env/{env}/manifests/{segment_for(entity)}/{SHARD_PREFIX}"


def shard_path(env: str, entity: str, key: str) -> str:
    return f"{shard_prefix(env, entity)}{key}{SHARD_SUFFIX}"


def index_family_prefix(env: str, entity: str, attribute: str) -> str:
    return f"env/{env}/indices/{segment_for(entity)}/by-{attribute}/"


def index_path(env: str, entity: str, attribute: str, value: str, id: str) -> str:
    return f"{index_family_prefix(env, entity, attribute)}{value}/{id}.json"


def venture_cap_table_prefix(env: str) -> str:
    return f"env/{env}/indices/cap_tables/by-venture/"


def venture_cap_table_path(env: str, venture_id: str) -> str:
    """Single cap-table pointer per venture, overwritten on every projection."""
    return f"{venture_cap_table_prefix(env)}{venture_id}.json"


def alert_path(env: str, rule_id: str, entity_id: str, alert_id: str) -> str:
    return f"env/{env}/reports/alerts/{rule_id}/{entity_id}/{alert_id}.json"


def shard_key(id: str, shard_count: int = 256) -> str:
    """
    Shard for a manifest id.

    First byte of sha1(id): two hex digits when there are 256 or more
    shards, otherwise the byte modulo `shard_count` as zero-padded decimal.
    """
    if shard_count <= 0:
        raise ValueError("shard_count must be positive")
    first_byte = hashlib.sha1(id.encode("utf-8")).digest()[0]
    if shard_count >= 256:
        return f"{first_byte:02x}"
    width = math.ceil(math.log10(shard_count))
    return str(first_byte % shard_count).zfill(width)


# -----------------------------------------------------------------------------
# Parsers
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class EntityRef:
    env: str
    entity: str
    id: str


def parse_history_path(name: str) -> EntityRef | None:
    """
    Parse ``env/E/S/I/history/...`` into its identity.

    Returns None for anything that is not a history object.
    """
    parts = name.split("/")
    if len(parts) < 6 or parts[0] != "env" or parts[4] != "history":
        return None
    if not name.endswith(".json"):
        return None
    env, seg, id = parts[1], parts[2], parts[3]
    entity = entity_for_segment(seg)
    if env not in ENVIRONMENTS or entity is None or not is_valid_id(id):
        return None
    return EntityRef(env=env, entity=entity, id=id)


def parse_snapshot_path(name: str) -> EntityRef | None:
    parts = name.split("/")
    if len(parts) != 5 or parts[0] != "env" or parts[2] != "snapshots":
        return None
    if not parts[4].endswith(".json"):
        return None
    env, seg, id = parts[1], parts[3], parts[4][: -len(".json")]
    entity = entity_for_segment(seg)
    if env not in ENVIRONMENTS or entity is None or not is_valid_id(id):
        return None
    return EntityRef(env=env, entity=entity, id=id)

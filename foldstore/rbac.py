"""
Role-based access decisions.

A pure function: callers enforce the decision at the request boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Literal

Role = Literal["Admin", "Leadership", "Lead", "Contributor", "Investor", "Advisor"]
DenyReason = Literal["read_only", "env_restricted", "entity_restricted", "unauthorized"]

FULL_ACCESS_ROLES = frozenset({"Admin", "Leadership", "Lead", "Contributor"})
RESTRICTED_ROLES = frozenset({"Investor", "Advisor"})
RESTRICTED_ENTITIES = frozenset({"venture", "cap_table", "round"})
RESTRICTED_ENV = "prod"
READ_METHODS = frozenset({"GET", "HEAD"})


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: DenyReason | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"allowed": self.allowed}
        if self.reason is not None:
            out["reason"] = self.reason
        return out


def enforce_rbac(
    roles: Iterable[str],
    entity: str | None = None,
    method: str = "GET",
    env: str | None = None,
) -> AccessDecision:
    """
    Decide whether `roles` may perform `method` on `entity` in `env`.

    Full-access roles are always allowed. Restricted roles may only read,
    only in production, and only ventures, cap tables and rounds. An
    omitted `entity` or `env` is not checked.
    """
    held = set(roles)
    if held & FULL_ACCESS_ROLES:
        return AccessDecision(True)
    if held & RESTRICTED_ROLES:
        if method.upper() not in READ_METHODS:
            return AccessDecision(False, "read_only")
        if env and env != RESTRICTED_ENV:
            return AccessDecision(False, "env_restricted")
        if entity and entity not in RESTRICTED_ENTITIES:
            return AccessDecision(False, "entity_restricted")
        return AccessDecision(True)
    return AccessDecision(False, "unauthorized")


def parse_roles(header: str | None) -> list[str]:
    """Split a comma-separated roles header."""
    if not header:
        return []
    return [r.strip() for r in header.split(",") if r.strip()]

"""
Stage outcomes.

A pipeline stage either did its work (``skipped=False`` with a ``result``)
or skipped it for a reason. Reasons that a redelivery can fix are marked
retryable; the HTTP layer turns those into non-2xx responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

SkipReason = Literal[
    "not_history",
    "not_snapshot",
    "invalid_envelope",
    "envelope_mismatch",
    "env_mismatch",
    "stale_update",
    "conflict",
    "read_failed",
    "write_failed",
    "no_indices",
    "no_rules",
    "no_triggers",
    "no_target",
    "duplicate",
]

RETRYABLE_REASONS: frozenset[str] = frozenset({"conflict", "read_failed", "write_failed"})


@dataclass
class StageOutcome:
    stage: str
    name: str
    skipped: bool = False
    reason: SkipReason | None = None
    result: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @classmethod
    def done(cls, stage: str, name: str, **result: Any) -> "StageOutcome":
        return cls(stage=stage, name=name, result=result)

    @classmethod
    def skip(cls, stage: str, name: str, reason: SkipReason, *, error: str | None = None, **result: Any) -> "StageOutcome":
        return cls(stage=stage, name=name, skipped=True, reason=reason, result=result, error=error)

    @property
    def retryable(self) -> bool:
        return self.skipped and self.reason in RETRYABLE_REASONS

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"stage": self.stage, "name": self.name, "skipped": self.skipped}
        if self.reason is not None:
            out["reason"] = self.reason
        if self.result:
            out["result"] = self.result
        if self.error is not None:
            out["error"] = self.error
        return out

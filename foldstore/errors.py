"""
Exception taxonomy.

Pipeline stages report expected outcomes (stale, conflict, not applicable)
as values. Exceptions are reserved for storage failures, invalid input at
the boundary, and identifier collisions.
"""

from __future__ import annotations


class FoldstoreError(Exception):
    """Base class for all foldstore errors."""


# -----------------------------------------------------------------------------
# Object store
# -----------------------------------------------------------------------------


class StoreError(FoldstoreError):
    """Base class for object store adapter failures."""

    def __init__(self, message: str, *, name: str | None = None):
        super().__init__(message)
        self.name = name


class ObjectNotFound(StoreError):
    """Read or stat of an object that does not exist."""


class PreconditionFailed(StoreError):
    """A generation or metageneration precondition did not hold."""


class StoreUnavailable(StoreError):
    """Transient backend failure. Redelivery is expected to retry."""


# -----------------------------------------------------------------------------
# Data
# -----------------------------------------------------------------------------


class EnvelopeError(FoldstoreError):
    """A record is missing envelope fields or carries invalid ones."""

    def __init__(self, problems: list[str]):
        super().__init__("; ".join(problems) or "invalid envelope")
        self.problems = list(problems)


class IdentifierCollision(FoldstoreError):
    """
    A history path was already occupied.

    History paths embed a fresh ULID, so this indicates a generator defect.
    It is never retried.
    """

    def __init__(self, name: str):
        super().__init__(f"history path already exists: {name}")
        self.name = name


class MalformedNotification(FoldstoreError):
    """A push notification body could not be decoded."""


class RuleDefinitionError(FoldstoreError):
    """A rule document cannot be evaluated."""

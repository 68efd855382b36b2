"""
foldstore - event-sourced materialization over an object store.

History events are appended write-once, folded into per-id snapshots with
compare-and-swap writes, and projected into manifests, secondary indices,
alerts and a search feed.
"""

from .errors import (
    EnvelopeError,
    FoldstoreError,
    IdentifierCollision,
    MalformedNotification,
    ObjectNotFound,
    PreconditionFailed,
    RuleDefinitionError,
    StoreError,
    StoreUnavailable,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "EnvelopeError",
    "FoldstoreError",
    "IdentifierCollision",
    "MalformedNotification",
    "ObjectNotFound",
    "PreconditionFailed",
    "RuleDefinitionError",
    "StoreError",
    "StoreUnavailable",
]

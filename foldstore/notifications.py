"""
Push notification envelopes.

Storage-change notifications arrive as::

    {"message": {"data": "<base64 JSON>", "attributes": {...}, "messageId": "..."},
     "subscription": "..."}

where the decoded data names the changed object: ``{"bucket": ..., "name": ...}``.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any

from .errors import MalformedNotification


@dataclass(frozen=True)
class StorageNotification:
    bucket: str
    name: str
    message_id: str | None = None
    attributes: dict[str, str] = field(default_factory=dict)


def encode_push(bucket: str, name: str, *, message_id: str = "1") -> dict[str, Any]:
    """Build a push body for `name`. Used by the local pipeline and tests."""
    data = base64.b64encode(json.dumps({"bucket": bucket, "name": name}).encode("utf-8")).decode("ascii")
    return {"message": {"data": data, "attributes": {}, "messageId": message_id}, "subscription": "local"}


def parse_push(body: Any) -> StorageNotification | None:
    """
    Decode a push body.

    Returns:
        The notification, or None when the message carries no data.

    Raises:
        MalformedNotification: the body or its data cannot be decoded.
    """
    if not isinstance(body, dict):
        raise MalformedNotification("push body must be a JSON object")
    message = body.get("message")
    if message is None:
        return None
    if not isinstance(message, dict):
        raise MalformedNotification("message must be an object")
    data = message.get("data")
    if not data:
        return None
    if not isinstance(data, str):
        raise MalformedNotification("message.data must be a base64 string")

    try:
        decoded = json.loads(base64.b64decode(data, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise MalformedNotification(f"undecodable message data: {e}") from e
    if not isinstance(decoded, dict):
        raise MalformedNotification("message data must be a JSON object")

    name = decoded.get("name")
    if not isinstance(name, str) or not name:
        raise MalformedNotification("message data has no object name")
    attributes = message.get("attributes")
    return StorageNotification(
        bucket=str(decoded.get("bucket") or ""),
        name=name,
        message_id=message.get("messageId"),
        attributes=dict(attributes) if isinstance(attributes, dict) else {},
    )

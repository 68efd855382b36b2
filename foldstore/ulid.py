"""
ULID generation.

ULID = 48-bit millisecond timestamp + 80-bit randomness, rendered as 26
Crockford base32 characters (10 for time, 16 for randomness).

:class:`UlidGenerator` owns its monotonic state. Within one millisecond
successive ids increment the randomness by one instead of re-drawing it,
so ids from one generator sort in creation order. The 80-bit counter
wraps to zero on overflow.
"""

from __future__ import annotations

import hashlib
import os
import threading
import time
from typing import Callable

_CROCKFORD32 = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_DECODE = {c: i for i, c in enumerate(_CROCKFORD32)}

TIME_LEN = 10
RANDOM_LEN = 16
ULID_LEN = TIME_LEN + RANDOM_LEN

_RANDOM_BITS = 80
_RANDOM_MASK = (1 << _RANDOM_BITS) - 1
_MAX_TIMESTAMP = (1 << 48) - 1


def _encode_crockford_base32(value: int, length: int) -> str:
    chars: list[str] = []
    for _ in range(length):
        chars.append(_CROCKFORD32[value & 31])
        value >>= 5
    return "".join(reversed(chars))


def _check_timestamp(timestamp_ms: int) -> None:
    if not (0 <= timestamp_ms <= _MAX_TIMESTAMP):
        raise ValueError("timestamp_ms out of range for ULID")


def encode_ulid(timestamp_ms: int, randomness: int) -> str:
    _check_timestamp(timestamp_ms)
    return _encode_crockford_base32(timestamp_ms, TIME_LEN) + _encode_crockford_base32(
        randomness & _RANDOM_MASK, RANDOM_LEN
    )


def decode_timestamp(ulid: str) -> int:
    """Return the millisecond timestamp encoded in the first 10 characters."""
    if len(ulid) != ULID_LEN:
        raise ValueError(f"ULID must be {ULID_LEN} characters")
    value = 0
    for ch in ulid[:TIME_LEN].upper():
        if ch not in _DECODE:
            raise ValueError(f"invalid ULID character: {ch!r}")
        value = (value << 5) | _DECODE[ch]
    return value


def is_ulid(value: str) -> bool:
    return len(value) == ULID_LEN and all(c in _DECODE for c in value)


class UlidGenerator:
    """
    Monotonic ULID source.

    Construct one per process and pass it to the components that mint
    history identifiers.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        random_bytes: Callable[[int], bytes] = os.urandom,
    ):
        self._clock = clock
        self._random_bytes = random_bytes
        self._lock = threading.Lock()
        self._last_ms = -1
        self._last_random = 0

    def generate(self, timestamp_ms: int | None = None) -> str:
        if timestamp_ms is None:
            timestamp_ms = int(self._clock() * 1000)
        _check_timestamp(timestamp_ms)

        with self._lock:
            if timestamp_ms == self._last_ms:
                randomness = (self._last_random + 1) & _RANDOM_MASK
            else:
                randomness = int.from_bytes(self._random_bytes(10), "big")
                self._last_ms = timestamp_ms
            self._last_random = randomness

        return encode_ulid(timestamp_ms, randomness)

    __call__ = generate


def derived_ulid(timestamp_ms: int, key: str) -> str:
    """
    Deterministic ULID for `key` at `timestamp_ms`.

    Used where a redelivered event must map to the same object name.
    """
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return encode_ulid(timestamp_ms, int.from_bytes(digest[:10], "big"))

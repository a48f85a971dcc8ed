"""Monotonic, collision-resistant identifiers for parcels and parties.

Identifiers are 26 character Crockford base32 strings encoding 48 bits of
millisecond timestamp followed by 80 bits of randomness. Within one
millisecond the random part is incremented instead of redrawn, so ids
minted by a process sort in creation order. Concurrent callers are
serialized by a lock; ids from different processes collide only if both
draw the same 80 random bits in the same millisecond.
"""

import secrets
import threading
import time
from collections.abc import Callable

_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_ENCODED_LENGTH = 26
_RANDOM_BITS = 80
_RANDOM_MAX = (1 << _RANDOM_BITS) - 1

PARCEL_PREFIX = "PKG-"
PARTY_PREFIX = "CUST-"


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def encode(value: int) -> str:
    """Encode a 128-bit integer as 26 Crockford base32 characters."""
    chars = []
    for _ in range(_ENCODED_LENGTH):
        chars.append(_ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


class MonotonicIdGenerator:
    """Thread-safe generator of lexicographically increasing identifiers."""

    def __init__(self, clock: Callable[[], int] = _now_ms):
        self._clock = clock
        self._lock = threading.Lock()
        self._last_ms = -1
        self._last_random = 0

    def next_id(self) -> str:
        with self._lock:
            now = self._clock()
            if now <= self._last_ms:
                # Same millisecond, or the clock stepped backwards: stay on the last timestamp
                now = self._last_ms
                if self._last_random >= _RANDOM_MAX:
                    now += 1
                    random_part = secrets.randbits(_RANDOM_BITS)
                else:
                    random_part = self._last_random + 1
            else:
                random_part = secrets.randbits(_RANDOM_BITS)

            self._last_ms = now
            self._last_random = random_part

        return encode((now << _RANDOM_BITS) | random_part)


_generator = MonotonicIdGenerator()


def new_parcel_id() -> str:
    return f"{PARCEL_PREFIX}{_generator.next_id()}"


def new_reference_code() -> str:
    return f"{PARTY_PREFIX}{_generator.next_id()}"

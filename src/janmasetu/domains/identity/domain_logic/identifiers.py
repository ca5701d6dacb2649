"""Temporary identity reference generation.

References are built from a per-state monotonic sequence, the deployment
shard and a random suffix, so they stay unique under concurrent creation
across processes. The ``TEMP-`` prefix and alphanumeric body keep them
disjoint from final 12-digit identity numbers.
"""

from __future__ import annotations

import itertools
import secrets
import string
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from janmasetu.domains.identity.connectors import SequenceSource

_BASE36_DIGITS = string.digits + string.ascii_uppercase

TEMP_REF_PREFIX = "TEMP"
MAX_SHARD = 999


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 encoding requires a non-negative value")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_DIGITS[rem])
    return "".join(reversed(digits))


class InMemorySequence:
    """Thread-safe per-partition counter for single-process deployments and tests."""

    def __init__(self, start: int = 1) -> None:
        self._start = start
        self._counters: dict[str, itertools.count] = {}
        self._lock = threading.Lock()

    def next_value(self, partition: str) -> int:
        with self._lock:
            counter = self._counters.setdefault(partition, itertools.count(self._start))
            return next(counter)


class TempRefGenerator:
    """Generates ``TEMP-<state>-<shard>-<sequence>-<random>`` references.

    Usage::

        generator = TempRefGenerator(shard=7)
        generator.next_ref("KA")   # 'TEMP-KA-007-000001-9F3A'
    """

    def __init__(self, shard: int = 0, sequence: SequenceSource | None = None) -> None:
        if not 0 <= shard <= MAX_SHARD:
            raise ValueError(f"shard must be within 0-{MAX_SHARD}, got {shard}")
        self._shard = shard
        self._sequence = sequence or InMemorySequence()

    @property
    def shard(self) -> int:
        return self._shard

    def next_ref(self, state_code: str) -> str:
        prefix = "".join(ch for ch in state_code.upper() if ch.isalnum())[:2] or "XX"
        partition = f"{prefix}:{self._shard:03d}"
        seq = self._sequence.next_value(partition)
        suffix = secrets.token_hex(2).upper()
        return f"{TEMP_REF_PREFIX}-{prefix}-{self._shard:03d}-{to_base36(seq).zfill(6)}-{suffix}"


def is_temp_ref(value: str) -> bool:
    return value.startswith(f"{TEMP_REF_PREFIX}-")

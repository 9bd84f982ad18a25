"""
Snowflake id generator

Primary keys for reconciliation rows are generated in-process so that several
webhook workers can insert concurrently without a database sequence, and so
that ids sort by creation time (useful when auditing event history).

Layout of a 64-bit id:
- 41 bits: milliseconds since ``_EPOCH_MS``
- 10 bits: node id (0-1023), one per running instance
- 12 bits: per-millisecond sequence (0-4095)
"""
from __future__ import annotations

import threading
import time

from reconciler.core.config import settings

# 2024-01-01T00:00:00Z
_EPOCH_MS = 1704067200000
_NODE_BITS = 10
_SEQ_BITS = 12
_MAX_NODE = (1 << _NODE_BITS) - 1
_SEQ_MASK = (1 << _SEQ_BITS) - 1
# Clock regressions larger than this are treated as a misconfigured host
_MAX_BACKWARDS_MS = 5000


class Snowflake:
    """Thread-safe generator bound to a single node id."""

    def __init__(self, *, node_id: int) -> None:
        if not (0 <= node_id <= _MAX_NODE):
            raise ValueError(f"SNOWFLAKE_NODE_ID must be in [0, {_MAX_NODE}]")
        self._node_id = node_id
        self._lock = threading.Lock()
        self._last_ts = -1
        self._seq = 0

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    @classmethod
    def _wait_until(cls, target_ms: int) -> int:
        ts = cls._now_ms()
        while ts < target_ms:
            time.sleep(0.001)
            ts = cls._now_ms()
        return ts

    def next_id(self) -> int:
        """
        Generate the next id

        Returns:
            64-bit integer id

        Raises:
            RuntimeError: when the clock moved backwards by more than 5 seconds
        """
        with self._lock:
            ts = self._now_ms()
            if ts < self._last_ts:
                drift = self._last_ts - ts
                if drift > _MAX_BACKWARDS_MS:
                    raise RuntimeError(
                        f"Clock moved backwards by {drift}ms. "
                        "Refusing to generate ids to prevent duplicates."
                    )
                ts = self._wait_until(self._last_ts)

            if ts == self._last_ts:
                self._seq = (self._seq + 1) & _SEQ_MASK
                if self._seq == 0:
                    # sequence exhausted for this millisecond
                    ts = self._wait_until(self._last_ts + 1)
            else:
                self._seq = 0

            self._last_ts = ts
            return ((ts - _EPOCH_MS) << (_NODE_BITS + _SEQ_BITS)) | (self._node_id << _SEQ_BITS) | self._seq


_GENERATOR: Snowflake | None = None


def generate_id() -> int:
    """Next id from the process-wide generator (created on first use)."""
    global _GENERATOR
    if _GENERATOR is None:
        _GENERATOR = Snowflake(node_id=settings.SNOWFLAKE_NODE_ID)
    return _GENERATOR.next_id()

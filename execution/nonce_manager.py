"""NonceManager — strictly increasing millisecond nonces per leader key.

The exchange keeps a per-signer window of recent nonces and rejects
duplicates, so every L1 envelope sealed by the same leader needs a fresh
value.  Allocation is ``max(now_ms, last + 1)`` under a per-key lock.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import structlog

logger = structlog.get_logger("execution.nonce_manager")

__all__ = ["NonceManager"]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class NonceManager:
    """Per-key monotonic nonce allocator.

    Parameters
    ----------
    clock:
        Returns the current time in milliseconds.  Injectable for tests.
    """

    def __init__(self, clock: Callable[[], int] = _now_ms) -> None:
        self._clock = clock
        self._last: dict[str, int] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @staticmethod
    def _key(leader_key: str) -> str:
        return leader_key.lower()

    def _lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def next_nonce(self, leader_key: str) -> int:
        """Allocate the next nonce for ``leader_key`` (address, any case)."""
        key = self._key(leader_key)
        async with self._lock(key):
            now = self._clock()
            last = self._last.get(key)
            nonce = now if last is None or now > last else last + 1
            self._last[key] = nonce
        if last is not None and now <= last:
            logger.debug("nonce_manager.clock_behind", leader=key, now=now, nonce=nonce)
        return nonce

    def observe(self, leader_key: str, nonce: int) -> None:
        """Raise the floor to a nonce already used elsewhere (never lowers it)."""
        key = self._key(leader_key)
        if nonce > self._last.get(key, -1):
            self._last[key] = nonce

    def last_nonce(self, leader_key: str) -> int | None:
        return self._last.get(self._key(leader_key))

"""Keyed asyncio locks."""

import asyncio
from collections import defaultdict


class KeyedLocks:
    """
    One asyncio.Lock per key, created on first use.

    Used to serialize work per container without a global lock.
    """

    def __init__(self):
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def get(self, key: str) -> asyncio.Lock:
        return self._locks[key]

    def locked(self, key: str) -> bool:
        return key in self._locks and self._locks[key].locked()

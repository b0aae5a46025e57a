"""Per-thread serialization for in-process writers."""

from __future__ import annotations

import asyncio
from typing import Dict


class ThreadLocks:
    """Hand out one ``asyncio.Lock`` per thread id.

    Shared by every component that mutates a thread so an inbound message
    and an operator action on the same thread never interleave.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def for_thread(self, thread_id: str) -> asyncio.Lock:
        lock = self._locks.get(thread_id)
        if lock is None:
            lock = self._locks[thread_id] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._locks)

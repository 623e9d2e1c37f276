"""
Per-chat mutual exclusion.

Session records are read-modify-written against Redis without
compare-and-swap, so every mutation of one chat's session runs under that
chat's lock. Different chats never share a lock.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class ChatLocks:
    """Lazily created ``asyncio.Lock`` per chat id, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, chat_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(chat_id, asyncio.Lock())
        self._users[chat_id] = self._users.get(chat_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[chat_id] -= 1
            if self._users[chat_id] == 0:
                del self._users[chat_id]
                del self._locks[chat_id]

    def is_locked(self, chat_id: str) -> bool:
        lock = self._locks.get(chat_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)

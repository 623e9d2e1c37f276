"""Redis-backed persistence for chat sessions and the chat index."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, List, Optional

import redis.asyncio as redis

from ..config import settings
from ..types.session import Session

logger = logging.getLogger(__name__)

CHAT_INDEX_KEY = "all-chat-ids"
CORRUPT_INDEX_PREFIX = f"{CHAT_INDEX_KEY}:corrupt:"


def _parse_chat_ids(raw: Optional[str]) -> Optional[List[str]]:
    """Decode the index. ``None`` means the stored value is not a JSON list."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(value, list):
        return None
    return [str(item) for item in value]


class SessionStore:
    """Reads and writes one JSON session record per chat.

    There is no compare-and-swap: callers that read-modify-write a session
    must hold the chat's lock (see ``tripbot.core.session.locks``).
    """

    def __init__(self, client: Optional[Any] = None) -> None:
        self._client = client
        if self._client is None:
            if not settings.redis_url:
                raise ValueError("REDIS_URL (or REDIS_HOST) is required")
            self._client = redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
        # The index is shared by every chat
        self._index_lock = asyncio.Lock()

    async def get_session(self, chat_id: str) -> Optional[Session]:
        payload = await self._client.get(chat_id)
        if not payload:
            return None
        return Session.from_json(payload, chat_id=chat_id)

    async def save_session(self, session: Session) -> None:
        await self._client.set(session.chat_id, session.to_json())

    async def list_chat_ids(self) -> List[str]:
        chat_ids = _parse_chat_ids(await self._client.get(CHAT_INDEX_KEY))
        if chat_ids is None:
            logger.error("Chat index is not a JSON list; treating it as empty")
            return []
        return chat_ids

    async def add_chat_id(self, chat_id: str) -> bool:
        """Append ``chat_id`` to the chat index. Returns ``False`` if it was already there."""

        async with self._index_lock:
            raw = await self._client.get(CHAT_INDEX_KEY)
            chat_ids = _parse_chat_ids(raw)
            if chat_ids is None:
                chat_ids = await self._set_aside_corrupt_index(raw)
            if chat_id in chat_ids:
                return False
            chat_ids.append(chat_id)
            await self._client.set(CHAT_INDEX_KEY, json.dumps(chat_ids))
        logger.info(f"Added chat {chat_id} to the chat index ({len(chat_ids)} chats)")
        return True

    async def _set_aside_corrupt_index(self, raw: str) -> List[str]:
        backup_key = f"{CORRUPT_INDEX_PREFIX}{int(time.time())}"
        await self._client.set(backup_key, raw)
        logger.error(
            f"Chat index is not a JSON list; original value kept under {backup_key} "
            "and a new index started"
        )
        return []

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except Exception as exc:  # noqa: BLE001
            logger.warning("Redis ping failed", exc_info=exc)
            return False

    async def close(self) -> None:
        await self._client.aclose()


__all__ = ["SessionStore", "CHAT_INDEX_KEY", "CORRUPT_INDEX_PREFIX"]

"""Telegram Bot API adapter: sending messages and turning updates into events."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from ..config import settings
from ..types.events import (
    ActivationEvent,
    ChatMessage,
    CommandEvent,
    InboundEvent,
    TextEvent,
    command_target,
    parse_command,
)

logger = logging.getLogger(__name__)

EventHandler = Callable[[InboundEvent], Awaitable[Any]]

TELEGRAM_TEXT_LIMIT = 4096
ACTIVATION_COMMAND = "start"


class TelegramAdapter:
    """
    Minimal Telegram Bot API client over httpx.

    Works in webhook mode (``parse_update`` on each POSTed update) or in
    long-polling mode (``start_polling``).
    """

    API_BASE = "https://api.telegram.org/bot{token}"

    def __init__(
        self,
        bot_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        bot_username: Optional[str] = None,
    ):
        self.bot_token = bot_token if bot_token is not None else settings.telegram_bot_token
        # Filled from getMe when not configured
        self.bot_username = (
            bot_username if bot_username is not None else settings.telegram_bot_username
        ).lstrip("@")
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    @property
    def api_url(self) -> str:
        return self.API_BASE.format(token=self.bot_token)

    def is_configured(self) -> bool:
        return bool(self.bot_token)

    async def _client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=30.0, transport=self._transport)
        return self._http

    async def _api_call(self, method: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Make a Telegram Bot API call. Failures are logged and returned as ``ok: False``."""
        client = await self._client()
        url = f"{self.api_url}/{method}"
        try:
            if data:
                resp = await client.post(url, json=data)
            else:
                resp = await client.get(url)
            resp.raise_for_status()
            result = resp.json()
            if not result.get("ok"):
                logger.error(f"Telegram API error ({method}): {result}")
            return result
        except httpx.HTTPStatusError as e:
            # The exception text carries the request URL, which embeds the bot token
            status = e.response.status_code
            logger.error(f"Telegram API call failed ({method}): HTTP {status}")
            return {"ok": False, "error_code": status}
        except httpx.HTTPError as e:
            logger.error(f"Telegram API call failed ({method}): {type(e).__name__}")
            return {"ok": False, "error": type(e).__name__}

    async def send_message(
        self,
        chat_id: str,
        text: str,
        parse_mode: Optional[str] = None,
    ) -> bool:
        """Send ``text`` to ``chat_id``, split into chunks Telegram accepts."""
        ok = True
        for chunk in _split_message(text, TELEGRAM_TEXT_LIMIT):
            data: Dict[str, Any] = {"chat_id": chat_id, "text": chunk}
            if parse_mode:
                data["parse_mode"] = parse_mode
            result = await self._api_call("sendMessage", data)
            if not result.get("ok") and parse_mode:
                # Bad Markdown is rejected with a 400; fall back to plain text
                data.pop("parse_mode")
                result = await self._api_call("sendMessage", data)
            ok = ok and bool(result.get("ok"))
        return ok

    async def set_webhook(self, webhook_url: str, secret_token: Optional[str] = None) -> bool:
        data: Dict[str, Any] = {
            "url": webhook_url,
            "allowed_updates": ["message", "my_chat_member"],
        }
        if secret_token:
            data["secret_token"] = secret_token
        result = await self._api_call("setWebhook", data)
        return bool(result.get("ok", False))

    async def delete_webhook(self) -> bool:
        result = await self._api_call("deleteWebhook")
        return bool(result.get("ok", False))

    async def get_me(self) -> Dict[str, Any]:
        result = await self._api_call("getMe")
        bot_info = result.get("result", {})
        if bot_info.get("username"):
            self.bot_username = bot_info["username"]
        return bot_info

    async def get_updates(self, offset: int = 0, timeout: int = 30) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {
            "timeout": timeout,
            "allowed_updates": '["message","my_chat_member"]',
        }
        if offset:
            params["offset"] = offset

        client = await self._client()
        try:
            resp = await client.get(
                f"{self.api_url}/getUpdates",
                params=params,
                timeout=timeout + 10,
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.ReadTimeout:
            # Long-poll expired with no updates
            return []
        except httpx.HTTPStatusError as e:
            logger.error(f"getUpdates failed: HTTP {e.response.status_code}")
            return []
        except httpx.HTTPError as e:
            logger.error(f"getUpdates failed: {type(e).__name__}")
            return []

        if data.get("ok"):
            return data.get("result", [])
        logger.error(f"getUpdates error: {data}")
        return []

    async def start_polling(
        self,
        handler: EventHandler,
        interval: float = 1.0,
        shutdown_event: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Long-poll for updates and run ``handler`` for each parsed event.

        Every handler runs as its own task; all of them are joined before
        this coroutine returns, and their failures are logged.
        """
        stop = shutdown_event or asyncio.Event()

        # Telegram will not return updates via getUpdates while a webhook is set
        await self.delete_webhook()

        bot_info = await self.get_me()
        logger.info(f"Telegram polling started for @{bot_info.get('username', 'unknown')}")

        offset = 0
        consecutive_errors = 0
        max_backoff = 30
        pending: set[asyncio.Task] = set()

        while not stop.is_set():
            try:
                updates = await self.get_updates(offset=offset, timeout=25)
                consecutive_errors = 0

                for update in updates:
                    offset = update.get("update_id", 0) + 1
                    event = parse_update(update, self.bot_username)
                    if event is None:
                        continue
                    task = asyncio.create_task(handler(event))
                    pending.add(task)
                    task.add_done_callback(_reap(pending, event))

                await asyncio.sleep(interval)

            except asyncio.CancelledError:
                logger.info("Telegram polling cancelled")
                break
            except Exception as e:
                consecutive_errors += 1
                backoff = min(2 ** consecutive_errors, max_backoff)
                logger.error(f"Polling error (retry in {backoff}s): {e}")
                await asyncio.sleep(backoff)

        if pending:
            logger.info(f"Waiting for {len(pending)} pending events...")
            await asyncio.gather(*pending, return_exceptions=True)

        logger.info("Telegram polling stopped")

    async def close(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None


def _reap(pending: set, event: InboundEvent) -> Callable[[asyncio.Task], None]:
    def _done(task: asyncio.Task) -> None:
        pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Handler failed for chat {event.chat_id}: {exc}", exc_info=exc)

    return _done


def _split_message(text: str, limit: int) -> List[str]:
    if len(text) <= limit:
        return [text]
    chunks = []
    while text:
        cut = text.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(text[:cut])
        text = text[cut:].lstrip("\n")
    return chunks


def _chat_message(message: Dict[str, Any]) -> ChatMessage:
    chat = message.get("chat", {})
    sender = message.get("from", {})
    sender_name = sender.get("username") or (
        f"{sender.get('first_name', '')} {sender.get('last_name', '')}".strip()
    )
    return ChatMessage(
        message_id=int(message.get("message_id", 0)),
        date=int(message.get("date", 0)),
        sender_name=sender_name,
        sender_id=str(sender.get("id", "")),
        text=message.get("text", ""),
        chat_name=chat.get("title") or chat.get("username") or "Unknown Chat",
        chat_type=chat.get("type", "unknown"),
        is_bot=bool(sender.get("is_bot", False)),
    )


def parse_update(
    update: Dict[str, Any], bot_username: Optional[str] = None
) -> Optional[InboundEvent]:
    """
    Reduce a Telegram update to an inbound event, or ``None`` if it is irrelevant.

    Commands addressed to another bot (``/start@OtherBot``) are ignored when
    ``bot_username`` is known.
    """

    membership = update.get("my_chat_member")
    if membership:
        old_status = membership.get("old_chat_member", {}).get("status")
        new_status = membership.get("new_chat_member", {}).get("status")
        if old_status in ("left", "kicked") and new_status in ("member", "administrator"):
            return ActivationEvent(chat_id=str(membership.get("chat", {}).get("id", "")))
        return None

    message = update.get("message")
    if not message or not message.get("text"):
        return None

    chat_id = str(message.get("chat", {}).get("id", ""))
    if not chat_id:
        return None

    chat_message = _chat_message(message)
    command = parse_command(chat_message.text)
    if command is None:
        return TextEvent(chat_id=chat_id, text=chat_message.text, message=chat_message)

    target = command_target(chat_message.text)
    if target and bot_username and target != bot_username.lstrip("@").lower():
        return None

    name, args = command
    if name == ACTIVATION_COMMAND:
        return ActivationEvent(chat_id=chat_id, message=chat_message)
    return CommandEvent(chat_id=chat_id, name=name, args=args, message=chat_message)


__all__ = ["TelegramAdapter", "parse_update"]

"""Async client for the booking search agent (booking-intent extraction)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from ..config import settings
from ..core.recovery import RetryableCall
from ..types.session import BookingRequest

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = "The booking assistant is unavailable right now. Please try again later."


@dataclass
class SearchAgentReply:
    """What the agent extracted from the chat so far."""

    completed_data: bool
    request_data: Optional[BookingRequest] = None
    message: Optional[str] = None
    degraded: bool = False

    @classmethod
    def unavailable(cls) -> "SearchAgentReply":
        return cls(completed_data=False, message=UNAVAILABLE_MESSAGE, degraded=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completedData": self.completed_data,
            "requestData": (
                self.request_data.model_dump(by_alias=True, mode="json")
                if self.request_data
                else None
            ),
            "message": self.message,
            "degraded": self.degraded,
        }


class SearchAgentClient:
    """
    Posts a chat's history to the agent backend and reads back
    ``{completedData, requestData, message}``.

    Calls go through ``RetryableCall`` (3 attempts, 1s/2s backoff, 5s per
    attempt); an exhausted budget returns ``SearchAgentReply.unavailable()``.
    """

    name = "search_agent"

    def __init__(
        self,
        url: Optional[str] = None,
        retry: Optional[RetryableCall] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url if url is not None else settings.search_agent_url
        self._retry = retry or RetryableCall(
            max_attempts=settings.search_agent_max_attempts,
            backoff_seconds=1.0,
            attempt_timeout=settings.search_agent_timeout_seconds,
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def extract_booking(self, chat_id: str, history: Dict[str, Any]) -> SearchAgentReply:
        if not self.enabled:
            return SearchAgentReply.unavailable()

        client = await self._get_client()

        async def _post() -> Dict[str, Any]:
            response = await client.post(self.url, json={"chatId": chat_id, "history": history})
            response.raise_for_status()
            return response.json()

        outcome = await self._retry.call(_post, operation_name=f"search agent ({chat_id})")
        if not outcome.success:
            return SearchAgentReply.unavailable()

        if not isinstance(outcome.result, dict):
            logger.warning(
                f"Search agent returned a {type(outcome.result).__name__} body for chat {chat_id}, expected an object"
            )
            return SearchAgentReply.unavailable()

        return _parse_reply(outcome.result)


def _parse_reply(data: Dict[str, Any]) -> SearchAgentReply:
    request_data = None
    raw_request = data.get("requestData")
    if raw_request:
        try:
            request_data = BookingRequest.model_validate(raw_request)
        except ValidationError as e:
            logger.warning(f"Search agent returned an invalid booking request: {e}")

    return SearchAgentReply(
        completed_data=bool(data.get("completedData")) and request_data is not None,
        request_data=request_data,
        message=data.get("message"),
    )


__all__ = ["SearchAgentClient", "SearchAgentReply"]

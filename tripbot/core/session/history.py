"""In-memory chat history, one bounded ring buffer per chat."""

from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from ...types.events import ChatMessage

DEFAULT_HISTORY_LIMIT = 1000


@dataclass
class HistoryMessage:
    id: int
    date: str
    date_unixtime: str
    sender: str
    sender_id: str
    text: str
    type: str = "message"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["from"] = data.pop("sender")
        data["from_id"] = data.pop("sender_id")
        data["text_entities"] = [{"type": "plain", "text": self.text}]
        return data


@dataclass
class _ChatLog:
    name: str
    type: str
    id: int
    messages: Deque[HistoryMessage] = field(default_factory=deque)


class ChatHistory:
    """
    Keeps the last ``limit`` messages of every chat; the oldest message is
    evicted first. Owned by the dispatcher and passed in, never global.
    """

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self._chats: Dict[str, _ChatLog] = {}

    def record(self, chat_id: str, message: ChatMessage) -> HistoryMessage:
        log = self._chats.get(chat_id)
        if log is None:
            log = _ChatLog(
                name=message.chat_name,
                type=message.chat_type,
                id=_numeric_id(chat_id),
                messages=deque(maxlen=self.limit),
            )
            self._chats[chat_id] = log

        sent_at = datetime.fromtimestamp(message.date, tz=timezone.utc)
        entry = HistoryMessage(
            id=message.message_id,
            date=sent_at.isoformat().replace("+00:00", "Z"),
            date_unixtime=str(message.date),
            sender=message.sender_name,
            sender_id=f"user{message.sender_id}",
            text=message.text,
        )
        log.messages.append(entry)
        return entry

    def messages(self, chat_id: str) -> List[HistoryMessage]:
        log = self._chats.get(chat_id)
        return list(log.messages) if log else []

    def export(self, chat_id: str) -> Optional[Dict[str, Any]]:
        """Telegram-export shaped payload, or ``None`` when nothing was recorded."""
        log = self._chats.get(chat_id)
        if log is None:
            return None
        return {
            "name": log.name,
            "type": log.type,
            "id": log.id,
            "messages": [m.to_dict() for m in log.messages],
        }

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._chats


def _numeric_id(chat_id: str) -> int:
    try:
        return int(chat_id)
    except ValueError:
        return 0

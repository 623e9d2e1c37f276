"""
Inbound chat events.

Every update received from the messaging platform is reduced to exactly one
of three event types before it reaches the dispatcher:

- ``ActivationEvent``: the bot was started in, or added to, a chat
- ``CommandEvent``: a ``/command args`` message
- ``TextEvent``: any other text message
"""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class ChatMessage:
    """Platform-neutral view of the message that produced an event."""

    message_id: int
    date: int  # unix seconds
    sender_name: str
    sender_id: str
    text: str
    chat_name: str = "Unknown Chat"
    chat_type: str = "unknown"
    is_bot: bool = False


@dataclass(frozen=True)
class ActivationEvent:
    chat_id: str
    message: Optional[ChatMessage] = None


@dataclass(frozen=True)
class TextEvent:
    chat_id: str
    text: str
    message: Optional[ChatMessage] = None


@dataclass(frozen=True)
class CommandEvent:
    chat_id: str
    name: str
    args: str = ""
    message: Optional[ChatMessage] = None


InboundEvent = Union[ActivationEvent, TextEvent, CommandEvent]


def parse_command(text: str) -> Optional[tuple[str, str]]:
    """Split ``/name@bot args`` into ``(name, args)``; ``None`` for plain text."""

    if not text.startswith("/"):
        return None
    head, _, rest = text.partition(" ")
    name = head[1:].split("@", 1)[0].lower()
    if not name:
        return None
    return name, rest.strip()


def command_target(text: str) -> Optional[str]:
    """The bot a command is addressed to (``/name@bot``), lowercased; ``None`` if unaddressed."""

    if not text.startswith("/"):
        return None
    head = text.split(None, 1)[0]
    _, at, target = head.partition("@")
    return target.lower() if at and target else None

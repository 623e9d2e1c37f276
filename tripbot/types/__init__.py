from .events import (
    ActivationEvent,
    ChatMessage,
    CommandEvent,
    InboundEvent,
    TextEvent,
    command_target,
    parse_command,
)
from .session import BookingRequest, Session

__all__ = [
    "ActivationEvent",
    "ChatMessage",
    "CommandEvent",
    "InboundEvent",
    "TextEvent",
    "command_target",
    "parse_command",
    "BookingRequest",
    "Session",
]

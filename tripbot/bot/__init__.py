"""Chat bot command and event handlers."""

from .handlers import BotDispatcher, parse_booking_args

__all__ = ["BotDispatcher", "parse_booking_args"]

"""
Chat Session Module

Per-chat session state machine, locking and in-memory history.
"""

from .history import ChatHistory, HistoryMessage
from .locks import ChatLocks
from .models import ActivationResult, SessionState
from .state_machine import ChatSessionStateMachine

__all__ = [
    "ChatSessionStateMachine",
    "ChatLocks",
    "ChatHistory",
    "HistoryMessage",
    "ActivationResult",
    "SessionState",
]

"""
Error Classification

Defines the error types raised while activating a chat.
Errors are either fatal (abort the activation) or warnings (logged and
reported alongside a successful result).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories of errors for logging and reporting."""

    VAULT = "vault"                # Secret storage unreachable or failing
    PROVISIONING = "provisioning"  # Wallet key could not be escrowed
    FUNDING = "funding"            # Operator transfer to the new wallet failed
    NAMING = "naming"              # Basename registration failed
    DOWNSTREAM = "downstream"      # Best-effort service exhausted its retries
    CHAIN = "chain"                # RPC / signing error
    SESSION = "session"            # Session record missing or incomplete
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    fatal: bool = True
    chat_id: Optional[str] = None
    tx_hash: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class TripbotError(Exception):
    """Base class for all errors raised by the bot's core."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    fatal: bool = True

    def __init__(
        self,
        message: str,
        chat_id: Optional[str] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext(
            category=self.category,
            fatal=self.fatal,
            chat_id=chat_id,
        )


class ProvisioningFailed(TripbotError):
    """The wallet key could not be escrowed; the wallet is not usable."""

    category = ErrorCategory.PROVISIONING


class FundingFailed(TripbotError):
    """Funding the new wallet failed. Reported as a warning only."""

    category = ErrorCategory.FUNDING
    fatal = False


class NamingFailed(TripbotError):
    """Registering a Basename for the new wallet failed. Reported as a warning only."""

    category = ErrorCategory.NAMING
    fatal = False


class DownstreamUnavailable(TripbotError):
    """A best-effort downstream service did not answer within its retry budget."""

    category = ErrorCategory.DOWNSTREAM
    fatal = False


class ChainError(TripbotError):
    """A transaction could not be signed, sent or confirmed."""

    category = ErrorCategory.CHAIN

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(
            message,
            context=ErrorContext(category=ErrorCategory.CHAIN, fatal=True, tx_hash=tx_hash),
        )
        self.tx_hash = tx_hash


class ActivationFailed(TripbotError):
    """Top-level failure of the chat activation flow."""

    category = ErrorCategory.SESSION


class WalletNotProvisioned(TripbotError):
    """The chat has no wallet (or no app id) to operate on."""

    category = ErrorCategory.SESSION

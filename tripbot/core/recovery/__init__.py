"""
Recovery Module

Retry handling for best-effort downstream calls.
"""

from .retry import RetryableCall, RetryOutcome

__all__ = ["RetryableCall", "RetryOutcome"]

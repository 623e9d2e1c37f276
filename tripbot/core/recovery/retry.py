"""
Retryable external calls.

Wraps calls to best-effort downstream services with a fixed attempt budget,
linear backoff and a per-attempt timeout. Exhausting the budget yields a
degraded outcome instead of raising.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from ..errors import DownstreamUnavailable

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RetryOutcome(Generic[T]):
    """Result of a retried call."""

    success: bool
    result: Optional[T] = None
    error: Optional[Exception] = None
    attempts: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def degraded(self) -> bool:
        return not self.success

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": str(self.error) if self.error else None,
            "attempts": self.attempts,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }


class RetryableCall:
    """
    Executes an async operation up to ``max_attempts`` times.

    The delay after attempt ``n`` is ``n * backoff_seconds`` and every attempt
    is bounded by ``attempt_timeout`` seconds.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        attempt_timeout: float = 5.0,
        sleep: Optional[Sleep] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.attempt_timeout = attempt_timeout
        self._sleep = sleep or asyncio.sleep
        self.logger = logger or logging.getLogger(__name__)

    def delay_for(self, attempt: int) -> float:
        return attempt * self.backoff_seconds

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str = "operation",
    ) -> RetryOutcome[T]:
        started_at = datetime.now(timezone.utc)
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await asyncio.wait_for(operation(), timeout=self.attempt_timeout)
                return RetryOutcome(
                    success=True,
                    result=result,
                    attempts=attempt,
                    started_at=started_at,
                    completed_at=datetime.now(timezone.utc),
                )
            except asyncio.TimeoutError as e:
                last_error = e
                self.logger.warning(
                    f"{operation_name} attempt {attempt}/{self.max_attempts} "
                    f"timed out after {self.attempt_timeout:.1f}s"
                )
            except Exception as e:
                last_error = e
                self.logger.warning(
                    f"{operation_name} attempt {attempt}/{self.max_attempts} failed: {e}"
                )

            if attempt < self.max_attempts:
                await self._sleep(self.delay_for(attempt))

        self.logger.error(f"{operation_name} unavailable after {self.max_attempts} attempts")
        return RetryOutcome(
            success=False,
            error=DownstreamUnavailable(
                f"{operation_name} unavailable after {self.max_attempts} attempts: {last_error}"
            ),
            attempts=self.max_attempts,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )


__all__ = ["RetryableCall", "RetryOutcome"]

"""Cancellable poll loop for payment confirmation.

The caller owns a :class:`CancellationToken` and cancels it when the
consumer goes away (request disconnect, user abort). A failed check is
logged and retried; only ``max_attempts`` bounds the loop.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)


class PollOutcome(str, enum.Enum):
    PAID = "paid"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if cancelled meanwhile."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True


StatusCheck = Callable[[], Union[str, Awaitable[str]]]


async def poll_until_paid(
    check: StatusCheck,
    token: CancellationToken,
    interval: float = 3.0,
    max_attempts: int = 40,
) -> PollOutcome:
    """Call ``check`` until it reports ``"paid"``, the token is cancelled or attempts run out."""
    for attempt in range(1, max_attempts + 1):
        if token.cancelled:
            return PollOutcome.CANCELLED
        try:
            result = check()
            if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
                result = await result
            if str(result).lower() == PollOutcome.PAID.value:
                return PollOutcome.PAID
        except Exception as exc:
            logger.warning("Payment status check %s/%s failed: %s", attempt, max_attempts, exc)
        if attempt < max_attempts and await token.sleep(interval):
            return PollOutcome.CANCELLED
    if token.cancelled:
        return PollOutcome.CANCELLED
    logger.info("Payment polling gave up after %s attempts", max_attempts)
    return PollOutcome.TIMED_OUT

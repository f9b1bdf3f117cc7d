"""
Balance Watcher.

Buyer funds settle asynchronously relative to the job, so execution first
waits, with a bounded number of polls, for the executor's balance to cover
the intent. Running out of polls is not an error here; the caller decides.
"""

import asyncio
import logging
import math
from typing import Any, Awaitable, Callable, Optional

from ..events import FUNDS_POLL, FUNDS_RECEIVED, FUNDS_TIMEOUT, EventEmitter
from .models import BalanceWaitResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 60.0
DEFAULT_INTERVAL_S = 5.0


def max_polls(timeout_s: float, interval_s: float) -> int:
    if interval_s <= 0:
        raise ValueError("Poll interval must be positive")
    return max(1, math.ceil(timeout_s / interval_s))


class BalanceWatcher:
    def __init__(
        self,
        *,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        events: Optional[EventEmitter] = None,
    ) -> None:
        self._sleep = sleep or asyncio.sleep
        self.events = events or EventEmitter()

    async def wait_for(
        self,
        client,
        owner: str,
        token: Optional[str],
        required: int,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        interval_s: float = DEFAULT_INTERVAL_S,
    ) -> BalanceWaitResult:
        """Wait until ``client.get_balance(owner, token) >= required``.

        ``token`` of None (or the native placeholder) watches the native
        balance. Returns immediately, without sleeping, when the first read
        already suffices; otherwise polls ``ceil(timeout_s / interval_s)``
        times before giving up with the last observed balance.
        """

        balance = await client.get_balance(owner, token)
        if balance >= required:
            self.events.emit(FUNDS_RECEIVED, balance=str(balance), required=str(required), polls=0)
            return BalanceWaitResult(ok=True, balance=balance, polls=0)

        attempts = max_polls(timeout_s, interval_s)
        for poll in range(1, attempts + 1):
            await self._sleep(interval_s)
            balance = await client.get_balance(owner, token)
            self.events.emit(
                FUNDS_POLL,
                poll=poll,
                of=attempts,
                balance=str(balance),
                required=str(required),
            )
            if balance >= required:
                self.events.emit(FUNDS_RECEIVED, balance=str(balance), required=str(required), polls=poll)
                return BalanceWaitResult(ok=True, balance=balance, polls=poll)

        logger.info("Funds did not arrive after %d polls (have %s, need %s)", attempts, balance, required)
        self.events.emit(FUNDS_TIMEOUT, balance=str(balance), required=str(required), polls=attempts)
        return BalanceWaitResult(ok=False, balance=balance, polls=attempts)

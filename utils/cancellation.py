"""
Cooperative cancellation for the generation pipeline.

A CancellationToken is threaded through every suspending call. Awaiting work
through ``token.run()`` races it against the cancel signal, so a cancel
interrupts in-flight HTTP calls and pending sleeps instead of waiting for them.
"""

import asyncio
import time
from typing import Awaitable, Optional, TypeVar

from utils.errors import GenerationCancelled

T = TypeVar("T")


class CancellationToken:
    """One-shot cancel signal. Must be used from the event loop that awaits it."""

    def __init__(self):
        self._event = asyncio.Event()
        self.cancelled_at: Optional[float] = None
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if self._event.is_set():
            return
        self.cancelled_at = time.time()
        self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise GenerationCancelled(self.reason or "cancelled")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first."""
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if self._event.is_set():
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            elif not task.cancelled():
                # retrieve so the loop does not log "exception never retrieved"
                task.exception()
            raise GenerationCancelled(self.reason or "cancelled")

        waiter.cancel()
        return task.result()

    async def sleep(self, seconds: float) -> None:
        await self.run(asyncio.sleep(seconds))

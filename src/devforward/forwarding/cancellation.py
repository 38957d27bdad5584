"""
One-shot cancellation signal shared by all forwarding components.

The signal can only go from "running" to "cancelled", never back. Every
task that waits on something long-running (accepting, queueing, reading
events) races that wait against the signal through ``race()`` so teardown
never hangs on a blocked await.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from devforward.forwarding.exceptions import ForwardingCancelledError
from devforward.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CancellationSignal:
    """Set-once broadcast flag backed by an asyncio.Event."""

    def __init__(self):
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def reason(self) -> str | None:
        """Reason given by the first cancel() call."""
        return self._reason

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> bool:
        """
        Trigger the signal.

        Returns:
            True if this call triggered the signal, False if it was already set.
        """
        if self._event.is_set():
            logger.debug(f"Cancellation already requested, ignoring: {reason}")
            return False
        self._reason = reason
        self._event.set()
        logger.debug(f"Cancellation requested: {reason}")
        return True

    async def wait(self) -> None:
        """Wait until the signal is triggered."""
        await self._event.wait()

    async def race(
        self,
        awaitable: Awaitable[T],
        discard: Callable[[Any], None] | None = None,
    ) -> T:
        """
        Await ``awaitable`` unless the signal fires first.

        Args:
            awaitable: Coroutine or future to wait on.
            discard: Called with the result if the awaitable still produced one
                after losing the race (for example a socket accepted at the
                very moment of cancellation), so it can be released.

        Returns:
            The result of ``awaitable``.

        Raises:
            ForwardingCancelledError: If the signal fired first.
        """
        if self.is_cancelled():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise ForwardingCancelledError(self._reason)

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task in done:
            waiter.cancel()
            return task.result()

        task.cancel()
        try:
            late_result = await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Operation failed after cancellation: {e}")
        else:
            if discard is not None:
                discard(late_result)
        raise ForwardingCancelledError(self._reason)

"""Cooperative cancellation tokens for grouped remote calls.

A token is shared by every call that belongs to one unit of work (for example
one profile fetch cycle). Cancelling it makes pending ``run()`` calls raise
``OperationCancelled`` and cancels the underlying request task; whether the
remote side stops processing is up to the transport.
"""

import asyncio
from typing import Any, Awaitable, Optional, TypeVar

T = TypeVar("T")


class OperationCancelled(Exception):
    """Raised when work bound to a cancelled token is abandoned.

    This is not a failure: callers discard it silently.
    """

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason or "cancelled"
        super().__init__(self.reason)


class CancellationToken:
    """One-shot cancellation signal."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    def __repr__(self) -> str:
        state = f"cancelled:{self._reason}" if self.cancelled else "live"
        return f"<CancellationToken {state} at {id(self):#x}>"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Signal cancellation. Only the first reason is kept."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self._reason)

    async def wait(self) -> None:
        await self._event.wait()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        When the token wins, the awaitable's task is cancelled and
        ``OperationCancelled`` is raised.
        """
        if self._event.is_set():
            # Close a never-started coroutine so it does not warn.
            close = getattr(awaitable, "close", None)
            if close is not None:
                close()
            raise OperationCancelled(self._reason)

        task: asyncio.Future[Any] = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if task in done:
            return task.result()
        raise OperationCancelled(self._reason)


async def run_with_token(
    awaitable: Awaitable[T], token: Optional[CancellationToken]
) -> T:
    """Await ``awaitable`` bound to ``token`` when one is given."""
    if token is None:
        return await awaitable
    return await token.run(awaitable)

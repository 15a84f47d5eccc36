# src/querydeck/engine/cancellation.py
"""
Cooperative cancellation for queries.

A CancellationToken is created per query and passed explicitly to every
component that suspends on its behalf (count estimation, the streaming loop,
cache I/O). Components call raise_if_cancelled() at their checkpoints, or
guard() an awaitable so that waiting on it ends as soon as the token fires.

Child tokens are cancelled with their parent but can also be cancelled on
their own; with_timeout() uses that to put a deadline on one step (e.g.
count estimation) without cancelling the whole query.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, List, Optional, TypeVar

from querydeck.errors import QueryCancelledError

T = TypeVar("T")

DEFAULT_REASON = "Query cancelled by user"
TIMEOUT_REASON = "Query timed out"


class CancellationToken:
    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._event: Optional[asyncio.Event] = None
        self._cancelled = False
        self._reason: Optional[str] = None
        self._timed_out = False
        self._children: List[CancellationToken] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self.parent = parent
        if parent is not None:
            parent._children.append(self)
            if parent.cancelled:
                self.cancel(parent.reason, timed_out=parent.timed_out)

    # ------------------------------ State -------------------------------------

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str:
        return self._reason or DEFAULT_REASON

    @property
    def timed_out(self) -> bool:
        return self._timed_out

    def cancel(self, reason: str = DEFAULT_REASON, *, timed_out: bool = False) -> bool:
        """
        Cancel this token and all of its children.

        Returns False if the token was already cancelled.
        """
        if self._cancelled:
            return False
        self._cancelled = True
        self._reason = reason
        self._timed_out = timed_out
        if self._event is not None:
            self._event.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for child in list(self._children):
            child.cancel(reason, timed_out=timed_out)
        return True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise QueryCancelledError(self.reason, timed_out=self._timed_out)

    # ------------------------------ Children ----------------------------------

    def child(self) -> "CancellationToken":
        return CancellationToken(parent=self)

    def with_timeout(self, seconds: Optional[float]) -> "CancellationToken":
        """
        Child token that cancels itself after `seconds`.

        Must be called from inside a running event loop. A None or
        non-positive timeout returns a plain child.
        """
        token = self.child()
        if seconds is not None and seconds > 0 and not token.cancelled:
            loop = asyncio.get_running_loop()
            token._timer = loop.call_later(seconds, lambda: token.cancel(TIMEOUT_REASON, timed_out=True))
        return token

    def detach(self) -> None:
        """Drop this token from its parent and stop any pending timer."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self.parent is not None and self in self.parent._children:
            self.parent._children.remove(self)

    # ------------------------------ Waiting -----------------------------------

    async def wait(self) -> None:
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable`, abandoning it if the token is cancelled first.

        Raises:
            QueryCancelledError: the token fired before the awaitable finished.
        """
        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            # `work` must have unwound before the caller closes its generator
            work.cancel()
            await asyncio.wait({work})
            if not work.cancelled():
                work.exception()
            raise
        finally:
            waiter.cancel()

        if work in done:
            return work.result()

        # Let the abandoned work unwind before callers release its resources
        work.cancel()
        await asyncio.wait({work})
        if not work.cancelled():
            work.exception()
        raise QueryCancelledError(self.reason, timed_out=self._timed_out)

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"CancellationToken({state}, reason={self._reason!r})"

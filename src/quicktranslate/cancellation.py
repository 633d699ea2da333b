import asyncio
import contextlib
from typing import Awaitable, TypeVar

T = TypeVar("T")


class OperationCancelled(Exception):
    """Raised inside an operation once its token has been cancelled."""


class CancellationToken:
    """Caller-owned cancellation signal shared by one logical operation.

    The token is bound lazily to the running loop the first time it is awaited,
    so it can be created outside of a coroutine.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event: asyncio.Event | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    def cancel_after(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(delay, self.cancel)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelled("operation was cancelled")

    def _get_event(self) -> asyncio.Event:
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        return self._event

    async def wait(self) -> None:
        await self._get_event().wait()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        The pending work is cancelled and ``OperationCancelled`` raised when the
        token wins the race.
        """
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelled("operation was cancelled")
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            if not waiter.done():
                waiter.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await waiter
        if work.done():
            return work.result()
        work.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await work
        raise OperationCancelled("operation was cancelled")

    async def sleep(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds; return False if cancelled meanwhile."""
        if self._cancelled:
            return False
        try:
            await self.run(asyncio.sleep(delay))
        except OperationCancelled:
            return False
        return True


__all__ = ["CancellationToken", "OperationCancelled"]

import asyncio
import time
from typing import Awaitable, TypeVar

from .errors import OperationCancelledError

T = TypeVar("T")


class OperationScope:
    """
    Cancellation and deadline scope shared by every step of a workflow.

    A scope is passed explicitly into each operation. Cancelling it, or
    letting its deadline pass, aborts whatever awaitable is currently
    guarded and raises OperationCancelledError.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._deadline = None if timeout is None else time.monotonic() + timeout
        self._cancelled = asyncio.Event()

    @classmethod
    def background(cls) -> "OperationScope":
        """A scope that never expires unless cancelled."""
        return cls()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set() or self.remaining() == 0

    def cancel(self) -> None:
        self._cancelled.set()

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self) -> None:
        if self._cancelled.is_set():
            raise OperationCancelledError("Operation was cancelled")
        if self.remaining() == 0:
            raise OperationCancelledError("Operation deadline exceeded")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable` unless the scope is cancelled or expires first.
        In that case the awaitable is cancelled and OperationCancelledError raised.
        """
        try:
            self.check()
        except OperationCancelledError:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._cancelled.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

        if task in done:
            return task.result()
        self.check()
        # Deadline raced with completion of the waiter; treat as expired.
        raise OperationCancelledError("Operation deadline exceeded")

    async def sleep(self, delay: float) -> None:
        await self.guard(asyncio.sleep(delay))

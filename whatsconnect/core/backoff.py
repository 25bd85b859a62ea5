import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

RetryCallback = Callable[[], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    max_attempts: int = 3
    base_ms: int = 1000
    cap_ms: int = 10000

    def delay_ms(self, attempt: int) -> int:
        if attempt < 1:
            raise ValueError("Retry attempts are numbered from 1.")
        return min(self.base_ms * 2 ** (attempt - 1), self.cap_ms)

    def delay_seconds(self, attempt: int) -> float:
        return self.delay_ms(attempt) / 1000

    def exhausted(self, attempts_made: int) -> bool:
        return attempts_made >= self.max_attempts


class RetryToken:
    """Handle for one scheduled callback. Cancelling is idempotent."""

    __slots__ = ("delay_seconds", "_task", "_cancelled", "_fired")

    def __init__(self, delay_seconds: float) -> None:
        self.delay_seconds = delay_seconds
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False
        self._fired = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    def attach(self, task: asyncio.Task[None]) -> None:
        self._task = task

    def mark_fired(self) -> None:
        self._fired = True

    def cancel(self) -> None:
        self._cancelled = True
        # A callback that already started is left to notice the flag itself.
        if self._task is not None and not self._fired:
            self._task.cancel()


class RetryScheduler(Protocol):
    def schedule(self, delay_seconds: float, callback: RetryCallback) -> RetryToken: ...


class AsyncioRetryScheduler:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def schedule(self, delay_seconds: float, callback: RetryCallback) -> RetryToken:
        token = RetryToken(delay_seconds)
        task = asyncio.get_running_loop().create_task(self._run(token, callback))
        token.attach(task)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return token

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    @staticmethod
    async def _run(token: RetryToken, callback: RetryCallback) -> None:
        await asyncio.sleep(token.delay_seconds)
        if token.cancelled:
            return
        token.mark_fired()
        await callback()

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Scheduled retry callback failed", exc_info=error)

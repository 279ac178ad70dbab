from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Debouncer:
    """Collapse rapid calls into one: only the last call within `delay_s` runs.

    A new trigger cancels the pending call, including one that already started running.
    Must be triggered from inside a running event loop.
    """

    def __init__(self, delay_s: float, func: Callable[..., Awaitable[Any]]) -> None:
        self.delay_s = delay_s
        self._func = func
        self._task: Optional[asyncio.Task[None]] = None
        self._args: Tuple[Any, ...] = ()
        self._kwargs: Dict[str, Any] = {}

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self, *args: Any, **kwargs: Any) -> None:
        loop = asyncio.get_running_loop()
        self.cancel()
        self._args, self._kwargs = args, kwargs
        self._task = loop.create_task(self._run(args, kwargs))

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def flush(self) -> None:
        """Run the pending call now instead of waiting out the delay."""
        if not self.pending:
            return
        self.cancel()
        await self._func(*self._args, **self._kwargs)

    async def wait(self) -> None:
        """Wait until no call is pending (a call may be re-triggered while waiting)."""
        while self.pending:
            await asyncio.wait({self._task})

    async def _run(self, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> None:
        await asyncio.sleep(self.delay_s)
        try:
            await self._func(*args, **kwargs)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Debounced call %s failed", getattr(self._func, "__qualname__", self._func))


class LatestTaskRunner(Generic[T]):
    """Run the latest submission of a logical operation; superseded ones come back as None.

    Each submission takes a new generation number and cancels the previous in-flight task,
    so a late result from an older generation never replaces a newer one.
    """

    def __init__(self) -> None:
        self._generation = 0
        self._task: Optional[asyncio.Task[T]] = None

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def cancel(self) -> None:
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def run(self, factory: Callable[[], Awaitable[T]]) -> Optional[T]:
        self.cancel()
        generation = self._generation
        task = asyncio.ensure_future(factory())
        self._task = task
        try:
            result = await task
        except asyncio.CancelledError:
            if task.cancelled() and not self.is_current(generation):
                logger.debug("Generation %d superseded before completion", generation)
                return None
            raise
        if not self.is_current(generation):
            logger.debug("Discarding stale result from generation %d", generation)
            return None
        return result

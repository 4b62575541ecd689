"""Bounded-concurrency, minimum-interval executor for delegation and balance lookups."""

import asyncio
import time
from typing import Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")


class RateLimitedExecutor:
    """Owned by one orchestrator instance, so separate runs never share a queue."""

    def __init__(
        self,
        max_concurrency: int = 4,
        min_interval: float = 0.2,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._min_interval = min_interval
        self._sleep = sleep
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_start: float | None = None

    async def _wait_for_slot(self) -> None:
        async with self._lock:
            if self._last_start is not None:
                elapsed = self._clock() - self._last_start
                if elapsed < self._min_interval:
                    await self._sleep(self._min_interval - elapsed)
            self._last_start = self._clock()

    async def run(self, func: Callable[[], Awaitable[T]]) -> T:
        async with self._semaphore:
            await self._wait_for_slot()
            return await func()

    async def map(self, funcs: Iterable[Callable[[], Awaitable[T]]]) -> list[T]:
        """Run all calls under the limits; results come back in input order."""
        return list(await asyncio.gather(*(self.run(f) for f in funcs)))

"""Bounded-concurrency execution of async work items."""

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

from statsloader.observability.metrics import ITEMS_IN_FLIGHT

T = TypeVar("T")
R = TypeVar("R")


class BoundedWorkerPool:
    """Run a coroutine function over items with a fixed in-flight budget.

    Waiters on the semaphore are woken in FIFO order. ``run`` returns only
    once every item has a terminal outcome; exceptions are returned as
    values in the slot of the item that raised them.
    """

    def __init__(self, max_workers: int):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self.in_flight = 0
        self.peak_in_flight = 0

    async def run(
        self,
        items: Sequence[T],
        func: Callable[[T], Awaitable[R]],
    ) -> list[R | BaseException]:
        """Process all items.

        Args:
            items: Work items
            func: Coroutine function applied to each item

        Returns:
            Outcomes in input order
        """
        semaphore = asyncio.Semaphore(self.max_workers)

        async def worker(item: T) -> R:
            async with semaphore:
                self.in_flight += 1
                self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
                ITEMS_IN_FLIGHT.inc()
                try:
                    return await func(item)
                finally:
                    self.in_flight -= 1
                    ITEMS_IN_FLIGHT.dec()

        return await asyncio.gather(*(worker(item) for item in items), return_exceptions=True)

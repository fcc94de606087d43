"""
Bounded pool of worker coroutines.

A fixed number of workers pull items from an ``asyncio.Queue`` in dispatch
order and await the handler for each one. At most ``max_workers`` handlers
are in flight at any time; a worker that is waiting on a subprocess or a
retry sleep never blocks the others.

Error Handling:
    A handler error does not stop the pool. The failing item is logged,
    the remaining items still run, and the first error is re-raised once
    every worker has finished.

Example:
    >>> pool = WorkerPool(max_workers=2)
    >>> await pool.run(prs, handle_pr)
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Generic, TypeVar

import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")


class WorkerPool(Generic[T]):
    """Run an async handler over items with bounded concurrency."""

    def __init__(self, max_workers: int = 1) -> None:
        self.max_workers = max(1, max_workers)

    async def run(self, items: Iterable[T], handler: Callable[[T], Awaitable[None]]) -> None:
        """Dispatch every item to ``handler`` and wait for all of them.

        Raises:
            Exception: The first handler error, after all items were handled
        """
        queue: asyncio.Queue[T] = asyncio.Queue()
        for item in items:
            queue.put_nowait(item)

        if queue.empty():
            return

        errors: list[Exception] = []
        worker_count = min(self.max_workers, queue.qsize())
        log.debug("worker_pool_started", workers=worker_count, items=queue.qsize())

        async def worker(worker_id: int) -> None:
            while True:
                try:
                    item = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    await handler(item)
                except Exception as e:
                    log.error("worker_task_failed", worker=worker_id, error=str(e), exc_info=True)
                    errors.append(e)
                finally:
                    queue.task_done()

        workers = [asyncio.create_task(worker(i)) for i in range(worker_count)]
        await queue.join()
        await asyncio.gather(*workers)

        if errors:
            raise errors[0]

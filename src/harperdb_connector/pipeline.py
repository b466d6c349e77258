"""Batch pipeline: queue independent operations, run them concurrently.

Entries are bound at enqueue time and invoked together on drain(). Results
come back in submission order regardless of completion order. There is no
dependency graph: an entry must never need the result of another entry in
the same batch.

Usage:
    pipeline = BatchPipeline(max_concurrency=8)
    for record in records:
        pipeline.enqueue(client.select, record)
    results = await pipeline.drain()  # results[i] belongs to records[i]
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from collections.abc import Callable
from typing import Any

import structlog

from harperdb_connector.contracts import EmptyBatchError, InvalidArgumentError

logger = structlog.get_logger(__name__)


class BatchPipeline:
    """Deferred invocation queue drained with a concurrent fan-out/fan-in.

    Args:
        max_concurrency: Cap on entries in flight at once (None = unbounded)
    """

    def __init__(self, *, max_concurrency: int | None = None) -> None:
        if max_concurrency is not None and max_concurrency < 1:
            raise InvalidArgumentError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self._max_concurrency = max_concurrency
        self._queue: list[Callable[[], Any]] | None = None

    @property
    def max_concurrency(self) -> int | None:
        return self._max_concurrency

    def __len__(self) -> int:
        return len(self._queue) if self._queue is not None else 0

    def enqueue(self, operation: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Queue ``operation(*args, **kwargs)`` for the next drain.

        Raises:
            InvalidArgumentError: If ``operation`` is not callable.
        """
        if not callable(operation):
            raise InvalidArgumentError("Could not batch request without a handler function!")
        if self._queue is None:
            self._queue = []
        self._queue.append(functools.partial(operation, *args, **kwargs))

    async def drain(self, *, allow_empty: bool = False) -> list[Any]:
        """Run every queued entry concurrently and clear the queue.

        All entries are awaited even when some fail; the first failure in
        submission order is then raised.

        Args:
            allow_empty: Return ``[]`` instead of raising for an empty queue

        Raises:
            EmptyBatchError: Nothing queued and ``allow_empty`` is False.
        """
        entries, self._queue = self._queue or [], None
        if not entries:
            if allow_empty:
                return []
            raise EmptyBatchError()

        logger.debug("harperdb_pipeline_drain", size=len(entries), max_concurrency=self._max_concurrency)
        semaphore = asyncio.Semaphore(self._max_concurrency) if self._max_concurrency is not None else None

        async def run(entry: Callable[[], Any]) -> Any:
            if semaphore is None:
                return await _resolve(entry)
            async with semaphore:
                return await _resolve(entry)

        results = await asyncio.gather(*(run(entry) for entry in entries), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)


async def _resolve(entry: Callable[[], Any]) -> Any:
    result = entry()
    if inspect.isawaitable(result):
        return await result
    return result

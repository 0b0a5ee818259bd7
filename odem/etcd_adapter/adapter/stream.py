"""
Backpressure-aware asynchronous key stream.

A KeyStream produces keys lazily: nothing is fetched from the store until
the consumer asks for the first key. Produced keys pass through a bounded
queue, so production pauses whenever the consumer falls behind by
high_water_mark keys and resumes as soon as the consumer drains one.

Invariants:
    - Keys are yielded in production order, each exactly once
    - The stream ends after the last key; it is finite
    - A failure while producing ends the stream by raising the failure
      to the consumer, after all keys produced before it
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterable, AsyncIterator, Callable

logger = logging.getLogger(__name__)


class _End:
    """Marks regular end of production."""


class _Failure:
    """Carries a production error to the consumer."""

    def __init__(self, error: BaseException) -> None:
        self.error = error


_END = _End()


class KeyStream:
    """Forward-only asynchronous sequence of keys.

    Attributes:
        high_water_mark: Keys buffered before production pauses

    Example:
        >>> stream = adapter.key_stream(max_depth=1)
        >>> async for key in stream:
        ...     print(key)
    """

    def __init__(
        self,
        produce: Callable[[], AsyncIterable[str]],
        high_water_mark: int = 16,
    ) -> None:
        """Initialize the stream.

        Args:
            produce: Callable returning an async iterable of keys; called
                once, on first consumption
            high_water_mark: Capacity of the buffer between producer and
                consumer
        """
        self.high_water_mark = high_water_mark
        self._produce = produce
        self._queue: asyncio.Queue[Any] | None = None
        self._task: asyncio.Task | None = None
        self._finished = False

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def buffered(self) -> int:
        """Number of keys produced but not consumed yet."""
        return 0 if self._queue is None else self._queue.qsize()

    def __aiter__(self) -> AsyncIterator[str]:
        return self

    async def __anext__(self) -> str:
        if self._finished:
            raise StopAsyncIteration

        if self._task is None:
            self._start()

        item = await self._queue.get()

        if item is _END:
            self._finished = True
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._finished = True
            raise item.error

        return item

    async def __aenter__(self) -> KeyStream:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop production and discard buffered keys."""
        self._finished = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def collect(self) -> list[str]:
        """Consume the remaining stream into a list."""
        return [key async for key in self]

    def _start(self) -> None:
        self._queue = asyncio.Queue(maxsize=self.high_water_mark)
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        count = 0
        try:
            async for key in self._produce():
                # blocks while the buffer is full
                await self._queue.put(key)
                count += 1
        except Exception as e:
            logger.debug(f"Key stream failed after {count} key(s): {e}")
            await self._queue.put(_Failure(e))
            return

        await self._queue.put(_END)
        logger.debug(f"Key stream produced {count} key(s)")

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from loguru import logger

from thinking_relay.events import StreamEvent

_CLOSED = object()


class EventForwarder:
    """Bounded FIFO channel between one producer task and one consumer.

    ``send`` suspends while the channel is full. When the consumer calls
    ``detach`` the channel is abandoned: pending and future sends return
    False and the bound producer task is cancelled.
    """

    def __init__(self, capacity: int = 100):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, capacity))
        self._abandoned = asyncio.Event()
        self._closed = False
        self._producer: asyncio.Task | None = None

    @property
    def abandoned(self) -> bool:
        return self._abandoned.is_set()

    @property
    def closed(self) -> bool:
        return self._closed

    def bind_producer(self, task: asyncio.Task) -> None:
        self._producer = task

    async def send(self, event: StreamEvent) -> bool:
        """Queue ``event``; False means nobody is reading any more."""
        if self._closed:
            raise RuntimeError("send on a closed EventForwarder")
        return await self._put(event)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._put(_CLOSED)

    def detach(self) -> None:
        if self._abandoned.is_set():
            return
        self._abandoned.set()
        producer = self._producer
        if producer is None or producer.done() or self._closed:
            return
        if producer is asyncio.current_task():
            return
        logger.info("Stream consumer detached; cancelling pipeline task")
        producer.cancel()

    async def _put(self, item: object) -> bool:
        if self._abandoned.is_set():
            return False
        if not self._queue.full():
            self._queue.put_nowait(item)
            return True

        put = asyncio.ensure_future(self._queue.put(item))
        gone = asyncio.ensure_future(self._abandoned.wait())
        try:
            await asyncio.wait({put, gone}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (put, gone):
                if not task.done():
                    task.cancel()
        return put.done() and not put.cancelled()

    async def _get(self) -> object:
        if self._abandoned.is_set():
            return _CLOSED
        if not self._queue.empty():
            return self._queue.get_nowait()

        # A producer cancelled from outside detaches without queueing the sentinel.
        get = asyncio.ensure_future(self._queue.get())
        gone = asyncio.ensure_future(self._abandoned.wait())
        try:
            await asyncio.wait({get, gone}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (get, gone):
                if not task.done():
                    task.cancel()
        if get.done() and not get.cancelled():
            return get.result()
        return _CLOSED

    async def __aiter__(self) -> AsyncIterator[StreamEvent]:
        while True:
            item = await self._get()
            if item is _CLOSED:
                return
            yield item

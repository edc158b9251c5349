"""Thread-safe bridge from watchdog's dispatcher thread into asyncio."""
import asyncio
import logging
from typing import Optional

from drivewatch.models import WatchEvent

logger = logging.getLogger(__name__)

_CLOSED = object()


class WatchEventStream:
    """
    Async iterator of WatchEvent.

    ``push`` and ``close`` may be called from any thread; consumption happens
    on the loop the stream was created on.

    Usage:
        stream = watcher.start(root)
        async for event in stream:
            ...
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._exhausted = False

    @classmethod
    def empty(cls) -> "WatchEventStream":
        """A stream that is already closed (inert watch)."""
        stream = cls()
        stream.close()
        return stream

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: WatchEvent) -> None:
        if self._closed:
            return
        self._put(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._put(_CLOSED)

    def _put(self, item) -> None:
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            # Loop already closed; nobody is left to consume.
            logger.debug("Dropping watch event, event loop is closed: %r", item)

    async def get(self) -> Optional[WatchEvent]:
        """Next event, or None once the stream is closed and drained."""
        if self._exhausted:
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            self._exhausted = True
            return None
        return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> WatchEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

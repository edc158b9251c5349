import asyncio
import inspect
import logging
from typing import Any, Callable, List, Optional, Set, Union

from drivewatch.models import StatusEvent
from drivewatch.protocols import INotifier

logger = logging.getLogger(__name__)

Listener = Callable[[StatusEvent], Any]


class StatusBus:
    """
    Fan-out of status events to notifiers.

    ``publish`` never blocks the caller: listener calls are scheduled as a
    task on the running loop, in publish order. Listener errors are logged.
    """

    def __init__(self, *notifiers: Union[INotifier, Listener]):
        self._listeners: List[Listener] = []
        self._pending: Set[asyncio.Task] = set()
        self._lock: Optional[asyncio.Lock] = None
        for notifier in notifiers:
            self.subscribe(notifier)

    def subscribe(self, notifier: Union[INotifier, Listener]) -> None:
        """Add a notifier object (with ``notify``) or a plain callable."""
        callback = notifier.notify if hasattr(notifier, "notify") else notifier
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unsubscribe(self, notifier: Union[INotifier, Listener]) -> None:
        callback = notifier.notify if hasattr(notifier, "notify") else notifier
        if callback in self._listeners:
            self._listeners.remove(callback)

    def publish(self, event: StatusEvent) -> None:
        """Schedule delivery of ``event`` without waiting for listeners."""
        logger.debug("Status: %s", event.describe())
        if not self._listeners:
            return
        task = asyncio.get_running_loop().create_task(self._deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def emit(self, event: StatusEvent) -> None:
        """Deliver ``event`` and wait for every listener."""
        await self._deliver(event)

    async def drain(self) -> None:
        """Wait until every published event has been delivered."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, event: StatusEvent) -> None:
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            for callback in self._listeners[:]:  # Copy list to avoid modification during iteration
                try:
                    result = callback(event)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(f"Error in status listener for {event.kind.value}: {e}")

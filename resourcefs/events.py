"""Change notifications emitted by the filesystem engine.

Listeners receive a list of events per operation (a rename produces a
DELETED event for the source and a CREATED event for the destination).
Hosts that prefer pulling can attach a bounded asyncio queue instead.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable

logger = logging.getLogger(__name__)


class FileChangeType(IntEnum):
    CHANGED = 1
    CREATED = 2
    DELETED = 3


@dataclass(frozen=True)
class FileChangeEvent:
    """A single change to one path."""

    type: FileChangeType
    path: str
    old_path: str | None = None  # Set on the destination event of a rename


Listener = Callable[[list[FileChangeEvent]], None]


class EventEmitter:
    """Explicit publish/subscribe channel for file change events."""

    def __init__(self):
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            A callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def queue(self, maxsize: int = 100) -> asyncio.Queue:
        """Attach a bounded queue that receives every batch of events.

        When the queue is full the oldest batch is dropped.
        """
        events: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

        def enqueue(batch: list[FileChangeEvent]) -> None:
            if events.full():
                dropped = events.get_nowait()
                logger.warning(f"Event queue full, dropped {len(dropped)} events")
            events.put_nowait(batch)

        self.subscribe(enqueue)
        return events

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def fire(self, events: list[FileChangeEvent]) -> None:
        """Deliver a batch of events to every listener.

        A failing listener is logged and does not stop delivery to the others.
        """
        if not events:
            return
        for listener in list(self._listeners):
            try:
                listener(events)
            except Exception as e:
                logger.error(f"Change listener {listener!r} failed: {e}")

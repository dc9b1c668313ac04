"""
In-process event bus.

The runner emits status, listing and application events here for any
front end to consume. Emission never blocks: when the queue is full the
oldest event is dropped.
"""

import asyncio
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .models import utc_now_iso

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    AUTOMATION_STATUS = "automation:status"
    JOBS_NEW = "jobs:new"
    APPLICATION_PROGRESS = "application:progress"
    APPLICATION_PAUSE_QUESTION = "application:pause-question"
    APPLICATION_COMPLETE = "application:complete"


@dataclass
class Event:
    type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)


class EventBus:
    def __init__(self, maxsize: int = 1000):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def emit(self, event_type: EventType, payload: Optional[Dict[str, Any]] = None):
        event = Event(type=event_type, payload=payload or {})
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self.dropped += 1
            self._queue.put_nowait(event)
            logger.debug(f"Event queue full, dropped oldest event ({self.dropped} total)")

    async def get(self) -> Event:
        return await self._queue.get()

    def drain(self) -> List[Event]:
        """Remove and return every queued event."""
        events = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def qsize(self) -> int:
        return self._queue.qsize()

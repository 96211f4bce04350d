"""
Execution event publishing.

The executor reports progress through an injected EventPublisher so the
transport (SSE fan-out, a message bus, nothing at all) stays outside the engine.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

EXECUTION_STARTED = "execution_started"
NODE_OUTPUT = "node_output"
EXECUTION_COMPLETED = "execution_completed"
EXECUTION_FAILED = "execution_failed"


def make_event(event_type: str, **fields: Any) -> Dict[str, Any]:
    return {
        "type": event_type,
        **fields,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class EventPublisher(ABC):
    """Publishes workflow events keyed by workflow id."""

    @abstractmethod
    async def publish(self, workflow_id: str, event: Dict[str, Any]) -> None:
        pass


class NullEventPublisher(EventPublisher):
    """Discards every event."""

    async def publish(self, workflow_id: str, event: Dict[str, Any]) -> None:
        return None


class InMemoryEventBus(EventPublisher):
    """Single-process pub/sub; each subscriber gets its own queue."""

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self._subscribers: Dict[str, List[asyncio.Queue]] = defaultdict(list)

    def subscribe(self, workflow_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._subscribers[workflow_id].append(queue)
        return queue

    def unsubscribe(self, workflow_id: str, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(workflow_id, [])
        if queue in subscribers:
            subscribers.remove(queue)
        if not subscribers:
            self._subscribers.pop(workflow_id, None)

    def subscriber_count(self, workflow_id: str) -> int:
        return len(self._subscribers.get(workflow_id, []))

    async def publish(self, workflow_id: str, event: Dict[str, Any]) -> None:
        for queue in list(self._subscribers.get(workflow_id, [])):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Dropping {event.get('type')} event for slow subscriber of {workflow_id}")

"""
In-process event bus for session notifications.

The request gateway publishes ``session_expired`` here when it gives up on
an unauthorized request; UI code subscribes and navigates to the sign-in
page.  Every subscriber gets its own queue, so each one sees every event
published after it subscribed.  Events published with no subscribers are
dropped.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, AsyncIterator, Dict, List


SESSION_EXPIRED = "session_expired"


class EventBus:
    def __init__(self) -> None:
        self._subscribers: Dict[str, List[asyncio.Queue]] = defaultdict(list)

    async def publish(self, event_type: str, data: Any) -> None:
        """Deliver an event to every current subscriber of ``event_type``."""
        for queue in list(self._subscribers.get(event_type, ())):
            await queue.put(data)

    async def subscribe(self, event_type: str) -> AsyncIterator[Any]:
        """Yield events of a given type as they arrive."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers[event_type].append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers[event_type].remove(queue)

    def subscriber_count(self, event_type: str) -> int:
        return len(self._subscribers.get(event_type, ()))

"""In-process notifications about node progress."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Union

logger = logging.getLogger(__name__)

# Published after every dispatch cycle: node, cycle, total, remaining, peers
PROGRESS = "progress"
# Published when a root computation is composed: node, seed, result
COMPUTATION_FINISHED = "computation_finished"

Callback = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


class EventBus:
    """Minimal async event bus for monitoring surfaces."""

    def __init__(self):
        self._subscribers: Dict[str, List[Callback]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, event_name: str, callback: Callback) -> None:
        async with self._lock:
            self._subscribers.setdefault(event_name, []).append(callback)

    async def unsubscribe(self, event_name: str, callback: Callback) -> None:
        async with self._lock:
            if event_name in self._subscribers:
                self._subscribers[event_name] = [
                    cb for cb in self._subscribers[event_name] if cb != callback
                ]

    async def broadcast(self, event_name: str, payload: Dict[str, Any]) -> None:
        async with self._lock:
            callbacks = list(self._subscribers.get(event_name, []))
        for cb in callbacks:
            try:
                result = cb(payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                # one broken listener must not stop the others or the caller
                logger.debug(f"[EVENTS] Listener for {event_name} failed: {e}")


# Global singleton
event_bus = EventBus()

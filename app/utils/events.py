from typing import Any, Callable, Dict, List, Set
import asyncio
import logging

logger = logging.getLogger(__name__)


class EventTypes:
    EMAIL_SEND_REQUESTED = "email_send_requested"


class EventBus:
    """
    In-process publish/subscribe.

    ``publish`` schedules handlers as background tasks and returns
    immediately; handler failures are logged and never reach the publisher.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}
        self._pending: Set[asyncio.Future] = set()

    def subscribe(self, event_type: str, handler: Callable):
        self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: str, handler: Callable):
        if handler in self._handlers.get(event_type, []):
            self._handlers[event_type].remove(handler)

    async def publish(self, event_type: str, data: Dict[str, Any]):
        handlers = self._handlers.get(event_type, [])
        if not handlers:
            logger.debug(f"No handlers for event {event_type}")
            return

        loop = asyncio.get_running_loop()
        for handler in handlers:
            if asyncio.iscoroutinefunction(handler):
                task = loop.create_task(self._run_async_handler(handler, data))
            else:
                task = loop.run_in_executor(None, self._run_sync_handler, handler, data)
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def drain(self):
        """Wait for every handler scheduled so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _run_async_handler(self, handler: Callable, data: Dict[str, Any]):
        try:
            await handler(data)
        except Exception as e:
            logger.error(f"Error in event handler {handler.__name__}: {e}")

    def _run_sync_handler(self, handler: Callable, data: Dict[str, Any]):
        try:
            handler(data)
        except Exception as e:
            logger.error(f"Error in sync event handler {handler.__name__}: {e}")


event_bus = EventBus()

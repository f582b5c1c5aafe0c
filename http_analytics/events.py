"""Publish/subscribe fan-out for agent and log events."""

import inspect
from typing import Any, Callable

import structlog


logger = structlog.get_logger(__name__)

CHECK_COMPLETED = "check-completed"
INSIGHT = "insight"
REPORT_GENERATED = "report-generated"
ERROR = "error"
ENDPOINT_DOWN = "endpoint-down"
LOG_CREATED = "log-created"
AI_ALERT = "ai-alert"

Callback = Callable[[Any], Any]


class Subscription:
    """Handle returned by :meth:`EventBus.subscribe`."""

    def __init__(self, bus: "EventBus", event: str, callback: Callback):
        self.bus = bus
        self.event = event
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self.bus.unsubscribe(self.event, self.callback)


class EventBus:
    """In-process event bus.

    Subscribers may be plain functions or coroutine functions. Delivery is in
    subscription order; a failing subscriber is logged and skipped.
    """

    def __init__(self):
        self._subscribers: dict[str, list[Callback]] = {}

    def subscribe(self, event: str, callback: Callback) -> Subscription:
        self._subscribers.setdefault(event, []).append(callback)
        return Subscription(self, event, callback)

    def unsubscribe(self, event: str, callback: Callback) -> bool:
        callbacks = self._subscribers.get(event)
        if not callbacks or callback not in callbacks:
            return False
        callbacks.remove(callback)
        if not callbacks:
            del self._subscribers[event]
        return True

    def subscriber_count(self, event: str) -> int:
        return len(self._subscribers.get(event, []))

    async def publish(self, event: str, payload: Any) -> int:
        """Deliver ``payload`` to every subscriber of ``event``.

        Returns the number of subscribers that received it without error.
        """
        delivered = 0
        # Copy so callbacks may unsubscribe while we iterate.
        for callback in list(self._subscribers.get(event, [])):
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.error("Event subscriber failed", event_name=event, error=str(e))
        return delivered

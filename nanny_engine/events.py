"""
Engine event stream.

The engine never touches presentation state; it publishes events and
view-models that subscribers consume.
"""
import asyncio
import inspect
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)


class EngineEventType(str, Enum):
    """Types of engine events."""
    CYCLE_STARTED = "cycle_started"
    CYCLE_SUCCEEDED = "cycle_succeeded"
    CYCLE_FAILED = "cycle_failed"
    HEAP_LOW = "heap_low"
    HISTORY_CLEARED = "history_cleared"
    VIEW_MODEL_UPDATED = "view_model_updated"
    NOTIFICATION = "notification"
    SCHEDULER_SUSPENDED = "scheduler_suspended"
    SCHEDULER_RESUMED = "scheduler_resumed"


class NotificationSeverity(str, Enum):
    """Notification severity levels."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class EngineEvent:
    """A single event on the engine stream."""
    type: EngineEventType
    time_ms: int
    cycle_token: Optional[int] = None
    reason: Optional[str] = None
    payload: Any = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload = self.payload
        if hasattr(payload, "to_dict"):
            payload = payload.to_dict()
        return {
            "type": self.type.value,
            "time_ms": self.time_ms,
            "cycle_token": self.cycle_token,
            "reason": self.reason,
            "payload": payload,
            "details": self.details,
        }


Handler = Callable[[EngineEvent], Any]


@dataclass
class _Subscription:
    handler: Handler
    event_types: Optional[Set[EngineEventType]] = None

    def accepts(self, event: EngineEvent) -> bool:
        return self.event_types is None or event.type in self.event_types


class EventBus:
    """
    In-process publish/subscribe for engine events.

    Handlers may be plain callables or coroutine functions. A failing
    handler is logged and does not affect other subscribers.
    """

    def __init__(self, history_size: int = 100):
        self._subscriptions: List[_Subscription] = []
        self._history: Deque[EngineEvent] = deque(maxlen=history_size)

    def subscribe(
        self,
        handler: Handler,
        event_types: Optional[Iterable[EngineEventType]] = None,
    ) -> Callable[[], None]:
        """
        Register a handler.

        Args:
            handler: Called with each matching EngineEvent.
            event_types: Restrict to these types; all events if None.

        Returns:
            Callable that removes the subscription.
        """
        subscription = _Subscription(
            handler=handler,
            event_types=set(event_types) if event_types is not None else None,
        )
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    async def publish(self, event: EngineEvent) -> None:
        """Deliver an event to every matching subscriber."""
        self._history.append(event)
        for subscription in list(self._subscriptions):
            if not subscription.accepts(event):
                continue
            try:
                result = subscription.handler(event)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in {event.type.value} subscriber: {e}")

    def recent(self, limit: int = 50) -> List[EngineEvent]:
        """Return the most recent events, oldest first."""
        if limit <= 0:
            return []
        return list(self._history)[-limit:]


class Notifier:
    """
    Rate-limited user notifications.

    Transient errors repeat every cycle while a device is down; at most one
    notification per key is published within min_interval_ms.
    """

    def __init__(
        self,
        bus: EventBus,
        now_ms: Callable[[], int],
        min_interval_ms: int = 6000,
    ):
        self._bus = bus
        self._now_ms = now_ms
        self._min_interval_ms = min_interval_ms
        self._last_sent: Dict[str, int] = {}

    async def notify(
        self,
        key: str,
        message: str,
        severity: NotificationSeverity = NotificationSeverity.ERROR,
        cycle_token: Optional[int] = None,
    ) -> bool:
        """
        Publish a notification unless one with the same key was sent recently.

        Returns:
            True if published.
        """
        now = self._now_ms()
        last = self._last_sent.get(key)
        if last is not None and now - last < self._min_interval_ms:
            logger.debug(f"Suppressed notification {key}: {message}")
            return False

        self._last_sent[key] = now
        await self._bus.publish(EngineEvent(
            type=EngineEventType.NOTIFICATION,
            time_ms=now,
            cycle_token=cycle_token,
            reason=key,
            payload={
                "message": message,
                "severity": severity.value,
                "dismissible": True,
            },
        ))
        return True

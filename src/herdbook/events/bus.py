"""In-process event bus connecting stores and workflows to the UI layer.

The bus keeps a bounded buffer of recent events so a view attached late can
replay what it missed, plus a separate buffer of notifications that a burst
of feed events cannot evict. Registered hooks are called synchronously on publish.
"""

from collections import deque
from collections.abc import Callable

import structlog

from herdbook.events.types import EventType, HerdbookEvent, Notification

logger = structlog.get_logger(__name__)

EventHook = Callable[[HerdbookEvent], None]


class EventBus:
    """Synchronous publish/subscribe with a replay buffer.

    Usage:
        bus = EventBus()
        unsubscribe = bus.add_hook(render)

        bus.publish(some_event)

        unsubscribe()
    """

    def __init__(self, buffer_size: int = 100):
        self._event_buffer: deque[HerdbookEvent] = deque(maxlen=buffer_size)
        self._notifications: deque[Notification] = deque(maxlen=buffer_size)
        self._event_hooks: list[EventHook] = []
        self._logger = logger.bind(component="event_bus")

    @property
    def recent_events(self) -> list[HerdbookEvent]:
        """Get recently published events."""
        return list(self._event_buffer)

    @property
    def notifications(self) -> list[Notification]:
        """Recent user-facing notifications, oldest first."""
        return list(self._notifications)

    def events_of(self, event_type: EventType) -> list[HerdbookEvent]:
        return [e for e in self._event_buffer if e.event_type == event_type]

    def add_hook(self, hook: EventHook) -> Callable[[], None]:
        """Add a hook to be called for every event.

        Returns:
            A callable that removes the hook again.
        """
        self._event_hooks.append(hook)
        return lambda: self.remove_hook(hook)

    def remove_hook(self, hook: EventHook) -> None:
        """Remove an event hook."""
        if hook in self._event_hooks:
            self._event_hooks.remove(hook)

    def publish(self, event: HerdbookEvent) -> None:
        """Buffer an event and hand it to every hook.

        A failing hook is logged and skipped; it never reaches the publisher.
        """
        self._event_buffer.append(event)
        if isinstance(event, Notification):
            self._notifications.append(event)

        for hook in list(self._event_hooks):
            try:
                hook(event)
            except Exception as e:
                self._logger.error(
                    "event_hook_error",
                    event_type=event.event_type.value,
                    error=str(e),
                )

    def clear(self) -> None:
        self._event_buffer.clear()
        self._notifications.clear()

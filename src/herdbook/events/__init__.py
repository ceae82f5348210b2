"""Events published by stores, workflows and the advisory service."""

from herdbook.events.bus import EventBus, EventHook
from herdbook.events.types import (
    EventType,
    HerdbookEvent,
    Notification,
    StoreEvent,
    advisory_failed,
    advisory_generated,
    invoice_drafted,
    notify,
    record_changed,
    sale_recorded,
    sale_step_failed,
    snapshot_received,
    store_degraded,
)

__all__ = [
    "EventBus",
    "EventHook",
    "EventType",
    "HerdbookEvent",
    "Notification",
    "StoreEvent",
    "advisory_failed",
    "advisory_generated",
    "invoice_drafted",
    "notify",
    "record_changed",
    "sale_recorded",
    "sale_step_failed",
    "snapshot_received",
    "store_degraded",
]

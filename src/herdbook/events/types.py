"""Event type definitions for store and workflow activity.

Events are what the UI layer listens to: store snapshots to re-render from,
workflow outcomes, and user-facing notifications (toasts).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal
from uuid import UUID, uuid4


class EventType(str, Enum):
    """Types of events published on the event bus."""

    # Entity store
    SNAPSHOT_RECEIVED = "store.snapshot"
    RECORD_CREATED = "record.created"
    RECORD_UPDATED = "record.updated"
    RECORD_DELETED = "record.deleted"
    STORE_DEGRADED = "store.degraded"

    # Sale workflow
    SALE_RECORDED = "sale.recorded"
    INVOICE_DRAFTED = "invoice.drafted"
    SALE_STEP_FAILED = "sale.step_failed"

    # Advisory text service
    ADVISORY_GENERATED = "advisory.generated"
    ADVISORY_FAILED = "advisory.failed"

    # User-facing
    NOTIFICATION = "notification"


@dataclass
class HerdbookEvent:
    """Base event structure for all events."""

    event_type: EventType
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: UUID = field(default_factory=uuid4)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary for JSON transmission."""
        return {
            "id": str(self.event_id),
            "type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


@dataclass
class StoreEvent(HerdbookEvent):
    """Event raised by an entity store."""

    entity: str = ""
    record_id: str | None = None
    degraded: bool = False

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["store"] = {
            "entity": self.entity,
            "record_id": self.record_id,
            "degraded": self.degraded,
        }
        return base


@dataclass
class Notification(HerdbookEvent):
    """A short message for the user, shown as a toast."""

    title: str = ""
    description: str = ""
    level: Literal["info", "error"] = "info"

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["notification"] = {
            "title": self.title,
            "description": self.description,
            "level": self.level,
        }
        return base


# =============================================================================
# Factory functions
# =============================================================================


def snapshot_received(entity: str, count: int, degraded: bool = False) -> StoreEvent:
    """Create a snapshot event; listeners should re-read the store."""
    return StoreEvent(
        event_type=EventType.SNAPSHOT_RECEIVED,
        entity=entity,
        degraded=degraded,
        data={"count": count},
    )


def record_changed(
    event_type: EventType, entity: str, record_id: str, degraded: bool = False
) -> StoreEvent:
    """Create a record created/updated/deleted event."""
    return StoreEvent(
        event_type=event_type,
        entity=entity,
        record_id=record_id,
        degraded=degraded,
    )


def store_degraded(entity: str, reason: str) -> StoreEvent:
    """Create an event for a store falling back to local state."""
    return StoreEvent(
        event_type=EventType.STORE_DEGRADED,
        entity=entity,
        degraded=True,
        data={"reason": reason},
    )


def sale_recorded(asset_id: str, amount: str, transaction_id: str) -> HerdbookEvent:
    return HerdbookEvent(
        event_type=EventType.SALE_RECORDED,
        data={"asset_id": asset_id, "amount": amount, "transaction_id": transaction_id},
    )


def invoice_drafted(asset_id: str, invoice_id: str) -> HerdbookEvent:
    return HerdbookEvent(
        event_type=EventType.INVOICE_DRAFTED,
        data={"asset_id": asset_id, "invoice_id": invoice_id},
    )


def sale_step_failed(asset_id: str, step: str, error: str) -> HerdbookEvent:
    """Create an event for a sale side effect that could not be written."""
    return HerdbookEvent(
        event_type=EventType.SALE_STEP_FAILED,
        data={"asset_id": asset_id, "step": step, "error": error},
    )


def advisory_generated(kind: str) -> HerdbookEvent:
    return HerdbookEvent(event_type=EventType.ADVISORY_GENERATED, data={"kind": kind})


def advisory_failed(kind: str, error: str) -> HerdbookEvent:
    return HerdbookEvent(
        event_type=EventType.ADVISORY_FAILED,
        data={"kind": kind, "error": error},
    )


def notify(title: str, description: str = "", level: Literal["info", "error"] = "info") -> Notification:
    """Create a user-facing notification."""
    return Notification(
        event_type=EventType.NOTIFICATION,
        title=title,
        description=description,
        level=level,
    )

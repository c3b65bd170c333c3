"""Event type definitions for WebSocket publishing.

These events are pushed to connected dashboard clients so that liability
figures, stock warnings and sync results refresh without polling.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventType(str, Enum):
    """Types of events published by the ledger."""

    # Ledger mutations
    ENTRY_RECORDED = "ledger.entry_recorded"
    PAYMENT_REVERSED = "ledger.payment_reversed"
    LIABILITY_RESET = "ledger.liability_reset"

    # Derived state
    LIABILITY_UPDATED = "liability.updated"
    LIABILITY_ALERT = "liability.alert"
    STOCK_WARNING = "stock.warning"
    STOCK_CONFIG_CHANGED = "stock.config_changed"

    # Managers
    MANAGER_UPDATED = "manager.updated"

    # Feed sync
    SYNC_STARTED = "sync.started"
    SYNC_COMPLETED = "sync.completed"

    # Errors
    ERROR = "error"


@dataclass
class RanchEvent:
    """Base event structure for all ledger events."""

    event_type: EventType
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
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
class LedgerEvent(RanchEvent):
    """A new ledger entry was stored."""

    manager_id: str = ""
    entry_id: str = ""
    kind: str = ""
    amount: Decimal = Decimal("0")
    category: str = ""
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["entry"] = {
            "id": self.entry_id,
            "kind": self.kind,
            "amount": str(self.amount),
            "category": self.category,
            "reason": self.reason,
        }
        base["manager_id"] = self.manager_id
        return base


@dataclass
class LiabilityEvent(RanchEvent):
    """A manager's liability changed or crossed the alert threshold."""

    manager_id: str = ""
    manager_name: str = ""
    outstanding_amount: Decimal = Decimal("0")
    threshold: Decimal | None = None
    severity: str = "ok"

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["liability"] = {
            "outstanding_amount": str(self.outstanding_amount),
            "threshold": str(self.threshold) if self.threshold is not None else None,
            "severity": self.severity,
        }
        base["manager_id"] = self.manager_id
        base["manager_name"] = self.manager_name
        return base


@dataclass
class StockEvent(RanchEvent):
    """Stock warning or configuration change for one item."""

    item_id: str = ""
    display_name: str = ""
    status: str = ""
    current: int | None = None

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["stock"] = {
            "item_id": self.item_id,
            "display_name": self.display_name,
            "status": self.status,
            "current": self.current,
        }
        return base


@dataclass
class SyncEvent(RanchEvent):
    """Feed sync lifecycle."""

    synced: int = 0
    excluded: int = 0
    failed: list[str] = field(default_factory=list)
    duplicates: int = 0
    skipped: int = 0
    feed_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["sync"] = {
            "synced": self.synced,
            "excluded": self.excluded,
            "failed": list(self.failed),
            "duplicates": self.duplicates,
            "skipped": self.skipped,
            "feed_error": self.feed_error,
        }
        return base


# Factory functions for creating events


def entry_recorded(entry: Any) -> LedgerEvent:
    """Create an event for a stored ledger entry."""
    event_type = (
        EventType.PAYMENT_REVERSED
        if entry.kind == "payment_reversal"
        else EventType.LIABILITY_RESET
        if entry.kind == "adjustment"
        else EventType.ENTRY_RECORDED
    )
    return LedgerEvent(
        event_type=event_type,
        manager_id=entry.manager_id,
        entry_id=entry.id,
        kind=entry.kind,
        amount=entry.amount,
        category=entry.category,
        reason=entry.reason,
    )


def liability_updated(
    manager_id: str, manager_name: str, outstanding: Decimal
) -> LiabilityEvent:
    """Create a liability updated event."""
    return LiabilityEvent(
        event_type=EventType.LIABILITY_UPDATED,
        manager_id=manager_id,
        manager_name=manager_name,
        outstanding_amount=outstanding,
    )


def liability_alert(
    manager_id: str,
    manager_name: str,
    outstanding: Decimal,
    threshold: Decimal,
    severity: str = "critico",
) -> LiabilityEvent:
    """Create a liability alert event."""
    return LiabilityEvent(
        event_type=EventType.LIABILITY_ALERT,
        manager_id=manager_id,
        manager_name=manager_name,
        outstanding_amount=outstanding,
        threshold=threshold,
        severity=severity,
        data={
            "message": f"{manager_name or manager_id} owes {outstanding} (limit {threshold})"
        },
    )


def stock_warning(
    item_id: str, display_name: str, status: str, current: int | None
) -> StockEvent:
    """Create a stock warning event."""
    return StockEvent(
        event_type=EventType.STOCK_WARNING,
        item_id=item_id,
        display_name=display_name,
        status=status,
        current=current,
    )


def stock_config_changed(item_id: str, action: str) -> StockEvent:
    """Create a stock config changed event."""
    return StockEvent(
        event_type=EventType.STOCK_CONFIG_CHANGED,
        item_id=item_id,
        data={"action": action},
    )


def manager_updated(manager_id: str, action: str) -> RanchEvent:
    """Create a manager updated event."""
    return RanchEvent(
        event_type=EventType.MANAGER_UPDATED,
        data={"manager_id": manager_id, "action": action},
    )


def sync_started(activity_count: int) -> SyncEvent:
    """Create a sync started event."""
    return SyncEvent(
        event_type=EventType.SYNC_STARTED,
        data={"activity_count": activity_count},
    )


def sync_completed(
    synced: int,
    excluded: int,
    failed: list[str],
    duplicates: int = 0,
    skipped: int = 0,
    feed_error: str | None = None,
) -> SyncEvent:
    """Create a sync completed event."""
    return SyncEvent(
        event_type=EventType.SYNC_COMPLETED,
        synced=synced,
        excluded=excluded,
        failed=list(failed),
        duplicates=duplicates,
        skipped=skipped,
        feed_error=feed_error,
    )


def error_event(message: str, details: dict[str, Any] | None = None) -> RanchEvent:
    """Create an error event."""
    return RanchEvent(
        event_type=EventType.ERROR,
        data={"message": message, "details": details or {}},
    )

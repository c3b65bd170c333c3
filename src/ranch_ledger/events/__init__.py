"""Real-time ledger events and their WebSocket publisher."""

from ranch_ledger.events.publisher import (
    EventPublisher,
    get_publisher,
)
from ranch_ledger.events.types import (
    EventType,
    LedgerEvent,
    LiabilityEvent,
    RanchEvent,
    StockEvent,
    SyncEvent,
    entry_recorded,
    error_event,
    liability_alert,
    liability_updated,
    manager_updated,
    stock_config_changed,
    stock_warning,
    sync_completed,
    sync_started,
)

__all__ = [
    # Publisher
    "EventPublisher",
    "get_publisher",
    # Types
    "EventType",
    "RanchEvent",
    "LedgerEvent",
    "LiabilityEvent",
    "StockEvent",
    "SyncEvent",
    # Factories
    "entry_recorded",
    "error_event",
    "liability_alert",
    "liability_updated",
    "manager_updated",
    "stock_config_changed",
    "stock_warning",
    "sync_completed",
    "sync_started",
]

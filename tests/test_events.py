"""Tests for the event system."""

import asyncio
import json
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from websockets.asyncio.client import connect

from ranch_ledger.events import (
    EventPublisher,
    EventType,
    RanchEvent,
    entry_recorded,
    error_event,
    get_publisher,
    liability_alert,
    liability_updated,
    manager_updated,
    stock_config_changed,
    stock_warning,
    sync_completed,
    sync_started,
)
from ranch_ledger.events.publisher import ClientConnection
from ranch_ledger.events.types import LedgerEvent, LiabilityEvent, StockEvent, SyncEvent
from ranch_ledger.models import EntryKind, build_entry


def _client(*, events=(), managers=()):
    mock_ws = MagicMock()
    mock_ws.remote_address = ("127.0.0.1", 12345)
    client = ClientConnection(websocket=mock_ws)
    client.subscribed_events.update(events)
    client.subscribed_managers.update(managers)
    return client


class TestEventTypes:
    """Tests for event type definitions."""

    def test_event_type_values(self):
        """Test that all event types have correct values."""
        assert EventType.ENTRY_RECORDED.value == "ledger.entry_recorded"
        assert EventType.LIABILITY_ALERT.value == "liability.alert"
        assert EventType.STOCK_WARNING.value == "stock.warning"
        assert EventType.SYNC_COMPLETED.value == "sync.completed"

    def test_ranch_event_to_dict(self):
        """Test basic event serialization."""
        event = RanchEvent(event_type=EventType.MANAGER_UPDATED, data={"manager_id": "267"})

        result = event.to_dict()

        assert result["type"] == "manager.updated"
        assert result["data"]["manager_id"] == "267"
        assert "id" in result
        assert "timestamp" in result

    def test_ledger_event_to_dict(self):
        """Test ledger event serialization."""
        event = LedgerEvent(
            event_type=EventType.ENTRY_RECORDED,
            manager_id="267",
            entry_id="abc",
            kind="withdrawal",
            amount=Decimal("12.50"),
            category="outros",
            reason="float",
        )

        result = event.to_dict()

        assert result["manager_id"] == "267"
        assert result["entry"]["amount"] == "12.50"
        assert result["entry"]["kind"] == "withdrawal"
        json.dumps(result)

    def test_liability_event_to_dict(self):
        """Test liability event serialization."""
        event = LiabilityEvent(
            event_type=EventType.LIABILITY_UPDATED,
            manager_id="267",
            manager_name="Cliff Dillimore",
            outstanding_amount=Decimal("300.00"),
        )

        result = event.to_dict()

        assert result["liability"] == {
            "outstanding_amount": "300.00",
            "threshold": None,
            "severity": "ok",
        }
        assert result["manager_name"] == "Cliff Dillimore"

    def test_stock_event_to_dict(self):
        """Test stock event serialization."""
        event = StockEvent(
            event_type=EventType.STOCK_WARNING,
            item_id="milho",
            display_name="Milho",
            status="critico",
            current=3,
        )

        assert event.to_dict()["stock"]["current"] == 3

    def test_sync_event_to_dict(self):
        """Test sync event serialization."""
        event = SyncEvent(event_type=EventType.SYNC_COMPLETED, synced=4, failed=["x"])

        result = event.to_dict()

        assert result["sync"]["synced"] == 4
        assert result["sync"]["failed"] == ["x"]


class TestEventFactories:
    """Tests for event factory functions."""

    @pytest.mark.parametrize(
        ("kind", "fields", "expected"),
        [
            (EntryKind.WITHDRAWAL, {}, EventType.ENTRY_RECORDED),
            (EntryKind.PAYMENT_REVERSAL, {"reverses_id": "p1"}, EventType.PAYMENT_REVERSED),
            (EntryKind.ADJUSTMENT, {"direction": "credit"}, EventType.LIABILITY_RESET),
        ],
    )
    def test_entry_recorded(self, kind, fields, expected):
        """Test entry_recorded picks the event type from the entry kind."""
        entry = build_entry(kind, manager_id="267", amount=Decimal("10"), **fields)

        event = entry_recorded(entry)

        assert event.event_type == expected
        assert event.entry_id == entry.id
        assert event.kind == kind.value

    def test_liability_updated(self):
        """Test liability_updated factory."""
        event = liability_updated("267", "Cliff", Decimal("10"))

        assert event.event_type == EventType.LIABILITY_UPDATED
        assert event.outstanding_amount == Decimal("10")

    def test_liability_alert(self):
        """Test liability_alert factory."""
        event = liability_alert("267", "Cliff", Decimal("500"), Decimal("200"))

        assert event.event_type == EventType.LIABILITY_ALERT
        assert event.severity == "critico"
        assert event.threshold == Decimal("200")
        assert "Cliff" in event.data["message"]

    def test_stock_warning(self):
        """Test stock_warning factory."""
        event = stock_warning("milho", "Milho", "aviso", 12)

        assert event.event_type == EventType.STOCK_WARNING
        assert event.status == "aviso"

    def test_stock_config_changed(self):
        """Test stock_config_changed factory."""
        event = stock_config_changed("milho", "deleted")

        assert event.event_type == EventType.STOCK_CONFIG_CHANGED
        assert event.data["action"] == "deleted"

    def test_manager_updated(self):
        """Test manager_updated factory."""
        event = manager_updated("267", "deactivated")

        assert event.event_type == EventType.MANAGER_UPDATED
        assert event.data == {"manager_id": "267", "action": "deactivated"}

    def test_sync_started(self):
        """Test sync_started factory."""
        assert sync_started(12).data["activity_count"] == 12

    def test_sync_completed(self):
        """Test sync_completed factory."""
        failed = ["a"]
        event = sync_completed(3, 1, failed, duplicates=2, feed_error=None)

        failed.append("b")

        assert event.event_type == EventType.SYNC_COMPLETED
        assert event.failed == ["a"]
        assert event.duplicates == 2

    def test_error_event(self):
        """Test error_event factory."""
        event = error_event(message="Feed down", details={"retry_count": 3})

        assert event.event_type == EventType.ERROR
        assert event.data["message"] == "Feed down"
        assert event.data["details"]["retry_count"] == 3


class TestEventPublisher:
    """Tests for the EventPublisher class."""

    def test_publisher_initialization(self):
        """Test publisher initializes with defaults."""
        publisher = EventPublisher()

        assert publisher.is_running is False
        assert publisher.client_count == 0
        assert publisher.recent_events == []

    def test_get_publisher_is_shared(self):
        """Test the process-wide publisher is created once."""
        assert get_publisher() is get_publisher()

    def test_publisher_with_custom_settings(self):
        """Test publisher with custom host/port."""
        publisher = EventPublisher(host="127.0.0.1", port=9999, buffer_size=50)

        assert publisher._host == "127.0.0.1"
        assert publisher._port == 9999
        assert publisher._buffer_size == 50

    def test_add_and_remove_event_hook(self):
        """Test adding and removing event hooks."""
        publisher = EventPublisher()
        hook = MagicMock()

        publisher.add_event_hook(hook)
        assert hook in publisher._event_hooks

        publisher.remove_event_hook(hook)
        assert hook not in publisher._event_hooks

    def test_publish_calls_hooks(self):
        """Test that publish calls registered hooks."""
        publisher = EventPublisher()
        hook = MagicMock()
        publisher.add_event_hook(hook)

        event = sync_started(1)
        publisher.publish(event)

        hook.assert_called_once_with(event)

    def test_failing_hook_does_not_break_publish(self):
        """Test that a hook error is logged, not raised."""
        publisher = EventPublisher()
        publisher.add_event_hook(MagicMock(side_effect=RuntimeError("boom")))

        publisher.publish(sync_started(1))

        assert len(publisher.recent_events) == 1

    def test_buffer_respects_max_size(self):
        """Test that buffer respects max size."""
        publisher = EventPublisher(buffer_size=3)

        for i in range(5):
            publisher.publish(sync_started(i + 1))

        assert len(publisher.recent_events) == 3
        # Should have counts 3, 4, 5 (first two dropped)
        assert publisher.recent_events[0].data["activity_count"] == 3
        assert publisher.recent_events[2].data["activity_count"] == 5

    def test_get_status(self):
        """Test getting publisher status."""
        publisher = EventPublisher(host="localhost", port=8888)

        status = publisher.get_status()

        assert status["is_running"] is False
        assert status["host"] == "localhost"
        assert status["port"] == 8888
        assert status["client_count"] == 0
        assert status["buffer_size"] == 0

    def test_should_send_to_client_no_filters(self):
        """Test that clients without filters receive all events."""
        publisher = EventPublisher()

        assert publisher._should_send_to_client(_client(), sync_started(1)) is True

    def test_should_send_to_client_with_event_filter(self):
        """Test event type filtering."""
        publisher = EventPublisher()
        client = _client(events=[EventType.SYNC_STARTED])

        assert publisher._should_send_to_client(client, sync_started(1)) is True
        assert publisher._should_send_to_client(client, error_event("x")) is False

    def test_should_send_to_client_with_manager_filter(self):
        """Test manager filtering; events without a manager still go out."""
        publisher = EventPublisher()
        client = _client(managers=["301"])

        mine = liability_updated("301", "Ana", Decimal("1"))
        theirs = liability_updated("267", "Cliff", Decimal("1"))

        assert publisher._should_send_to_client(client, mine) is True
        assert publisher._should_send_to_client(client, theirs) is False
        assert publisher._should_send_to_client(client, sync_started(1)) is True


class TestEventPublisherAsync:
    """Async tests for EventPublisher."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        """Test starting and stopping the publisher."""
        publisher = EventPublisher(host="127.0.0.1", port=18765)

        await publisher.start()
        assert publisher.is_running is True

        await publisher.stop()
        assert publisher.is_running is False

    @pytest.mark.asyncio
    async def test_start_twice_is_safe(self):
        """Test that starting twice doesn't cause issues."""
        publisher = EventPublisher(host="127.0.0.1", port=18766)

        await publisher.start()
        await publisher.start()  # Should warn but not fail

        assert publisher.is_running is True

        await publisher.stop()

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self):
        """Test that stopping when not running is safe."""
        publisher = EventPublisher()

        await publisher.stop()  # Should not raise

        assert publisher.is_running is False

    @pytest.mark.asyncio
    async def test_client_receives_history_and_thread_published_events(self):
        """Test a late client gets the buffer, then live events from other threads."""
        publisher = EventPublisher(host="127.0.0.1", port=18767)
        await publisher.start()
        try:
            publisher.publish(sync_started(2))

            async with connect("ws://127.0.0.1:18767") as ws:
                history = json.loads(await asyncio.wait_for(ws.recv(), timeout=5))
                assert history["type"] == "event_history"
                assert history["events"][0]["type"] == "sync.started"

                await ws.send(json.dumps({"type": "ping"}))
                assert json.loads(await asyncio.wait_for(ws.recv(), timeout=5)) == {
                    "type": "pong"
                }

                await asyncio.to_thread(
                    publisher.publish, liability_updated("267", "Cliff", Decimal("5"))
                )
                live = json.loads(await asyncio.wait_for(ws.recv(), timeout=5))
                assert live["type"] == "liability.updated"
                assert live["manager_id"] == "267"
        finally:
            await publisher.stop()

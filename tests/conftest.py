"""Pytest configuration and fixtures."""

import os
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("WS_ENABLED", "false")
os.environ.setdefault("ADMIN_TOKEN", "test-admin-token")
os.environ.setdefault("LIABILITY_ALERT_THRESHOLD", "200")
os.environ.setdefault("FEED_API_URL", "http://feed.test")

from ranch_ledger.clients import FarmAPIClient  # noqa: E402
from ranch_ledger.events import EventPublisher  # noqa: E402
from ranch_ledger.managers import ManagerRegistry  # noqa: E402
from ranch_ledger.monitor import ThresholdMonitor  # noqa: E402
from ranch_ledger.reconciliation import ReconciliationEngine  # noqa: E402
from ranch_ledger.reports import MoneyFlowReports  # noqa: E402
from ranch_ledger.services import LedgerServices  # noqa: E402
from ranch_ledger.stock import StockConfigStore  # noqa: E402
from ranch_ledger.store import LedgerStore  # noqa: E402
from ranch_ledger.sync import SyncGateway  # noqa: E402

class FakeInventory:
    """In-memory inventory quantities."""

    def __init__(self, quantities: dict[str, int] | None = None):
        self.quantities = dict(quantities or {})
        self.error: Exception | None = None

    def get_quantities(self) -> dict[str, int]:
        if self.error is not None:
            raise self.error
        return dict(self.quantities)


@pytest.fixture
def ledger_path(tmp_path):
    return tmp_path / "ledger.json"


@pytest.fixture
def store(ledger_path):
    """Fresh ledger store per test."""
    return LedgerStore(ledger_path)


@pytest.fixture
def registry(tmp_path):
    """Registry with one manager and one supervisor."""
    registry = ManagerRegistry(tmp_path / "managers.json")
    registry.add_or_edit("267", "Cliff Dillimore", "manager")
    registry.add_or_edit("301", "Ana Souza", "supervisor")
    return registry


@pytest.fixture
def publisher():
    """Publisher that is never started; events stay in its buffer."""
    return EventPublisher(host="127.0.0.1", port=18799, buffer_size=500)


@pytest.fixture
def engine(store, registry, publisher):
    return ReconciliationEngine(
        store,
        registry,
        publisher=publisher,
        automated_deposit_amounts=[Decimal("160")],
        alert_threshold=Decimal("200"),
    )


@pytest.fixture
def stock_store(tmp_path):
    return StockConfigStore(tmp_path / "stock_config.json")


@pytest.fixture
def inventory():
    return FakeInventory()


@pytest.fixture
def monitor(stock_store, inventory, engine, registry):
    return ThresholdMonitor(
        stock_store,
        inventory,
        engine.tracker,
        registry,
        alert_threshold=Decimal("200"),
        fallback_price=Decimal("0.50"),
    )


@pytest.fixture
def feed_client():
    """Mock farm API client returning an empty feed."""
    client = MagicMock(spec=FarmAPIClient)
    client.list_activities.return_value = []
    return client


@pytest.fixture
def gateway(feed_client, engine, registry, publisher):
    return SyncGateway(feed_client, engine, registry, publisher=publisher, workers=4)


@pytest.fixture
def services(store, registry, engine, stock_store, monitor, gateway, feed_client, publisher):
    return LedgerServices(
        store=store,
        registry=registry,
        engine=engine,
        stock=stock_store,
        monitor=monitor,
        reports=MoneyFlowReports(store, engine.tracker, registry, alert_threshold=Decimal("200")),
        sync=gateway,
        client=feed_client,
        publisher=publisher,
    )


@pytest.fixture
def feed_activity():
    """Factory for raw feed activity dicts."""

    def _make(activity_id: str, **overrides):
        data = {
            "id": activity_id,
            "autor": "Cliff Dillimore | FIXO: 267",
            "tipo": "saque",
            "valor": 100,
            "timestamp": "2026-10-01T12:00:00Z",
            "descricao": "Saque do caixa",
        }
        data.update(overrides)
        return data

    return _make

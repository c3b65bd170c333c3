"""Wiring: build every ledger component from settings.

The API and the command line both get their components from
``build_services`` so that they share one store, one registry and one set of
per-manager locks.
"""

from dataclasses import dataclass

import structlog

from ranch_ledger.clients import FarmAPIClient
from ranch_ledger.config import FlatSettings, get_settings
from ranch_ledger.events import EventPublisher, get_publisher
from ranch_ledger.liability import LiabilityTracker
from ranch_ledger.managers import ManagerRegistry
from ranch_ledger.monitor import InventorySource, ThresholdMonitor
from ranch_ledger.reconciliation import ReconciliationEngine
from ranch_ledger.reports import MoneyFlowReports
from ranch_ledger.stock import StockConfigStore
from ranch_ledger.store import LedgerStore
from ranch_ledger.sync import SyncGateway

logger = structlog.get_logger(__name__)


@dataclass
class LedgerServices:
    store: LedgerStore
    registry: ManagerRegistry
    engine: ReconciliationEngine
    stock: StockConfigStore
    monitor: ThresholdMonitor
    reports: MoneyFlowReports
    sync: SyncGateway
    client: FarmAPIClient
    publisher: EventPublisher

    @property
    def tracker(self) -> LiabilityTracker:
        return self.engine.tracker

    def close(self) -> None:
        self.client.close()


def build_services(
    settings: FlatSettings | None = None,
    publisher: EventPublisher | None = None,
    client: FarmAPIClient | None = None,
    inventory: InventorySource | None = None,
) -> LedgerServices:
    """Load the persisted state and assemble the components."""
    settings = settings or get_settings()
    publisher = publisher or get_publisher()
    client = client or FarmAPIClient(
        base_url=settings.feed_api_url,
        timeout=settings.feed_timeout,
        max_retries=settings.feed_max_retries,
    )

    store = LedgerStore(settings.ledger_path)
    registry = ManagerRegistry(settings.managers_path)
    stock = StockConfigStore(settings.stock_path)

    engine = ReconciliationEngine(
        store,
        registry,
        publisher=publisher,
        automated_deposit_amounts=settings.automated_deposit_amounts,
        alert_threshold=settings.liability_alert_threshold,
    )
    monitor = ThresholdMonitor(
        stock,
        inventory or client,
        engine.tracker,
        registry,
        alert_threshold=settings.liability_alert_threshold,
        fallback_price=settings.fallback_unit_price,
    )
    reports = MoneyFlowReports(
        store,
        engine.tracker,
        registry,
        alert_threshold=settings.liability_alert_threshold,
    )
    sync = SyncGateway(
        client,
        engine,
        registry,
        publisher=publisher,
        workers=settings.sync_workers,
    )

    logger.info(
        "services_built",
        data_dir=str(settings.data_dir),
        entries=len(store),
        managers=len(registry.list(include_inactive=True)),
    )
    return LedgerServices(
        store=store,
        registry=registry,
        engine=engine,
        stock=stock,
        monitor=monitor,
        reports=reports,
        sync=sync,
        client=client,
        publisher=publisher,
    )

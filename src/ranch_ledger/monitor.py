"""Threshold monitoring for stock levels and manager liabilities.

The evaluation functions are pure; ``ThresholdMonitor`` combines them with
the stock config store, the inventory collaborator and the liability tracker
to produce warnings and alerts on demand.
"""

import threading
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol

import structlog

from ranch_ledger.config import get_settings
from ranch_ledger.errors import IntegrationError, NotFoundError
from ranch_ledger.liability import LiabilityTracker
from ranch_ledger.managers import ManagerRegistry
from ranch_ledger.models import quantize_money
from ranch_ledger.stock import StockConfig, StockConfigStore

logger = structlog.get_logger(__name__)

CRITICAL_FRACTION = Decimal("0.25")


class StockStatus(str, Enum):
    OK = "ok"
    AVISO = "aviso"
    CRITICO = "critico"
    SEM_ESTOQUE = "sem_estoque"

    @property
    def severity(self) -> int:
        """Higher is worse."""
        return _STOCK_SEVERITY[self]


_STOCK_SEVERITY = {
    StockStatus.OK: 0,
    StockStatus.AVISO: 1,
    StockStatus.CRITICO: 2,
    StockStatus.SEM_ESTOQUE: 3,
}


class LiabilityStatus(str, Enum):
    OK = "ok"
    CRITICO = "critico"


def evaluate_stock(
    current: int | Decimal, minimum: int | Decimal, maximum: int | Decimal
) -> StockStatus:
    """Classify a stock level against its bounds.

    ``maximum`` only matters for restock suggestions; it is accepted here so
    that both monitors share one signature.
    """
    if current <= 0:
        return StockStatus.SEM_ESTOQUE
    if Decimal(current) < Decimal(minimum) * CRITICAL_FRACTION:
        return StockStatus.CRITICO
    if current < minimum:
        return StockStatus.AVISO
    return StockStatus.OK


def evaluate_liability(outstanding: Decimal, threshold: Decimal) -> LiabilityStatus:
    """Binary: over the threshold is critical."""
    return LiabilityStatus.CRITICO if outstanding > threshold else LiabilityStatus.OK


@dataclass
class RestockSuggestion:
    quantity: int
    unit_price: Decimal
    estimated_cost: Decimal
    price_estimated: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "estimated_cost": str(self.estimated_cost),
            "price_estimated": self.price_estimated,
        }


def restock_suggestion(
    current: int,
    maximum: int,
    unit_price: Decimal | None,
    fallback_price: Decimal,
) -> RestockSuggestion:
    """Units needed to refill to ``maximum`` and what they would cost.

    A missing or zero unit price falls back to ``fallback_price`` and marks
    the cost as estimated.
    """
    quantity = max(0, int(maximum) - int(current))
    price_estimated = unit_price is None or unit_price <= 0
    price = quantize_money(fallback_price if price_estimated else unit_price)
    return RestockSuggestion(
        quantity=quantity,
        unit_price=price,
        estimated_cost=quantize_money(price * quantity),
        price_estimated=price_estimated,
    )


class InventorySource(Protocol):
    """Supplies current quantities per item id."""

    def get_quantities(self) -> dict[str, int]: ...


@dataclass
class InventorySnapshot:
    """Quantities read for one evaluation.

    ``quantities`` is None when the source is down and was never read;
    ``error`` is set whenever the latest read failed.
    """

    quantities: dict[str, int] | None
    error: str | None = None

    @property
    def stale(self) -> bool:
        return self.error is not None and self.quantities is not None


@dataclass
class StockWarning:
    id: str
    item_id: str
    display_name: str
    category: str
    status: StockStatus
    current: int
    minimum: int
    maximum: int
    suggestion: RestockSuggestion
    seen: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "display_name": self.display_name,
            "category": self.category,
            "status": self.status.value,
            "current": self.current,
            "minimum": self.minimum,
            "maximum": self.maximum,
            "restock_quantity": self.suggestion.quantity,
            "unit_price": str(self.suggestion.unit_price),
            "estimated_cost": str(self.suggestion.estimated_cost),
            "price_estimated": self.suggestion.price_estimated,
            "seen": self.seen,
        }


@dataclass
class LiabilityAlert:
    manager_id: str
    manager_name: str
    outstanding_amount: Decimal
    threshold: Decimal
    severity: LiabilityStatus = LiabilityStatus.CRITICO

    @property
    def message(self) -> str:
        return (
            f"{self.manager_name or self.manager_id} has {self.outstanding_amount} "
            f"outstanding, above the {self.threshold} limit"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "manager_id": self.manager_id,
            "manager_name": self.manager_name,
            "outstanding_amount": str(self.outstanding_amount),
            "threshold": str(self.threshold),
            "severity": self.severity.value,
            "message": self.message,
        }


class ThresholdMonitor:
    """Derives stock warnings and liability alerts on demand."""

    def __init__(
        self,
        stock: StockConfigStore,
        inventory: InventorySource,
        tracker: LiabilityTracker,
        registry: ManagerRegistry,
        alert_threshold: Decimal | None = None,
        fallback_price: Decimal | None = None,
    ):
        settings = get_settings()
        self._stock = stock
        self._inventory = inventory
        self._tracker = tracker
        self._registry = registry
        self._threshold = (
            alert_threshold
            if alert_threshold is not None
            else settings.liability_alert_threshold
        )
        self._fallback_price = (
            fallback_price if fallback_price is not None else settings.fallback_unit_price
        )
        self._last_quantities: dict[str, int] | None = None
        self._quantities_lock = threading.Lock()
        self._logger = logger.bind(component="threshold_monitor")

    def _warning_for(self, config: StockConfig, current: int) -> StockWarning:
        status = evaluate_stock(current, config.minimum, config.maximum)
        warning_id = f"{config.id}:{status.value}"
        return StockWarning(
            id=warning_id,
            item_id=config.id,
            display_name=config.name,
            category=config.category,
            status=status,
            current=current,
            minimum=config.minimum,
            maximum=config.maximum,
            suggestion=restock_suggestion(
                current, config.maximum, config.unit_price, self._fallback_price
            ),
            seen=self._stock.is_seen(warning_id),
        )

    def inventory_snapshot(self) -> InventorySnapshot:
        """Read current quantities, falling back to the last successful read.

        An unreachable inventory source never fails the caller: the snapshot
        carries the error and, when nothing was ever read, no quantities.
        """
        try:
            quantities = {k: int(v) for k, v in self._inventory.get_quantities().items()}
        except IntegrationError as e:
            with self._quantities_lock:
                last = self._last_quantities
            self._logger.warning(
                "inventory_unavailable", error=e.message, last_known=last is not None
            )
            return InventorySnapshot(quantities=last, error=e.message)
        with self._quantities_lock:
            self._last_quantities = quantities
        return InventorySnapshot(quantities=quantities)

    def evaluate_all(self, snapshot: InventorySnapshot | None = None) -> list[StockWarning]:
        """Status of every active config, including healthy ones."""
        snapshot = snapshot or self.inventory_snapshot()
        if snapshot.quantities is None:
            return []
        return [
            self._warning_for(config, snapshot.quantities.get(config.id, 0))
            for config in self._stock.list(include_inactive=False)
        ]

    def stock_warnings(self, snapshot: InventorySnapshot | None = None) -> list[StockWarning]:
        """Active configs that are not ``ok``, worst first."""
        warnings = [w for w in self.evaluate_all(snapshot) if w.status is not StockStatus.OK]
        warnings.sort(key=lambda w: (-w.status.severity, w.item_id))
        self._logger.debug("stock_evaluated", warnings=len(warnings))
        return warnings

    def mark_warning_seen(self, warning_id: str) -> StockWarning:
        for warning in self.stock_warnings():
            if warning.id == warning_id:
                self._stock.mark_seen(warning_id)
                warning.seen = True
                return warning
        raise NotFoundError(f"Warning {warning_id} is not active")

    def suggestion_for(
        self, item_id: str, snapshot: InventorySnapshot | None = None
    ) -> StockWarning:
        """Status and restock suggestion for one configured item.

        Raises IntegrationError only when the inventory source has never
        been read successfully.
        """
        config = self._stock.get(item_id)
        snapshot = snapshot or self.inventory_snapshot()
        if snapshot.quantities is None:
            raise IntegrationError(
                f"Inventory unavailable, no quantity known for {item_id}",
                details={"error": snapshot.error},
            )
        return self._warning_for(config, snapshot.quantities.get(item_id, 0))

    def stock_statistics(self, snapshot: InventorySnapshot | None = None) -> dict[str, int]:
        evaluated = self.evaluate_all(snapshot)
        counts = {status.value: 0 for status in StockStatus}
        for warning in evaluated:
            counts[warning.status.value] += 1
        return {
            "total_items": len(evaluated),
            "total_warnings": len(evaluated) - counts[StockStatus.OK.value],
            "unseen_warnings": sum(
                1 for w in evaluated if w.status is not StockStatus.OK and not w.seen
            ),
            **counts,
        }

    def restock_cost_summary(self, snapshot: InventorySnapshot | None = None) -> dict[str, Any]:
        """Total cost of refilling every warned item, by category."""
        snapshot = snapshot or self.inventory_snapshot()
        warnings = self.stock_warnings(snapshot)
        by_category: dict[str, Decimal] = {}
        for warning in warnings:
            by_category[warning.category] = (
                by_category.get(warning.category, Decimal("0"))
                + warning.suggestion.estimated_cost
            )
        total = sum((w.suggestion.estimated_cost for w in warnings), Decimal("0"))
        return {
            "total_cost": str(quantize_money(total)),
            "total_units": sum(w.suggestion.quantity for w in warnings),
            "estimated_items": sum(1 for w in warnings if w.suggestion.price_estimated),
            "by_category": {k: str(quantize_money(v)) for k, v in sorted(by_category.items())},
            "items": [w.to_dict() for w in warnings],
            "inventory_error": snapshot.error,
        }

    def liability_alerts(self) -> list[LiabilityAlert]:
        """Active managers whose liability is over the threshold, highest first."""
        alerts = []
        for manager in self._registry.list():
            liability = self._tracker.compute_liability(manager.id)
            outstanding = liability.outstanding_amount
            if evaluate_liability(outstanding, self._threshold) is LiabilityStatus.CRITICO:
                alerts.append(
                    LiabilityAlert(
                        manager_id=manager.id,
                        manager_name=manager.name,
                        outstanding_amount=outstanding,
                        threshold=self._threshold,
                    )
                )
        alerts.sort(key=lambda a: a.outstanding_amount, reverse=True)
        if alerts:
            self._logger.info("liability_alerts", count=len(alerts))
        return alerts

"""Stock threshold routes: config CRUD, warnings and restock estimates."""

from fastapi import APIRouter, Depends, Query

from ranch_ledger.api.deps import get_services, ok
from ranch_ledger.api.schemas import StockConfigIn, StockConfigPatch
from ranch_ledger.events import stock_config_changed, stock_warning
from ranch_ledger.monitor import InventorySnapshot, StockStatus
from ranch_ledger.services import LedgerServices

router = APIRouter()


@router.get("/config")
def list_configs(
    include_inactive: bool = Query(default=True),
    services: LedgerServices = Depends(get_services),
) -> dict:
    configs = services.stock.list(include_inactive=include_inactive)
    return ok([c.model_dump(mode="json") for c in configs])


@router.post("/config")
def save_config(body: StockConfigIn, services: LedgerServices = Depends(get_services)) -> dict:
    config = services.stock.upsert(body.model_dump())
    services.publisher.publish(stock_config_changed(config.id, "saved"))
    return ok(config.model_dump(mode="json"))


@router.put("/config/{item_id}")
def update_config(
    item_id: str,
    body: StockConfigPatch,
    services: LedgerServices = Depends(get_services),
) -> dict:
    config = services.stock.update(item_id, body.model_dump(exclude_unset=True))
    services.publisher.publish(stock_config_changed(config.id, "updated"))
    return ok(config.model_dump(mode="json"))


@router.delete("/config/{item_id}")
def delete_config(item_id: str, services: LedgerServices = Depends(get_services)) -> dict:
    config = services.stock.delete(item_id)
    services.publisher.publish(stock_config_changed(config.id, "deleted"))
    return ok(config.model_dump(mode="json"))


def _inventory_status(snapshot: InventorySnapshot) -> dict:
    return {"inventory_error": snapshot.error, "inventory_stale": snapshot.stale}


@router.get("/warnings")
def list_warnings(services: LedgerServices = Depends(get_services)) -> dict:
    snapshot = services.monitor.inventory_snapshot()
    warnings = services.monitor.stock_warnings(snapshot)
    return ok(
        {
            "warnings": [w.to_dict() for w in warnings],
            "criticos": sum(
                1
                for w in warnings
                if w.status in (StockStatus.CRITICO, StockStatus.SEM_ESTOQUE)
            ),
            "statistics": services.monitor.stock_statistics(snapshot),
            **_inventory_status(snapshot),
        }
    )


@router.post("/warnings/{warning_id}/seen")
def mark_warning_seen(warning_id: str, services: LedgerServices = Depends(get_services)) -> dict:
    return ok(services.monitor.mark_warning_seen(warning_id).to_dict())


@router.post("/check")
def check_stock(services: LedgerServices = Depends(get_services)) -> dict:
    """Re-evaluate stock and announce every warning not yet seen."""
    snapshot = services.monitor.inventory_snapshot()
    unseen = [w for w in services.monitor.stock_warnings(snapshot) if not w.seen]
    for warning in unseen:
        services.publisher.publish(
            stock_warning(
                warning.item_id, warning.display_name, warning.status.value, warning.current
            )
        )
    return ok(
        {
            "announced": len(unseen),
            "warnings": [w.to_dict() for w in unseen],
            **_inventory_status(snapshot),
        }
    )


@router.get("/suggestions/{item_id}")
def restock_suggestion(item_id: str, services: LedgerServices = Depends(get_services)) -> dict:
    snapshot = services.monitor.inventory_snapshot()
    warning = services.monitor.suggestion_for(item_id, snapshot)
    return ok(warning.to_dict(), **_inventory_status(snapshot))


@router.get("/cost-summary")
def cost_summary(services: LedgerServices = Depends(get_services)) -> dict:
    return ok(services.monitor.restock_cost_summary())

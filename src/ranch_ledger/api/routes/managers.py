"""Manager accountability routes: money flow, liabilities, resets and sync."""

from fastapi import APIRouter, Depends, Query

from ranch_ledger.api.deps import get_services, is_admin, ok
from ranch_ledger.api.schemas import (
    DepositIn,
    JustifyIn,
    ManagerIn,
    ManagerPaymentIn,
    PayrollIn,
    ResetIn,
    ResetNegativeIn,
    WithdrawalIn,
    WorkerPaymentIn,
)
from ranch_ledger.events import manager_updated
from ranch_ledger.models import entry_to_dict
from ranch_ledger.services import LedgerServices

router = APIRouter()


# Fixed paths first so they are not captured by "/{manager_id}/..." routes.


@router.get("")
def list_managers(
    include_inactive: bool = Query(default=False),
    services: LedgerServices = Depends(get_services),
) -> dict:
    """Managers with their current liability."""
    rows = []
    for manager in services.registry.list(include_inactive=include_inactive):
        liability = services.engine.liability(manager.id)
        rows.append(
            {
                **manager.model_dump(mode="json"),
                "outstanding_amount": str(liability.outstanding_amount),
                "is_negative": liability.is_negative,
            }
        )
    return ok(rows)


@router.post("")
def save_manager(body: ManagerIn, services: LedgerServices = Depends(get_services)) -> dict:
    """Add a manager or edit an existing one."""
    manager = services.registry.add_or_edit(
        body.id,
        body.name,
        body.role,
        active=body.active,
        weekly_payment=body.weekly_payment,
    )
    services.publisher.publish(manager_updated(manager.id, "saved"))
    return ok(manager.model_dump(mode="json"))


@router.get("/liability-alerts")
def liability_alerts(services: LedgerServices = Depends(get_services)) -> dict:
    return ok([alert.to_dict() for alert in services.monitor.liability_alerts()])


@router.get("/money-flow/summary")
def money_flow_summary(services: LedgerServices = Depends(get_services)) -> dict:
    return ok(services.reports.summary())


@router.get("/money-flow/transactions")
def money_flow_transactions(
    manager_id: str | None = Query(default=None),
    kind: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=0),
    services: LedgerServices = Depends(get_services),
) -> dict:
    return ok(services.reports.transactions(manager_id=manager_id, kind=kind, limit=limit))


@router.put("/transactions/{entry_id}/justify")
def justify_transaction(
    entry_id: str,
    body: JustifyIn,
    services: LedgerServices = Depends(get_services),
) -> dict:
    """Accept a withdrawal, fully or in part, as justified spending."""
    entry = services.engine.justify_withdrawal(
        entry_id, body.reason, amount=body.amount, recorded_by=body.recorded_by
    )
    return ok(entry_to_dict(entry))


@router.post("/sync")
def sync_transactions(services: LedgerServices = Depends(get_services)) -> dict:
    """Pull the activity feed. Never fails; problems are in the summary."""
    summary = services.sync.sync_all()
    return ok(
        summary.to_dict(),
        message=f"Synced {summary.synced} transactions, excluded {summary.excluded}",
    )


@router.post("/reset-negative-balances")
def reset_negative_balances(
    body: ResetNegativeIn | None = None,
    authorized: bool = Depends(is_admin),
    services: LedgerServices = Depends(get_services),
) -> dict:
    body = body or ResetNegativeIn()
    resets = services.engine.reset_negative_balances(
        operator=body.operator, authorized=authorized, reason=body.reason
    )
    return ok({"reset_count": len(resets), "entries": [entry_to_dict(e) for e in resets]})


@router.post("/payment/all")
def pay_all_managers(
    body: PayrollIn | None = None, services: LedgerServices = Depends(get_services)
) -> dict:
    """Weekly payroll for every active manager; repeat calls in a week pay nobody twice."""
    result = services.engine.pay_all_managers(recorded_by=(body or PayrollIn()).recorded_by)
    return ok(
        {
            "period": result.period,
            "payments": [entry_to_dict(e) for e in result.payments],
            "total_paid": str(result.total_paid),
            "already_paid": result.already_paid,
            "skipped": result.skipped,
        },
        message=f"{len(result.payments)} payments processed. Total: {result.total_paid}",
    )


@router.get("/payment/history")
def payment_history(
    manager_id: str | None = Query(default=None),
    managerId: str | None = Query(default=None),  # noqa: N803
    limit: int = Query(default=50, ge=0),
    limite: int | None = Query(default=None, ge=0),
    services: LedgerServices = Depends(get_services),
) -> dict:
    """Manager payments, newest first (``managerId``/``limite`` accepted too)."""
    payments = services.engine.payment_history(
        manager_id=manager_id or managerId,
        limit=limite if limite is not None else limit,
    )
    return ok([entry_to_dict(e) for e in payments])


# Per-manager routes


@router.delete("/{manager_id}")
def deactivate_manager(manager_id: str, services: LedgerServices = Depends(get_services)) -> dict:
    """Deactivate a manager. Ledger history is kept."""
    manager = services.registry.deactivate(manager_id)
    services.publisher.publish(manager_updated(manager.id, "deactivated"))
    return ok(manager.model_dump(mode="json"))


@router.post("/{manager_id}/withdrawal")
def record_withdrawal(
    manager_id: str,
    body: WithdrawalIn,
    services: LedgerServices = Depends(get_services),
) -> dict:
    entry = services.engine.record_withdrawal(
        manager_id,
        body.amount,
        body.reason,
        category=body.category,
        recorded_by=body.recorded_by,
    )
    return ok(entry_to_dict(entry))


@router.post("/{manager_id}/deposit")
def record_deposit(
    manager_id: str,
    body: DepositIn,
    services: LedgerServices = Depends(get_services),
) -> dict:
    result = services.engine.record_deposit(
        manager_id,
        body.amount,
        body.reason,
        category=body.category,
        recorded_by=body.recorded_by,
    )
    return ok(entry_to_dict(result.entry), excluded=result.excluded)


@router.post("/{manager_id}/worker-payment")
def record_worker_payment(
    manager_id: str,
    body: WorkerPaymentIn,
    services: LedgerServices = Depends(get_services),
) -> dict:
    entry = services.engine.record_worker_payment(
        manager_id,
        body.worker_id,
        body.amount,
        withdrawal_id=body.withdrawal_id,
        worker_name=body.worker_name,
        category=body.category,
        activity_id=body.activity_id,
        reason=body.reason,
        recorded_by=body.recorded_by,
    )
    liability = services.engine.liability(manager_id)
    return ok(
        entry_to_dict(entry),
        outstanding_amount=str(liability.outstanding_amount),
    )


@router.post("/{manager_id}/payment")
def pay_manager(
    manager_id: str,
    body: ManagerPaymentIn | None = None,
    services: LedgerServices = Depends(get_services),
) -> dict:
    """Pay a manager; without an amount their weekly payment is used."""
    body = body or ManagerPaymentIn()
    entry = services.engine.pay_manager(
        manager_id, body.amount, body.description, recorded_by=body.recorded_by
    )
    name = services.registry.get(manager_id).name
    return ok(entry_to_dict(entry), message=f"Payment of {entry.amount} processed for {name}")


@router.get("/{manager_id}/liability")
def get_liability(manager_id: str, services: LedgerServices = Depends(get_services)) -> dict:
    services.registry.get(manager_id)
    return ok(services.engine.liability(manager_id).to_dict())


@router.get("/{manager_id}/money-flow")
def get_money_flow(
    manager_id: str,
    period: int = Query(default=30),
    periodo: int | None = Query(default=None),
    services: LedgerServices = Depends(get_services),
) -> dict:
    """Money flow over the last ``period`` days (``periodo`` is accepted too)."""
    days = periodo if periodo is not None else period
    return ok(services.reports.money_flow(manager_id, days))


@router.post("/{manager_id}/unpay/{service_type}/{activity_id}")
def unpay(
    manager_id: str,
    service_type: str,
    activity_id: str,
    services: LedgerServices = Depends(get_services),
) -> dict:
    reversal = services.engine.unpay(manager_id, service_type, activity_id)
    return ok(entry_to_dict(reversal))


@router.post("/{manager_id}/unpay-all/{service_type}")
def unpay_all(
    manager_id: str,
    service_type: str,
    services: LedgerServices = Depends(get_services),
) -> dict:
    reversals = services.engine.unpay_all(manager_id, service_type)
    return ok({"reversed": len(reversals), "entries": [entry_to_dict(e) for e in reversals]})


@router.post("/{manager_id}/reset-liability")
def reset_liability(
    manager_id: str,
    body: ResetIn,
    authorized: bool = Depends(is_admin),
    services: LedgerServices = Depends(get_services),
) -> dict:
    """Audited correction of a manager's liability. Requires X-Admin-Token."""
    entry = services.engine.reset_liability(
        manager_id,
        body.baseline,
        body.reason,
        operator=body.operator,
        authorized=authorized,
    )
    liability = services.engine.liability(manager_id)
    return ok(
        entry_to_dict(entry) if entry else None,
        outstanding_amount=str(liability.outstanding_amount),
    )

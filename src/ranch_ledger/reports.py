"""Money-flow reports built from the ledger."""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import structlog

from ranch_ledger.config import get_settings
from ranch_ledger.errors import ValidationError
from ranch_ledger.liability import LiabilityTracker, fold_liability
from ranch_ledger.managers import ManagerRegistry
from ranch_ledger.models import LedgerEntry, entry_to_dict, quantize_money
from ranch_ledger.store import LedgerStore

logger = structlog.get_logger(__name__)

RECENT_LIMIT = 10

# Kinds that move or account for money; inventory records are excluded.
MONEY_KINDS = frozenset(
    {
        "withdrawal",
        "deposit",
        "excluded_deposit",
        "worker_payment",
        "payment_reversal",
        "justification",
        "adjustment",
        "manager_payment",
    }
)


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=UTC)


def _totals(entries: Iterable[LedgerEntry]) -> dict[str, Decimal]:
    totals = {kind: Decimal("0.00") for kind in sorted(MONEY_KINDS)}
    for entry in entries:
        if entry.kind in totals:
            totals[entry.kind] += entry.amount
    return totals


class MoneyFlowReports:
    """Read-only views over the ledger for the dashboard."""

    def __init__(
        self,
        store: LedgerStore,
        tracker: LiabilityTracker,
        registry: ManagerRegistry,
        alert_threshold: Decimal | None = None,
    ):
        self._store = store
        self._tracker = tracker
        self._registry = registry
        self._threshold = (
            alert_threshold
            if alert_threshold is not None
            else get_settings().liability_alert_threshold
        )

    def _name(self, manager_id: str) -> str:
        manager = self._registry.find(manager_id)
        return manager.name if manager else ""

    def _row(self, entry: LedgerEntry) -> dict[str, Any]:
        row = entry_to_dict(entry)
        row["manager_name"] = self._name(entry.manager_id)
        return row

    def money_flow(self, manager_id: str, period_days: int = 30) -> dict[str, Any]:
        """Entries of one manager within the last ``period_days`` days."""
        if period_days <= 0:
            raise ValidationError("period must be a positive number of days")
        self._registry.get(manager_id)

        since = datetime.now(UTC) - timedelta(days=period_days)
        entries = [
            e
            for e in self._store.list_by_manager(manager_id)
            if e.kind in MONEY_KINDS and _aware(e.timestamp) >= since
        ]
        totals = _totals(entries)

        by_category: dict[str, Decimal] = {}
        for entry in entries:
            by_category[entry.category] = (
                by_category.get(entry.category, Decimal("0")) + entry.amount
            )

        period_liability = fold_liability(manager_id, entries)
        return {
            "manager_id": manager_id,
            "manager_name": self._name(manager_id),
            "period_days": period_days,
            "since": since.isoformat(),
            "totals": {kind: str(value) for kind, value in totals.items()},
            "period_net_liability": str(period_liability.outstanding_amount),
            "by_category": {k: str(v) for k, v in sorted(by_category.items())},
            "entries": [
                self._row(e)
                for e in sorted(entries, key=lambda e: _aware(e.timestamp), reverse=True)
            ],
            "liability": self._tracker.compute_liability(manager_id).to_dict(),
        }

    def summary(self) -> dict[str, Any]:
        """Ledger-wide totals and the managers over the alert threshold."""
        entries = [e for e in self._store.all_entries() if e.kind in MONEY_KINDS]
        totals = _totals(entries)

        manager_ids = sorted(
            set(self._store.manager_ids()) | {m.id for m in self._registry.list()}
        )
        liabilities = self._tracker.compute_all(manager_ids)
        total_outstanding = sum((item.outstanding_amount for item in liabilities), Decimal("0"))

        withdrawn = totals["withdrawal"]
        discharged = totals["worker_payment"] - totals["payment_reversal"]
        accountability = (
            quantize_money(discharged / withdrawn * 100) if withdrawn > 0 else Decimal("100.00")
        )

        high = sorted(
            (item for item in liabilities if item.outstanding_amount > self._threshold),
            key=lambda item: item.outstanding_amount,
            reverse=True,
        )

        def recent(kind: str) -> list[dict[str, Any]]:
            matching = sorted(
                (e for e in entries if e.kind == kind),
                key=lambda e: _aware(e.timestamp),
                reverse=True,
            )
            return [self._row(e) for e in matching[:RECENT_LIMIT]]

        return {
            "summary": {
                "total_withdrawals": str(withdrawn),
                "total_deposits": str(totals["deposit"]),
                "total_worker_payments": str(totals["worker_payment"]),
                "total_reversed": str(totals["payment_reversal"]),
                "total_justified": str(totals["justification"]),
                "total_excluded_deposits": str(totals["excluded_deposit"]),
                "total_manager_payments": str(totals["manager_payment"]),
                "total_outstanding_liability": str(total_outstanding),
                "accountability_percentage": str(accountability),
            },
            "managers_with_high_liability": [
                {
                    "manager_id": item.manager_id,
                    "manager_name": item.manager_name,
                    "outstanding_amount": str(item.outstanding_amount),
                }
                for item in high
            ],
            "recent_withdrawals": recent("withdrawal"),
            "recent_worker_payments": recent("worker_payment"),
        }

    def transactions(
        self,
        manager_id: str | None = None,
        kind: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Money entries, newest first, optionally filtered."""
        if kind is not None and kind not in MONEY_KINDS:
            raise ValidationError(f"Unknown transaction kind {kind!r}")

        entries = (
            self._store.list_by_manager(manager_id)
            if manager_id
            else self._store.all_entries()
        )
        selected = [
            e for e in entries if e.kind in MONEY_KINDS and (kind is None or e.kind == kind)
        ]
        selected.sort(key=lambda e: _aware(e.timestamp), reverse=True)
        if limit is not None:
            selected = selected[: max(0, limit)]
        return [self._row(e) for e in selected]

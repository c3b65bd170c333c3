"""Liability tracking.

A manager's liability is money withdrawn from the ranch account that has not
yet been paid out to workers or otherwise accounted for. It is never stored:
every call folds the manager's full entry list, so callers must not cache a
``Liability`` across mutations.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from ranch_ledger.errors import ValidationError
from ranch_ledger.models import (
    Adjustment,
    AdjustmentDirection,
    EntryKind,
    Justification,
    LedgerEntry,
    PaymentReversal,
    Withdrawal,
    WorkerPayment,
    build_entry,
    quantize_money,
)
from ranch_ledger.store import LedgerStore

logger = structlog.get_logger(__name__)

ZERO = Decimal("0.00")
RECENT_PAYMENTS_LIMIT = 10


@dataclass
class WithdrawalBreakdown:
    """How much of one withdrawal is still unaccounted for."""

    withdrawal_id: str
    amount: Decimal
    reason: str
    timestamp: datetime
    category: str = "outros"
    amount_paid_to_workers: Decimal = ZERO
    amount_justified: Decimal = ZERO

    @property
    def remaining_liability(self) -> Decimal:
        return self.amount - self.amount_paid_to_workers - self.amount_justified

    def to_dict(self) -> dict[str, Any]:
        return {
            "withdrawal_id": self.withdrawal_id,
            "amount": str(self.amount),
            "reason": self.reason,
            "category": self.category,
            "timestamp": self.timestamp.isoformat(),
            "amount_paid_to_workers": str(self.amount_paid_to_workers),
            "amount_justified": str(self.amount_justified),
            "remaining_liability": str(self.remaining_liability),
        }


@dataclass
class Liability:
    """Point-in-time liability snapshot for one manager."""

    manager_id: str
    manager_name: str = ""
    total_withdrawn: Decimal = ZERO
    total_paid_to_workers: Decimal = ZERO
    total_reversed: Decimal = ZERO
    total_justified: Decimal = ZERO
    total_adjusted: Decimal = ZERO
    withdrawals: list[WithdrawalBreakdown] = field(default_factory=list)
    recent_payments: list[WorkerPayment] = field(default_factory=list)
    computed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def outstanding_amount(self) -> Decimal:
        return (
            self.total_withdrawn
            - self.total_paid_to_workers
            + self.total_reversed
            - self.total_justified
            + self.total_adjusted
        )

    @property
    def is_negative(self) -> bool:
        return self.outstanding_amount < 0

    def breakdown_for(self, withdrawal_id: str) -> WithdrawalBreakdown | None:
        for item in self.withdrawals:
            if item.withdrawal_id == withdrawal_id:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "manager_id": self.manager_id,
            "manager_name": self.manager_name,
            "outstanding_amount": str(self.outstanding_amount),
            "total_withdrawn": str(self.total_withdrawn),
            "total_paid_to_workers": str(self.total_paid_to_workers),
            "total_reversed": str(self.total_reversed),
            "total_justified": str(self.total_justified),
            "total_adjusted": str(self.total_adjusted),
            "is_negative": self.is_negative,
            "withdrawals": [w.to_dict() for w in self.withdrawals],
            "recent_payments": [
                {
                    "id": p.id,
                    "worker_id": p.worker_id,
                    "worker_name": p.worker_name,
                    "amount": str(p.amount),
                    "withdrawal_id": p.withdrawal_id,
                    "category": p.category,
                    "timestamp": p.timestamp.isoformat(),
                }
                for p in self.recent_payments
            ],
            "computed_at": self.computed_at.isoformat(),
        }


def fold_liability(
    manager_id: str, entries: Iterable[LedgerEntry], manager_name: str = ""
) -> Liability:
    """Fold a manager's entries into a ``Liability``.

    Worker payments linked to a withdrawal also reduce that withdrawal's
    remaining amount in the breakdown; unlinked ones are debited from the
    manager's pool only.
    """
    liability = Liability(manager_id=manager_id, manager_name=manager_name)
    breakdown: dict[str, WithdrawalBreakdown] = {}
    payments: dict[str, WorkerPayment] = {}

    for entry in entries:
        if isinstance(entry, Withdrawal):
            liability.total_withdrawn += entry.amount
            item = WithdrawalBreakdown(
                withdrawal_id=entry.id,
                amount=entry.amount,
                reason=entry.reason,
                timestamp=entry.timestamp,
                category=entry.category,
            )
            breakdown[entry.id] = item
            liability.withdrawals.append(item)

        elif isinstance(entry, WorkerPayment):
            liability.total_paid_to_workers += entry.amount
            payments[entry.id] = entry
            if entry.withdrawal_id and entry.withdrawal_id in breakdown:
                breakdown[entry.withdrawal_id].amount_paid_to_workers += entry.amount

        elif isinstance(entry, PaymentReversal):
            liability.total_reversed += entry.amount
            original = payments.get(entry.reverses_id)
            if original is not None and original.withdrawal_id in breakdown:
                breakdown[original.withdrawal_id].amount_paid_to_workers -= entry.amount

        elif isinstance(entry, Justification):
            liability.total_justified += entry.amount
            if entry.withdrawal_id in breakdown:
                breakdown[entry.withdrawal_id].amount_justified += entry.amount

        elif isinstance(entry, Adjustment):
            if entry.direction is AdjustmentDirection.CREDIT:
                liability.total_adjusted -= entry.amount
            else:
                liability.total_adjusted += entry.amount

    liability.recent_payments = sorted(
        payments.values(), key=lambda p: p.timestamp, reverse=True
    )[:RECENT_PAYMENTS_LIMIT]
    return liability


def reversed_payment_ids(entries: Iterable[LedgerEntry]) -> set[str]:
    """Ids of worker payments that already have a reversal."""
    return {e.reverses_id for e in entries if isinstance(e, PaymentReversal)}


class LiabilityTracker:
    """Computes liabilities from the ledger store."""

    def __init__(
        self,
        store: LedgerStore,
        name_lookup: Callable[[str], str] | None = None,
    ):
        self._store = store
        self._name_lookup = name_lookup
        self._logger = logger.bind(component="liability_tracker")

    def _manager_name(self, manager_id: str) -> str:
        if self._name_lookup is None:
            return ""
        return self._name_lookup(manager_id)

    def compute_liability(self, manager_id: str) -> Liability:
        """Current liability for ``manager_id``; zero when it has no entries."""
        return fold_liability(
            manager_id,
            self._store.list_by_manager(manager_id),
            self._manager_name(manager_id),
        )

    def compute_all(self, manager_ids: Iterable[str] | None = None) -> list[Liability]:
        """Liabilities for the given managers, or every manager in the ledger."""
        ids = list(manager_ids) if manager_ids is not None else self._store.manager_ids()
        return [self.compute_liability(manager_id) for manager_id in ids]

    def build_reset(
        self,
        manager_id: str,
        baseline: Decimal | int | str = 0,
        reason: str = "",
        operator: str | None = None,
    ) -> Adjustment | None:
        """Build the adjustment that brings the liability to ``baseline``.

        The entry is returned, not appended. ``None`` means the liability is
        already at the baseline.
        """
        if not reason or not reason.strip():
            raise ValidationError("A reset requires a reason")

        try:
            target = quantize_money(baseline)
        except (InvalidOperation, ValueError) as exc:
            raise ValidationError(f"baseline must be a number, got {baseline!r}") from exc
        current = self.compute_liability(manager_id).outstanding_amount
        delta = current - target
        if delta == 0:
            return None

        direction = AdjustmentDirection.CREDIT if delta > 0 else AdjustmentDirection.DEBIT
        entry = build_entry(
            EntryKind.ADJUSTMENT,
            manager_id=manager_id,
            amount=abs(delta),
            direction=direction,
            baseline=target,
            reason=reason.strip(),
            recorded_by=operator,
        )
        self._logger.debug(
            "reset_built",
            manager_id=manager_id,
            current=str(current),
            baseline=str(target),
            direction=direction.value,
        )
        return entry  # type: ignore[return-value]

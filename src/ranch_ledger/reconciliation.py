"""Reconciliation engine.

Every ledger mutation goes through here. The engine serializes writes per
manager, validates them against the manager's current liability, appends the
resulting entry and then recomputes the liability so alerts stay current.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

import structlog

from ranch_ledger.categorizer import categorize
from ranch_ledger.config import get_settings
from ranch_ledger.errors import (
    AuthorizationError,
    ConsistencyError,
    NotFoundError,
    ValidationError,
)
from ranch_ledger.events import (
    EventPublisher,
    entry_recorded,
    liability_alert,
    liability_updated,
)
from ranch_ledger.liability import Liability, LiabilityTracker, reversed_payment_ids
from ranch_ledger.managers import ManagerRegistry
from ranch_ledger.models import (
    ActivityType,
    EntryKind,
    ExternalActivity,
    LedgerEntry,
    ManagerPayment,
    Withdrawal,
    WorkerPayment,
    build_entry,
    quantize_money,
)
from ranch_ledger.monitor import LiabilityStatus, evaluate_liability
from ranch_ledger.store import LedgerStore

logger = structlog.get_logger(__name__)


class ManagerLocks:
    """One re-entrant lock per manager id."""

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def get(self, manager_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(manager_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[manager_id] = lock
            return lock

    @contextmanager
    def hold(self, manager_id: str) -> Iterator[None]:
        with self.get(manager_id):
            yield


class IngestOutcome(str, Enum):
    """What happened to one feed activity."""

    SYNCED = "synced"
    EXCLUDED = "excluded"
    DUPLICATE = "duplicate"


@dataclass
class DepositResult:
    entry: LedgerEntry
    excluded: bool


@dataclass
class PayrollResult:
    period: str
    payments: list[LedgerEntry] = field(default_factory=list)
    already_paid: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def total_paid(self) -> Decimal:
        return sum((p.amount for p in self.payments), Decimal("0.00"))


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """Parse a strictly positive money amount."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    try:
        amount = quantize_money(value)
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} must be a number, got {value!r}") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return amount


def _require_text(value: str | None, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()


class ReconciliationEngine:
    """Applies operator actions and feed activity to the ledger."""

    def __init__(
        self,
        store: LedgerStore,
        registry: ManagerRegistry,
        publisher: EventPublisher | None = None,
        automated_deposit_amounts: list[Decimal] | None = None,
        alert_threshold: Decimal | None = None,
    ):
        settings = get_settings()
        self.store = store
        self.registry = registry
        self.tracker = LiabilityTracker(store, name_lookup=self._manager_name)
        self.locks = ManagerLocks()
        self._publisher = publisher
        self._automated_amounts = {
            quantize_money(a)
            for a in (
                automated_deposit_amounts
                if automated_deposit_amounts is not None
                else settings.automated_deposit_amounts
            )
        }
        self._threshold = (
            alert_threshold
            if alert_threshold is not None
            else settings.liability_alert_threshold
        )
        self._logger = logger.bind(component="reconciliation")

    @property
    def alert_threshold(self) -> Decimal:
        return self._threshold

    def _manager_name(self, manager_id: str) -> str:
        manager = self.registry.find(manager_id)
        return manager.name if manager else ""

    def is_automated_amount(self, amount: Decimal) -> bool:
        return quantize_money(amount) in self._automated_amounts

    # === Internals ===

    def _append(self, entry: LedgerEntry) -> LedgerEntry:
        stored = self.store.append(entry)
        if self._publisher is not None:
            self._publisher.publish(entry_recorded(stored))
        return stored

    def _after_mutation(self, manager_id: str) -> Liability:
        """Recompute the liability and emit the matching events."""
        liability = self.tracker.compute_liability(manager_id)
        outstanding = liability.outstanding_amount
        status = evaluate_liability(outstanding, self._threshold)

        self._logger.info(
            "liability_recomputed",
            manager_id=manager_id,
            outstanding=str(outstanding),
            status=status.value,
        )
        if liability.is_negative:
            self._logger.warning(
                "negative_liability", manager_id=manager_id, outstanding=str(outstanding)
            )

        if self._publisher is not None:
            self._publisher.publish(
                liability_updated(manager_id, liability.manager_name, outstanding)
            )
            if status is LiabilityStatus.CRITICO:
                self._publisher.publish(
                    liability_alert(
                        manager_id,
                        liability.manager_name,
                        outstanding,
                        self._threshold,
                        severity=status.value,
                    )
                )
        return liability

    # === Operator actions ===

    def record_withdrawal(
        self,
        manager_id: str,
        amount: Any,
        reason: str,
        category: str = "outros",
        recorded_by: str | None = None,
    ) -> LedgerEntry:
        """Record money taken out by a manager; raises their liability."""
        value = parse_amount(amount)
        reason = _require_text(reason, "reason")
        self.registry.require_active(manager_id)

        with self.locks.hold(manager_id):
            entry = self._append(
                build_entry(
                    EntryKind.WITHDRAWAL,
                    manager_id=manager_id,
                    amount=value,
                    reason=reason,
                    category=category or "outros",
                    recorded_by=recorded_by,
                )
            )
            self._after_mutation(manager_id)

        self._logger.info(
            "withdrawal_recorded", manager_id=manager_id, amount=str(value), entry_id=entry.id
        )
        return entry

    def record_deposit(
        self,
        manager_id: str,
        amount: Any,
        reason: str = "",
        category: str = "revenue",
        recorded_by: str | None = None,
    ) -> DepositResult:
        """Record a deposit, excluding it when it matches an automated amount."""
        value = parse_amount(amount)
        self.registry.require_active(manager_id)
        excluded = self.is_automated_amount(value)

        fields: dict[str, Any] = {
            "manager_id": manager_id,
            "amount": value,
            "reason": (reason or "").strip(),
            "recorded_by": recorded_by,
        }
        if excluded:
            entry = build_entry(
                EntryKind.EXCLUDED_DEPOSIT,
                exclusion_reason=f"automated deposit of {value}",
                **fields,
            )
        else:
            entry = build_entry(EntryKind.DEPOSIT, category=category or "revenue", **fields)

        with self.locks.hold(manager_id):
            stored = self._append(entry)
            self._after_mutation(manager_id)

        self._logger.info(
            "deposit_recorded",
            manager_id=manager_id,
            amount=str(value),
            excluded=excluded,
        )
        return DepositResult(entry=stored, excluded=excluded)

    def record_worker_payment(
        self,
        manager_id: str,
        worker_id: str,
        amount: Any,
        withdrawal_id: str | None = None,
        worker_name: str | None = None,
        category: str = "worker_payment",
        activity_id: str | None = None,
        reason: str = "",
        recorded_by: str | None = None,
    ) -> LedgerEntry:
        """Record a payment to a worker, discharging the manager's liability.

        Raises:
            ValidationError: Missing worker id or non-positive amount.
            NotFoundError: Unknown manager or withdrawal.
            ConsistencyError: The withdrawal belongs to someone else, is
                already covered, or the activity was already paid.
        """
        worker_id = _require_text(worker_id, "worker_id")
        value = parse_amount(amount)
        self.registry.require_active(manager_id)
        category = category or "worker_payment"

        with self.locks.hold(manager_id):
            if withdrawal_id:
                self._check_withdrawal_capacity(manager_id, withdrawal_id, value)

            if activity_id:
                entries = self.store.list_by_manager(manager_id)
                reversed_ids = reversed_payment_ids(entries)
                for existing in entries:
                    if (
                        isinstance(existing, WorkerPayment)
                        and existing.activity_id == activity_id
                        and existing.category == category
                        and existing.id not in reversed_ids
                    ):
                        raise ConsistencyError(
                            f"Activity {activity_id} is already paid",
                            details={"entry_id": existing.id},
                        )

            entry = self._append(
                build_entry(
                    EntryKind.WORKER_PAYMENT,
                    manager_id=manager_id,
                    worker_id=worker_id,
                    worker_name=worker_name,
                    amount=value,
                    withdrawal_id=withdrawal_id or None,
                    activity_id=activity_id or None,
                    category=category,
                    reason=(reason or f"Payment to {worker_name or worker_id}").strip(),
                    recorded_by=recorded_by,
                )
            )
            self._after_mutation(manager_id)

        self._logger.info(
            "worker_payment_recorded",
            manager_id=manager_id,
            worker_id=worker_id,
            amount=str(value),
            withdrawal_id=withdrawal_id,
        )
        return entry

    def _find_withdrawal(self, withdrawal_id: str) -> Withdrawal:
        entry = self.store.get(withdrawal_id)
        if not isinstance(entry, Withdrawal):
            raise NotFoundError(f"Withdrawal {withdrawal_id} not found")
        return entry

    def _check_withdrawal_capacity(
        self, manager_id: str, withdrawal_id: str, amount: Decimal
    ) -> Decimal:
        withdrawal = self._find_withdrawal(withdrawal_id)
        if withdrawal.manager_id != manager_id:
            raise ConsistencyError(
                f"Withdrawal {withdrawal_id} belongs to manager {withdrawal.manager_id}"
            )
        breakdown = self.tracker.compute_liability(manager_id).breakdown_for(withdrawal_id)
        remaining = breakdown.remaining_liability if breakdown else Decimal("0")
        if amount > remaining:
            raise ConsistencyError(
                f"Amount {amount} exceeds the {remaining} still open on withdrawal "
                f"{withdrawal_id}",
                details={"remaining": str(remaining)},
            )
        return remaining

    def justify_withdrawal(
        self,
        withdrawal_id: str,
        reason: str,
        amount: Any = None,
        recorded_by: str | None = None,
    ) -> LedgerEntry:
        """Accept part or all of a withdrawal as self-justified spending."""
        reason = _require_text(reason, "reason")
        withdrawal = self._find_withdrawal(withdrawal_id)
        manager_id = withdrawal.manager_id

        with self.locks.hold(manager_id):
            breakdown = self.tracker.compute_liability(manager_id).breakdown_for(withdrawal_id)
            remaining = breakdown.remaining_liability if breakdown else Decimal("0")
            if remaining <= 0:
                raise ConsistencyError(f"Withdrawal {withdrawal_id} has nothing left to justify")

            value = remaining if amount is None else parse_amount(amount)
            if value > remaining:
                raise ConsistencyError(
                    f"Amount {value} exceeds the {remaining} still open on withdrawal "
                    f"{withdrawal_id}",
                    details={"remaining": str(remaining)},
                )

            entry = self._append(
                build_entry(
                    EntryKind.JUSTIFICATION,
                    manager_id=manager_id,
                    withdrawal_id=withdrawal_id,
                    amount=value,
                    reason=reason,
                    recorded_by=recorded_by,
                )
            )
            self._after_mutation(manager_id)

        self._logger.info(
            "withdrawal_justified",
            manager_id=manager_id,
            withdrawal_id=withdrawal_id,
            amount=str(value),
        )
        return entry

    # === Reversals ===

    def _open_payments(self, manager_id: str, service_type: str) -> list[WorkerPayment]:
        entries = self.store.list_by_manager(manager_id)
        reversed_ids = reversed_payment_ids(entries)
        wanted = service_type.strip().lower()
        return [
            e
            for e in entries
            if isinstance(e, WorkerPayment)
            and e.category.lower() == wanted
            and e.id not in reversed_ids
        ]

    def _reverse(self, payment: WorkerPayment, recorded_by: str | None) -> LedgerEntry:
        return self._append(
            build_entry(
                EntryKind.PAYMENT_REVERSAL,
                manager_id=payment.manager_id,
                amount=payment.amount,
                reverses_id=payment.id,
                category=payment.category,
                reason=f"Reversal of payment {payment.id}",
                recorded_by=recorded_by,
            )
        )

    def unpay(
        self,
        manager_id: str,
        service_type: str,
        activity_id: str,
        recorded_by: str | None = None,
    ) -> LedgerEntry:
        """Reverse one paid entry of ``service_type``.

        The original payment stays in the ledger; the reversal restores the
        liability it discharged.
        """
        service_type = _require_text(service_type, "service_type")
        activity_id = _require_text(activity_id, "activity_id")
        self.registry.get(manager_id)

        with self.locks.hold(manager_id):
            matches = [
                p
                for p in self._open_payments(manager_id, service_type)
                if activity_id in (p.activity_id, p.external_id, p.id)
            ]
            if not matches:
                raise ValidationError(
                    f"No paid {service_type} entry {activity_id} for manager {manager_id}"
                )
            reversal = self._reverse(matches[-1], recorded_by)
            self._after_mutation(manager_id)

        self._logger.info(
            "payment_reversed",
            manager_id=manager_id,
            service_type=service_type,
            activity_id=activity_id,
            amount=str(reversal.amount),
        )
        return reversal

    def unpay_all(
        self, manager_id: str, service_type: str, recorded_by: str | None = None
    ) -> list[LedgerEntry]:
        """Reverse every open payment of ``service_type``; may return []."""
        service_type = _require_text(service_type, "service_type")
        self.registry.get(manager_id)

        with self.locks.hold(manager_id):
            reversals = [
                self._reverse(p, recorded_by)
                for p in self._open_payments(manager_id, service_type)
            ]
            if reversals:
                self._after_mutation(manager_id)

        self._logger.info(
            "payments_reversed",
            manager_id=manager_id,
            service_type=service_type,
            count=len(reversals),
        )
        return reversals

    # === Manager payroll ===

    def pay_manager(
        self,
        manager_id: str,
        amount: Any = None,
        description: str = "",
        recorded_by: str | None = None,
    ) -> LedgerEntry:
        """Pay one manager; ``amount`` defaults to their weekly payment."""
        manager = self.registry.require_active(manager_id)
        if amount is None:
            if manager.weekly_payment <= 0:
                raise ValidationError(
                    f"{manager.name} has no weekly payment configured; give an amount"
                )
            value = manager.weekly_payment
        else:
            value = parse_amount(amount)

        with self.locks.hold(manager_id):
            entry = self._append(
                build_entry(
                    EntryKind.MANAGER_PAYMENT,
                    manager_id=manager_id,
                    amount=value,
                    reason=(description or "").strip() or f"Payment for {manager.name}",
                    recorded_by=recorded_by,
                )
            )
            self._after_mutation(manager_id)

        self._logger.info(
            "manager_paid", manager_id=manager_id, amount=str(value), entry_id=entry.id
        )
        return entry

    def pay_all_managers(
        self, recorded_by: str | None = None, now: datetime | None = None
    ) -> PayrollResult:
        """Pay the weekly payment of every active manager, once per ISO week.

        Managers without a weekly payment are skipped; those already paid
        this week are reported as such and not paid again.
        """
        year, week, _ = (now or datetime.now(UTC)).isocalendar()
        period = f"{year}-W{week:02d}"
        result = PayrollResult(period=period)

        for manager in self.registry.list():
            if manager.weekly_payment <= 0:
                result.skipped.append(manager.id)
                continue
            external_id = f"payroll:{period}:{manager.id}"
            with self.locks.hold(manager.id):
                if self.store.find_by_external_id(external_id) is not None:
                    result.already_paid.append(manager.id)
                    continue
                entry = self._append(
                    build_entry(
                        EntryKind.MANAGER_PAYMENT,
                        manager_id=manager.id,
                        amount=manager.weekly_payment,
                        reason=f"Weekly payment {period} for {manager.name}",
                        external_id=external_id,
                        period=period,
                        recorded_by=recorded_by,
                    )
                )
                self._after_mutation(manager.id)
            result.payments.append(entry)

        self._logger.info(
            "payroll_processed",
            period=period,
            paid=len(result.payments),
            total=str(result.total_paid),
            already_paid=len(result.already_paid),
            skipped=len(result.skipped),
        )
        return result

    def payment_history(
        self, manager_id: str | None = None, limit: int = 50
    ) -> list[LedgerEntry]:
        """Manager payments, newest first."""
        if manager_id:
            self.registry.get(manager_id)
            entries = self.store.list_by_manager(manager_id)
        else:
            entries = self.store.all_entries()
        # Ties on timestamp keep the later append first
        ordered = sorted(
            (
                (index, e)
                for index, e in enumerate(entries)
                if isinstance(e, ManagerPayment)
            ),
            key=lambda pair: (pair[1].timestamp, pair[0]),
            reverse=True,
        )
        return [e for _, e in ordered[: max(0, limit)]]

    # === Audited corrections ===

    def reset_liability(
        self,
        manager_id: str,
        baseline: Any = 0,
        reason: str = "",
        operator: str | None = None,
        authorized: bool = False,
    ) -> LedgerEntry | None:
        """Append the adjustment that brings a liability to ``baseline``.

        Returns ``None`` when the liability already equals the baseline.
        """
        if not authorized:
            raise AuthorizationError("Liability resets require administrator access")
        reason = _require_text(reason, "reason")
        self.registry.get(manager_id)

        with self.locks.hold(manager_id):
            adjustment = self.tracker.build_reset(manager_id, baseline, reason, operator)
            if adjustment is None:
                return None
            entry = self._append(adjustment)
            self._after_mutation(manager_id)

        self._logger.warning(
            "liability_reset",
            manager_id=manager_id,
            baseline=str(adjustment.baseline),
            direction=adjustment.direction.value,
            amount=str(adjustment.amount),
            operator=operator,
            reason=reason,
        )
        return entry

    def reset_negative_balances(
        self,
        operator: str | None = None,
        authorized: bool = False,
        reason: str = "Reset of negative balance",
    ) -> list[LedgerEntry]:
        """Bring every negative liability back to zero."""
        if not authorized:
            raise AuthorizationError("Liability resets require administrator access")

        resets: list[LedgerEntry] = []
        for manager_id in self.store.manager_ids():
            with self.locks.hold(manager_id):
                if not self.tracker.compute_liability(manager_id).is_negative:
                    continue
                adjustment = self.tracker.build_reset(manager_id, 0, reason, operator)
                if adjustment is None:
                    continue
                resets.append(self._append(adjustment))
                self._after_mutation(manager_id)

        self._logger.warning("negative_balances_reset", count=len(resets), operator=operator)
        return resets

    # === Feed ingestion ===

    def ingest(self, activity: ExternalActivity, manager_id: str) -> IngestOutcome:
        """Apply one feed activity to ``manager_id``'s ledger, at most once.

        Raises:
            ValidationError: Missing author, type or id, or a financial
                activity without a positive amount.
        """
        if not activity.author:
            raise ValidationError("Activity has no author")
        if activity.type is None:
            raise ValidationError("Activity has no type")
        if not activity.id:
            raise ValidationError("Activity has no external id")

        entry, outcome = self._entry_for_activity(activity, manager_id)

        with self.locks.hold(manager_id):
            if self.store.find_by_external_id(activity.id) is not None:
                return IngestOutcome.DUPLICATE
            try:
                self._append(entry)
            except ConsistencyError:
                # Another manager's batch stored the same external id first.
                if self.store.find_by_external_id(activity.id) is not None:
                    return IngestOutcome.DUPLICATE
                raise
            if activity.type.is_financial:
                self._after_mutation(manager_id)

        self._logger.debug(
            "activity_ingested",
            manager_id=manager_id,
            external_id=activity.id,
            kind=entry.kind,
            outcome=outcome.value,
        )
        return outcome

    def _entry_for_activity(
        self, activity: ExternalActivity, manager_id: str
    ) -> tuple[LedgerEntry, IngestOutcome]:
        category = categorize(activity)
        fields: dict[str, Any] = {
            "manager_id": manager_id,
            "external_id": activity.id,
            "reason": activity.description,
            "category": category.value,
        }
        if activity.timestamp is not None:
            fields["timestamp"] = activity.timestamp

        if activity.type is ActivityType.WITHDRAW:
            fields["amount"] = parse_amount(activity.amount)
            return build_entry(EntryKind.WITHDRAWAL, **fields), IngestOutcome.SYNCED

        if activity.type is ActivityType.DEPOSIT:
            fields["amount"] = parse_amount(activity.amount)
            if activity.automated or self.is_automated_amount(fields["amount"]):
                fields["category"] = "excluded"
                reason = "automated by feed" if activity.automated else (
                    f"automated deposit of {fields['amount']}"
                )
                entry = build_entry(
                    EntryKind.EXCLUDED_DEPOSIT, exclusion_reason=reason, **fields
                )
                return entry, IngestOutcome.EXCLUDED
            return build_entry(EntryKind.DEPOSIT, **fields), IngestOutcome.SYNCED

        fields["amount"] = abs(activity.amount) if activity.amount is not None else 0
        entry = build_entry(
            EntryKind.INVENTORY_RECORD,
            item=activity.item,
            quantity=activity.quantity,
            activity_type=activity.type.value,
            **fields,
        )
        return entry, IngestOutcome.SYNCED

    # === Queries ===

    def liability(self, manager_id: str) -> Liability:
        """Current liability, recomputed from the ledger."""
        return self.tracker.compute_liability(manager_id)

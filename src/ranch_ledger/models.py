"""Ledger data model.

Ledger entries form a tagged union discriminated by ``kind``. Each variant
declares its own required fields, so a malformed entry is rejected once, at
construction, instead of being checked ad hoc wherever it is read.

Invariants:
- ``amount >= 0`` for every entry; direction is carried by the kind.
- Entries are immutable. Reversals, justifications and resets are new entries.
- Money is Decimal, quantized to cents.
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError

from ranch_ledger.errors import ValidationError

MONEY_QUANTUM = Decimal("0.01")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid4().hex


def quantize_money(value: Decimal | int | float | str) -> Decimal:
    """Round a monetary value to cents."""
    return Decimal(str(value)).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


class EntryKind(str, Enum):
    """Kinds of ledger entries."""

    WITHDRAWAL = "withdrawal"
    DEPOSIT = "deposit"
    EXCLUDED_DEPOSIT = "excluded_deposit"
    WORKER_PAYMENT = "worker_payment"
    PAYMENT_REVERSAL = "payment_reversal"
    JUSTIFICATION = "justification"
    ADJUSTMENT = "adjustment"
    INVENTORY_RECORD = "inventory_record"
    MANAGER_PAYMENT = "manager_payment"


class AdjustmentDirection(str, Enum):
    """Credit lowers a manager's liability, debit raises it."""

    CREDIT = "credit"
    DEBIT = "debit"


class _EntryBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(default_factory=_new_id, min_length=1)
    manager_id: str = Field(min_length=1)
    amount: Decimal = Field(ge=0)
    category: str = ""
    reason: str = ""
    external_id: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)
    recorded_by: str | None = None

    @field_validator("amount")
    @classmethod
    def _quantize_amount(cls, value: Decimal) -> Decimal:
        return quantize_money(value)

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Naive feed timestamps are UTC.
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class Withdrawal(_EntryBase):
    """Money a manager took out of the ranch account."""

    kind: Literal["withdrawal"] = "withdrawal"
    category: str = "outros"


class Deposit(_EntryBase):
    """Money a manager put into the ranch account."""

    kind: Literal["deposit"] = "deposit"
    category: str = "revenue"


class ExcludedDeposit(_EntryBase):
    """Deposit kept for audit but excluded from accountability math."""

    kind: Literal["excluded_deposit"] = "excluded_deposit"
    category: str = "excluded"
    exclusion_reason: str = Field(min_length=1)


class WorkerPayment(_EntryBase):
    """Payment from a manager to a worker, discharging liability."""

    kind: Literal["worker_payment"] = "worker_payment"
    category: str = "worker_payment"
    worker_id: str = Field(min_length=1)
    worker_name: str | None = None
    withdrawal_id: str | None = None
    activity_id: str | None = None


class PaymentReversal(_EntryBase):
    """Undoes the effect of one worker payment."""

    kind: Literal["payment_reversal"] = "payment_reversal"
    category: str = "worker_payment"
    reverses_id: str = Field(min_length=1)


class Justification(_EntryBase):
    """Part of a withdrawal the operator accepted as self-justified."""

    kind: Literal["justification"] = "justification"
    category: str = "justified"
    withdrawal_id: str = Field(min_length=1)


class Adjustment(_EntryBase):
    """Audited correction bringing a liability to a baseline."""

    kind: Literal["adjustment"] = "adjustment"
    category: str = "reset"
    direction: AdjustmentDirection
    baseline: Decimal = Decimal("0")

    @field_validator("baseline")
    @classmethod
    def _quantize_baseline(cls, value: Decimal) -> Decimal:
        return quantize_money(value)


class ManagerPayment(_EntryBase):
    """Payroll paid to a manager. Settles nothing they owe."""

    kind: Literal["manager_payment"] = "manager_payment"
    category: str = "payroll"
    period: str | None = None


class InventoryRecord(_EntryBase):
    """Inventory-linked feed activity, recorded for audit and dedupe."""

    kind: Literal["inventory_record"] = "inventory_record"
    category: str = "outros"
    item: str | None = None
    quantity: int | None = None
    activity_type: str = "other"


LedgerEntry = Annotated[
    Union[
        Withdrawal,
        Deposit,
        ExcludedDeposit,
        WorkerPayment,
        PaymentReversal,
        Justification,
        Adjustment,
        InventoryRecord,
        ManagerPayment,
    ],
    Field(discriminator="kind"),
]

_ENTRY_ADAPTER: TypeAdapter[LedgerEntry] = TypeAdapter(LedgerEntry)

ENTRY_TYPES: dict[EntryKind, type[_EntryBase]] = {
    EntryKind.WITHDRAWAL: Withdrawal,
    EntryKind.DEPOSIT: Deposit,
    EntryKind.EXCLUDED_DEPOSIT: ExcludedDeposit,
    EntryKind.WORKER_PAYMENT: WorkerPayment,
    EntryKind.PAYMENT_REVERSAL: PaymentReversal,
    EntryKind.JUSTIFICATION: Justification,
    EntryKind.ADJUSTMENT: Adjustment,
    EntryKind.INVENTORY_RECORD: InventoryRecord,
    EntryKind.MANAGER_PAYMENT: ManagerPayment,
}


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "entry"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def parse_entry(data: dict[str, Any]) -> LedgerEntry:
    """Build a ledger entry from a dict, dispatching on ``kind``."""
    try:
        return _ENTRY_ADAPTER.validate_python(data)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid ledger entry: {_describe(exc)}") from exc


def build_entry(kind: EntryKind, **fields: Any) -> LedgerEntry:
    """Construct an entry of the given kind, raising our ValidationError."""
    try:
        return ENTRY_TYPES[kind](**fields)  # type: ignore[return-value]
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid {kind.value}: {_describe(exc)}") from exc


def entry_to_dict(entry: LedgerEntry) -> dict[str, Any]:
    """Serialize an entry to JSON-compatible primitives."""
    return entry.model_dump(mode="json")


# === Managers ===


class ManagerRole(str, Enum):
    """Role of a manager account."""

    MANAGER = "manager"
    SUPERVISOR = "supervisor"

    @classmethod
    def parse(cls, value: str) -> "ManagerRole":
        normalized = value.strip().lower()
        aliases = {"gerente": cls.MANAGER, "manager": cls.MANAGER, "supervisor": cls.SUPERVISOR}
        if normalized not in aliases:
            raise ValidationError(
                f"Role must be 'manager' or 'supervisor', got {value!r}"
            )
        return aliases[normalized]


class Manager(BaseModel):
    """A manager or supervisor accountable for withdrawals."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    role: ManagerRole = ManagerRole.MANAGER
    active: bool = True
    weekly_payment: Decimal = Field(default=Decimal("0"), ge=0)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("role", mode="before")
    @classmethod
    def _parse_role(cls, value: Any) -> Any:
        if isinstance(value, str):
            return ManagerRole.parse(value)
        return value

    @field_validator("weekly_payment")
    @classmethod
    def _quantize_payment(cls, value: Decimal) -> Decimal:
        return quantize_money(value)


# === External activity feed ===


class ActivityType(str, Enum):
    """Normalized activity verbs from the farm feed."""

    ADD = "add"
    REMOVE = "remove"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    SALE = "sale"
    OTHER = "other"

    @classmethod
    def normalize(cls, value: str) -> "ActivityType":
        aliases = {
            "add": cls.ADD,
            "adicionar": cls.ADD,
            "remove": cls.REMOVE,
            "remover": cls.REMOVE,
            "deposit": cls.DEPOSIT,
            "deposito": cls.DEPOSIT,
            "depósito": cls.DEPOSIT,
            "withdraw": cls.WITHDRAW,
            "withdrawal": cls.WITHDRAW,
            "saque": cls.WITHDRAW,
            "sale": cls.SALE,
            "venda": cls.SALE,
        }
        return aliases.get(value.strip().lower(), cls.OTHER)

    @property
    def is_financial(self) -> bool:
        return self in (ActivityType.DEPOSIT, ActivityType.WITHDRAW)


class ExternalActivity(BaseModel):
    """A normalized record from the farm activity feed. Read-only.

    Author and type are optional at parse time so that one malformed record
    can be reported by the sync instead of failing the whole feed.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str | None = None
    author: str | None = Field(
        default=None, validation_alias=AliasChoices("author", "autor")
    )
    type: ActivityType | None = Field(
        default=None, validation_alias=AliasChoices("type", "tipo")
    )
    item: str | None = None
    quantity: int | None = Field(
        default=None, validation_alias=AliasChoices("quantity", "quantidade")
    )
    amount: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("amount", "valor")
    )
    timestamp: datetime | None = None
    description: str = Field(
        default="", validation_alias=AliasChoices("description", "descricao")
    )
    automated: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        if isinstance(value, str):
            return ActivityType.normalize(value)
        return value

    @field_validator("description", mode="before")
    @classmethod
    def _default_description(cls, value: Any) -> Any:
        return value or ""

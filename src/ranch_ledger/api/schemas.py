"""Request bodies for the HTTP API.

Amounts are loosely typed here and validated by the engine, which answers 400
with a readable reason. Portuguese field names from the dashboard are accepted
as aliases.
"""

from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ManagerIn(_Body):
    id: str = Field(validation_alias=AliasChoices("id", "manager_id", "fixo"))
    name: str = Field(validation_alias=AliasChoices("name", "nome"))
    role: str = Field(default="manager", validation_alias=AliasChoices("role", "tipo"))
    active: bool | None = Field(default=None, validation_alias=AliasChoices("active", "ativo"))
    weekly_payment: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("weekly_payment", "pagamento_semanal")
    )


class WithdrawalIn(_Body):
    amount: Any = Field(default=None, validation_alias=AliasChoices("amount", "valor"))
    reason: str | None = Field(default=None, validation_alias=AliasChoices("reason", "razao"))
    category: str = Field(default="outros", validation_alias=AliasChoices("category", "categoria"))
    recorded_by: str | None = None


class DepositIn(_Body):
    amount: Any = Field(default=None, validation_alias=AliasChoices("amount", "valor"))
    reason: str = Field(default="", validation_alias=AliasChoices("reason", "razao"))
    category: str = Field(default="revenue", validation_alias=AliasChoices("category", "categoria"))
    recorded_by: str | None = None


class WorkerPaymentIn(_Body):
    worker_id: str | None = Field(
        default=None, validation_alias=AliasChoices("worker_id", "workerId")
    )
    worker_name: str | None = Field(
        default=None, validation_alias=AliasChoices("worker_name", "worker_nome")
    )
    amount: Any = Field(default=None, validation_alias=AliasChoices("amount", "valor"))
    withdrawal_id: str | None = Field(
        default=None, validation_alias=AliasChoices("withdrawal_id", "withdrawalId")
    )
    category: str = Field(
        default="worker_payment", validation_alias=AliasChoices("category", "categoria")
    )
    activity_id: str | None = None
    reason: str = ""
    recorded_by: str | None = None


class JustifyIn(_Body):
    reason: str | None = Field(default=None, validation_alias=AliasChoices("reason", "razao"))
    amount: Any = Field(
        default=None, validation_alias=AliasChoices("amount", "valorJustificado")
    )
    recorded_by: str | None = None


class ManagerPaymentIn(_Body):
    amount: Any = Field(default=None, validation_alias=AliasChoices("amount", "valor"))
    description: str = Field(
        default="", validation_alias=AliasChoices("description", "descricao")
    )
    recorded_by: str | None = None


class PayrollIn(_Body):
    recorded_by: str | None = None


class ResetIn(_Body):
    baseline: Any = 0
    reason: str = ""
    operator: str = "admin"


class ResetNegativeIn(_Body):
    reason: str = "Reset of negative balance"
    operator: str = "admin"


class StockConfigIn(_Body):
    id: str = Field(validation_alias=AliasChoices("id", "item_id", "itemId"))
    display_name: str = Field(default="", validation_alias=AliasChoices("display_name", "nome"))
    category: str = Field(default="outros", validation_alias=AliasChoices("category", "categoria"))
    minimum: int = Field(validation_alias=AliasChoices("minimum", "minimo"))
    maximum: int = Field(validation_alias=AliasChoices("maximum", "maximo"))
    active: bool = Field(default=True, validation_alias=AliasChoices("active", "ativo"))
    unit_price: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("unit_price", "preco_unitario")
    )


class StockConfigPatch(_Body):
    display_name: str | None = Field(
        default=None, validation_alias=AliasChoices("display_name", "nome")
    )
    category: str | None = Field(
        default=None, validation_alias=AliasChoices("category", "categoria")
    )
    minimum: int | None = Field(default=None, validation_alias=AliasChoices("minimum", "minimo"))
    maximum: int | None = Field(default=None, validation_alias=AliasChoices("maximum", "maximo"))
    active: bool | None = Field(default=None, validation_alias=AliasChoices("active", "ativo"))
    unit_price: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("unit_price", "preco_unitario")
    )

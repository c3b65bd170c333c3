"""Stock thresholds per inventory item, plus persisted warning 'seen' flags."""

import threading
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from ranch_ledger.errors import ConsistencyError, NotFoundError, ValidationError
from ranch_ledger.models import quantize_money
from ranch_ledger.storage import JsonDocument

logger = structlog.get_logger(__name__)


class StockConfig(BaseModel):
    """Minimum/maximum bounds for one inventory item."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(min_length=1)
    display_name: str = ""
    category: str = "outros"
    minimum: int = Field(ge=0)
    maximum: int = Field(gt=0)
    active: bool = True
    unit_price: Decimal | None = Field(default=None, ge=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("unit_price")
    @classmethod
    def _quantize_price(cls, value: Decimal | None) -> Decimal | None:
        return None if value is None else quantize_money(value)

    @model_validator(mode="after")
    def _check_bounds(self) -> "StockConfig":
        if self.minimum >= self.maximum:
            raise ValueError("minimum must be lower than maximum")
        return self

    @property
    def name(self) -> str:
        return self.display_name or self.id


def _describe(exc: PydanticValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ())) or "config"
    return f"{loc}: {err.get('msg', 'invalid')}"


class StockConfigStore:
    """Persisted stock configs keyed by item id."""

    def __init__(self, path: Path | str):
        self._document = JsonDocument(path, {"configs": {}, "seen_warnings": []})
        self._lock = threading.RLock()
        self._logger = logger.bind(component="stock_config_store")

        data = self._document.load()
        try:
            self._configs: dict[str, StockConfig] = {
                item_id: StockConfig.model_validate(raw)
                for item_id, raw in (data.get("configs") or {}).items()
            }
        except PydanticValidationError as exc:
            raise ConsistencyError(f"Stored stock config is invalid: {_describe(exc)}") from exc
        self._seen: set[str] = set(data.get("seen_warnings") or [])

    def _save(self) -> None:
        self._document.save(
            {
                "configs": {
                    item_id: config.model_dump(mode="json")
                    for item_id, config in self._configs.items()
                },
                "seen_warnings": sorted(self._seen),
            }
        )

    def list(self, include_inactive: bool = True) -> list[StockConfig]:
        with self._lock:
            configs = list(self._configs.values())
        if not include_inactive:
            configs = [c for c in configs if c.active]
        return sorted(configs, key=lambda c: c.id)

    def get(self, item_id: str) -> StockConfig:
        with self._lock:
            config = self._configs.get(item_id)
        if config is None:
            raise NotFoundError(f"Stock config {item_id} not found")
        return config

    def upsert(self, data: dict[str, Any]) -> StockConfig:
        """Create or fully replace a config. ValidationError if min >= max."""
        fields = {**data, "updated_at": datetime.now(UTC)}
        try:
            config = StockConfig.model_validate(fields)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid stock config: {_describe(exc)}") from exc

        with self._lock:
            previous = self._configs.get(config.id)
            self._configs[config.id] = config
            try:
                self._save()
            except Exception:
                if previous is None:
                    del self._configs[config.id]
                else:
                    self._configs[config.id] = previous
                raise

        self._logger.info("stock_config_saved", item_id=config.id, created=previous is None)
        return config

    def update(self, item_id: str, changes: dict[str, Any]) -> StockConfig:
        """Merge ``changes`` into an existing config."""
        existing = self.get(item_id)
        merged = {**existing.model_dump(), **changes, "id": item_id}
        return self.upsert(merged)

    def delete(self, item_id: str) -> StockConfig:
        with self._lock:
            config = self.get(item_id)
            del self._configs[item_id]
            stale = {w for w in self._seen if w.split(":", 1)[0] == item_id}
            self._seen -= stale
            try:
                self._save()
            except Exception:
                self._configs[item_id] = config
                self._seen |= stale
                raise

        self._logger.info("stock_config_deleted", item_id=item_id)
        return config

    def is_seen(self, warning_id: str) -> bool:
        with self._lock:
            return warning_id in self._seen

    def mark_seen(self, warning_id: str) -> None:
        with self._lock:
            if warning_id in self._seen:
                return
            self._seen.add(warning_id)
            try:
                self._save()
            except Exception:
                self._seen.discard(warning_id)
                raise

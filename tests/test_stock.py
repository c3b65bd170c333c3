"""Tests for stock config persistence."""

from decimal import Decimal

import pytest

from ranch_ledger.errors import ConsistencyError, NotFoundError, ValidationError
from ranch_ledger.stock import StockConfigStore


class TestStockConfigStore:
    def test_upsert_and_reload(self, stock_store, tmp_path):
        stock_store.upsert({"id": "milho", "minimum": 10, "maximum": 100, "unit_price": 1.2})

        reloaded = StockConfigStore(tmp_path / "stock_config.json")
        config = reloaded.get("milho")

        assert config.unit_price == Decimal("1.20")
        assert config.name == "milho"
        assert config.active

    @pytest.mark.parametrize(
        "data",
        [
            {"id": "milho", "minimum": 50, "maximum": 50},
            {"id": "milho", "minimum": 60, "maximum": 50},
            {"id": "milho", "minimum": -1, "maximum": 50},
            {"id": "", "minimum": 1, "maximum": 50},
            {"id": "milho", "minimum": 1},
        ],
    )
    def test_invalid_config_rejected(self, stock_store, data):
        with pytest.raises(ValidationError):
            stock_store.upsert(data)
        assert stock_store.list() == []

    def test_update_merges(self, stock_store):
        stock_store.upsert({"id": "milho", "display_name": "Milho", "minimum": 10, "maximum": 100})

        updated = stock_store.update("milho", {"minimum": 30})

        assert updated.minimum == 30
        assert updated.display_name == "Milho"

    def test_update_cannot_break_bounds(self, stock_store):
        stock_store.upsert({"id": "milho", "minimum": 10, "maximum": 100})
        with pytest.raises(ValidationError):
            stock_store.update("milho", {"maximum": 5})
        assert stock_store.get("milho").maximum == 100

    def test_update_unknown(self, stock_store):
        with pytest.raises(NotFoundError):
            stock_store.update("nope", {"minimum": 1})

    def test_delete_prunes_seen_flags(self, stock_store):
        stock_store.upsert({"id": "milho", "minimum": 10, "maximum": 100})
        stock_store.upsert({"id": "milho_verde", "minimum": 10, "maximum": 100})
        stock_store.mark_seen("milho:aviso")
        stock_store.mark_seen("milho_verde:aviso")

        stock_store.delete("milho")

        assert not stock_store.is_seen("milho:aviso")
        assert stock_store.is_seen("milho_verde:aviso")
        with pytest.raises(NotFoundError):
            stock_store.get("milho")

    def test_list_filters_inactive(self, stock_store):
        stock_store.upsert({"id": "b", "minimum": 1, "maximum": 2})
        stock_store.upsert({"id": "a", "minimum": 1, "maximum": 2, "active": False})

        assert [c.id for c in stock_store.list()] == ["a", "b"]
        assert [c.id for c in stock_store.list(include_inactive=False)] == ["b"]

    def test_corrupt_stored_config(self, tmp_path):
        path = tmp_path / "stock_config.json"
        path.write_text('{"configs": {"x": {"id": "x", "minimum": 9, "maximum": 1}}}')
        with pytest.raises(ConsistencyError):
            StockConfigStore(path)

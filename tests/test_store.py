"""Tests for the ledger store and its JSON persistence."""

import json
from decimal import Decimal
from unittest.mock import patch

import pytest

from ranch_ledger.errors import ConsistencyError, ValidationError
from ranch_ledger.models import EntryKind, build_entry, parse_entry
from ranch_ledger.store import LedgerStore


def _withdrawal(manager_id="267", amount="100", **extra):
    return build_entry(
        EntryKind.WITHDRAWAL, manager_id=manager_id, amount=Decimal(amount), reason="float", **extra
    )


class TestEntryModel:
    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            build_entry(EntryKind.WITHDRAWAL, manager_id="267", amount=Decimal("-1"))

    def test_worker_payment_requires_worker(self):
        with pytest.raises(ValidationError, match="worker_id"):
            build_entry(EntryKind.WORKER_PAYMENT, manager_id="267", amount=Decimal("5"))

    def test_excluded_deposit_requires_reason(self):
        with pytest.raises(ValidationError):
            parse_entry({"kind": "excluded_deposit", "manager_id": "267", "amount": "160"})

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            parse_entry({"kind": "bonus", "manager_id": "267", "amount": "1"})

    def test_id_and_timestamp_assigned(self):
        entry = _withdrawal()
        assert entry.id
        assert entry.timestamp.tzinfo is not None

    def test_amount_quantized_to_cents(self):
        assert _withdrawal(amount="10.005").amount == Decimal("10.01")

    def test_naive_timestamp_assumed_utc(self):
        entry = parse_entry(
            {
                "kind": "deposit",
                "manager_id": "267",
                "amount": "5",
                "timestamp": "2026-10-01T10:00:00",
            }
        )
        assert entry.timestamp.tzinfo is not None


class TestLedgerStore:
    def test_append_and_list_in_insertion_order(self, store):
        first = store.append(_withdrawal(amount="10"))
        second = store.append(_withdrawal(amount="20"))
        store.append(_withdrawal(manager_id="301", amount="30"))

        assert [e.id for e in store.list_by_manager("267")] == [first.id, second.id]
        assert len(store) == 3
        assert set(store.manager_ids()) == {"267", "301"}

    def test_append_accepts_dicts(self, store):
        entry = store.append({"kind": "deposit", "manager_id": "267", "amount": "12.5"})
        assert entry.kind == "deposit"
        assert store.get(entry.id) == entry

    def test_unknown_manager_has_no_entries(self, store):
        assert store.list_by_manager("999") == []

    def test_find_by_external_id(self, store):
        entry = store.append(_withdrawal(external_id="feed-1"))
        assert store.find_by_external_id("feed-1") == entry
        assert store.find_by_external_id("feed-2") is None

    def test_duplicate_external_id_rejected(self, store):
        store.append(_withdrawal(external_id="feed-1"))
        with pytest.raises(ConsistencyError):
            store.append(_withdrawal(external_id="feed-1"))
        assert len(store) == 1

    def test_duplicate_entry_id_rejected(self, store):
        entry = store.append(_withdrawal())
        with pytest.raises(ConsistencyError):
            store.append(entry)

    def test_append_is_durable_before_return(self, store, ledger_path):
        entry = store.append(_withdrawal(external_id="feed-9"))

        data = json.loads(ledger_path.read_text())
        assert data["version"] == 1
        assert data["entries"]["267"][0]["id"] == entry.id
        assert data["entries"]["267"][0]["amount"] == "100.00"

    def test_reload_rebuilds_indexes(self, store, ledger_path):
        entry = store.append(_withdrawal(external_id="feed-3"))
        store.append(
            build_entry(
                EntryKind.WORKER_PAYMENT,
                manager_id="267",
                amount=Decimal("40"),
                worker_id="w1",
                withdrawal_id=entry.id,
            )
        )

        reloaded = LedgerStore(ledger_path)

        assert len(reloaded) == 2
        assert reloaded.find_by_external_id("feed-3").id == entry.id
        assert reloaded.list_by_manager("267")[1].kind == "worker_payment"

    def test_corrupt_file_raises_instead_of_overwriting(self, ledger_path):
        ledger_path.write_text("{not json")
        with pytest.raises(ConsistencyError):
            LedgerStore(ledger_path)
        assert ledger_path.read_text() == "{not json"

    def test_entry_filed_under_wrong_manager_rejected(self, ledger_path):
        ledger_path.write_text(
            json.dumps(
                {
                    "version": 1,
                    "entries": {
                        "301": [{"kind": "deposit", "manager_id": "267", "amount": "1"}]
                    },
                }
            )
        )
        with pytest.raises(ConsistencyError):
            LedgerStore(ledger_path)

    def test_failed_save_leaves_no_trace(self, store, ledger_path):
        store.append(_withdrawal(amount="10"))
        before = ledger_path.read_text()

        with patch("ranch_ledger.storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                store.append(_withdrawal(amount="99", external_id="feed-x"))

        assert len(store) == 1
        assert store.find_by_external_id("feed-x") is None
        assert ledger_path.read_text() == before
        assert list(ledger_path.parent.glob(".ledger.json.*.tmp")) == []

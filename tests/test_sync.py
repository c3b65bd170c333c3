"""Tests for the feed sync gateway."""

from decimal import Decimal

from ranch_ledger.errors import IntegrationError
from ranch_ledger.events import EventType
from ranch_ledger.sync import SyncSummary


class TestSyncSummary:
    def test_merge_adds_counts(self):
        total = SyncSummary(synced=1, failed=["a"])
        total.merge(SyncSummary(synced=2, excluded=1, failed=["b"], duplicates=3, skipped=1))

        assert total.to_dict() == {
            "synced": 3,
            "excluded": 1,
            "failed": ["a", "b"],
            "duplicates": 3,
            "skipped": 1,
            "feed_error": None,
        }


class TestSyncGateway:
    def test_empty_feed(self, gateway, feed_client):
        summary = gateway.sync_all()

        feed_client.list_activities.assert_called_once_with(limit=1000)
        assert summary.to_dict()["synced"] == 0
        assert summary.feed_error is None

    def test_syncs_financial_and_inventory_activity(
        self, gateway, feed_client, feed_activity, engine
    ):
        feed_client.list_activities.return_value = [
            feed_activity("1", valor=500),
            feed_activity("2", tipo="deposito", valor=160),
            feed_activity("3", tipo="adicionar", item="milho", quantidade=10, valor=None),
            feed_activity("4", autor="Ana Souza", tipo="saque", valor=40),
        ]

        summary = gateway.sync_all()

        assert summary.synced == 3
        assert summary.excluded == 1
        assert summary.failed == []
        assert engine.liability("267").outstanding_amount == Decimal("500")
        assert engine.liability("301").outstanding_amount == Decimal("40")

    def test_rerun_is_idempotent(self, gateway, feed_client, feed_activity, ledger_path):
        feed_client.list_activities.return_value = [
            feed_activity("1", valor=500),
            feed_activity("2", tipo="deposito", valor=160),
            feed_activity("3", tipo="remover", item="racao", quantidade=2, valor=None),
        ]
        gateway.sync_all()
        before = ledger_path.read_bytes()

        summary = gateway.sync_all()

        assert summary.synced == 0
        assert summary.excluded == 0
        assert summary.duplicates == 3
        assert ledger_path.read_bytes() == before

    def test_feed_outage_returns_zero_summary(self, gateway, feed_client, publisher, store):
        feed_client.list_activities.side_effect = IntegrationError("feed down")

        summary = gateway.sync_all()

        assert summary.feed_error == "feed down"
        assert summary.synced == summary.excluded == 0
        assert len(store) == 0
        completed = publisher.recent_events[-1]
        assert completed.event_type is EventType.SYNC_COMPLETED
        assert completed.feed_error == "feed down"

    def test_bad_activity_does_not_abort_batch(self, gateway, feed_client, feed_activity):
        feed_client.list_activities.return_value = [
            feed_activity("1", valor=50),
            feed_activity("2", valor=0),
            feed_activity("3", tipo=None),
            feed_activity("4", quantidade="lots"),
            feed_activity("5", valor=25),
        ]

        summary = gateway.sync_all()

        assert summary.synced == 2
        assert sorted(summary.failed) == ["2", "3", "4"]

    def test_unknown_author_skipped(self, gateway, feed_client, feed_activity, store):
        feed_client.list_activities.return_value = [
            feed_activity("1", autor="Stranger | FIXO: 999"),
            feed_activity("2", autor="Nobody"),
        ]

        summary = gateway.sync_all()

        assert summary.skipped == 2
        assert len(store) == 0

    def test_author_resolved_by_snake_case_name(self, gateway, feed_client, feed_activity):
        feed_client.list_activities.return_value = [
            feed_activity("1", autor="cliff_dillimore", valor=10)
        ]
        assert gateway.sync_all().synced == 1

    def test_publishes_lifecycle_events(self, gateway, feed_client, feed_activity, publisher):
        feed_client.list_activities.return_value = [feed_activity("1")]

        gateway.sync_all()

        types = [e.event_type for e in publisher.recent_events]
        assert types[0] is EventType.SYNC_STARTED
        assert types[-1] is EventType.SYNC_COMPLETED
        assert publisher.recent_events[0].data == {"activity_count": 1}

    def test_many_managers_in_parallel(self, gateway, feed_client, feed_activity, engine):
        feed_client.list_activities.return_value = [
            feed_activity(str(i), autor=("Ana Souza" if i % 2 else "Cliff Dillimore"), valor=1)
            for i in range(40)
        ]

        summary = gateway.sync_all()

        assert summary.synced == 40
        assert engine.liability("267").outstanding_amount == Decimal("20")
        assert engine.liability("301").outstanding_amount == Decimal("20")

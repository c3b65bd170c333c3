"""Sync gateway: pull the farm activity feed into the ledger.

A sync never hard-fails. A feed outage yields an empty summary with
``feed_error`` set; a bad activity is listed in ``failed`` and the rest of
the batch carries on. Re-running a sync is safe because ingestion dedupes on
the activity's external id.
"""

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from ranch_ledger.clients import FarmAPIClient
from ranch_ledger.config import get_settings, log_context
from ranch_ledger.errors import IntegrationError, LedgerError
from ranch_ledger.events import EventPublisher, sync_completed, sync_started
from ranch_ledger.managers import ManagerRegistry
from ranch_ledger.models import ExternalActivity
from ranch_ledger.reconciliation import IngestOutcome, ReconciliationEngine

logger = structlog.get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=UTC)


@dataclass
class SyncSummary:
    synced: int = 0
    excluded: int = 0
    failed: list[str] = field(default_factory=list)
    duplicates: int = 0
    skipped: int = 0
    feed_error: str | None = None

    def merge(self, other: "SyncSummary") -> None:
        self.synced += other.synced
        self.excluded += other.excluded
        self.failed.extend(other.failed)
        self.duplicates += other.duplicates
        self.skipped += other.skipped

    def to_dict(self) -> dict[str, Any]:
        return {
            "synced": self.synced,
            "excluded": self.excluded,
            "failed": list(self.failed),
            "duplicates": self.duplicates,
            "skipped": self.skipped,
            "feed_error": self.feed_error,
        }


def _sort_key(activity: ExternalActivity) -> datetime:
    ts = activity.timestamp
    if ts is None:
        return _EPOCH
    return ts if ts.tzinfo else ts.replace(tzinfo=UTC)


class SyncGateway:
    """Fetches the feed once and applies it through the reconciliation engine."""

    def __init__(
        self,
        client: FarmAPIClient,
        engine: ReconciliationEngine,
        registry: ManagerRegistry,
        publisher: EventPublisher | None = None,
        workers: int | None = None,
        feed_limit: int = 1000,
    ):
        self._client = client
        self._engine = engine
        self._registry = registry
        self._publisher = publisher
        self._workers = max(1, workers if workers is not None else get_settings().sync_workers)
        self._feed_limit = feed_limit
        self._logger = logger.bind(component="sync_gateway")

    def _publish_summary(self, summary: SyncSummary) -> None:
        if self._publisher is not None:
            self._publisher.publish(
                sync_completed(
                    synced=summary.synced,
                    excluded=summary.excluded,
                    failed=summary.failed,
                    duplicates=summary.duplicates,
                    skipped=summary.skipped,
                    feed_error=summary.feed_error,
                )
            )

    def sync_all(self) -> SyncSummary:
        """Pull the feed and ingest every new activity."""
        try:
            raw_activities = self._client.list_activities(limit=self._feed_limit)
        except IntegrationError as e:
            self._logger.error("feed_fetch_failed", error=e.message, details=e.details)
            summary = SyncSummary(feed_error=e.message)
            self._publish_summary(summary)
            return summary

        if self._publisher is not None:
            self._publisher.publish(sync_started(len(raw_activities)))

        summary = SyncSummary()
        groups: dict[str, list[ExternalActivity]] = defaultdict(list)

        for index, raw in enumerate(raw_activities):
            label = str(raw.get("id") or f"#{index}")
            try:
                activity = ExternalActivity.model_validate(raw)
            except PydanticValidationError as e:
                self._logger.warning("activity_invalid", activity_id=label, error=str(e))
                summary.failed.append(label)
                continue

            if not activity.author or activity.type is None:
                self._logger.warning("activity_incomplete", activity_id=label)
                summary.failed.append(label)
                continue

            manager = self._registry.resolve_author(activity.author)
            if manager is None:
                self._logger.debug("activity_author_unknown", author=activity.author)
                summary.skipped += 1
                continue

            groups[manager.id].append(activity)

        if groups:
            with ThreadPoolExecutor(
                max_workers=min(self._workers, len(groups)),
                thread_name_prefix="ledger-sync",
            ) as pool:
                for partial in pool.map(self._sync_manager, groups.keys(), groups.values()):
                    summary.merge(partial)

        self._logger.info(
            "sync_completed",
            fetched=len(raw_activities),
            managers=len(groups),
            synced=summary.synced,
            excluded=summary.excluded,
            duplicates=summary.duplicates,
            skipped=summary.skipped,
            failed=len(summary.failed),
        )
        self._publish_summary(summary)
        return summary

    def _sync_manager(
        self, manager_id: str, activities: list[ExternalActivity]
    ) -> SyncSummary:
        """Ingest one manager's activities in timestamp order."""
        summary = SyncSummary()
        with log_context(manager_id=manager_id):
            for activity in sorted(activities, key=_sort_key):
                self._ingest_one(manager_id, activity, summary)
        return summary

    def _ingest_one(
        self, manager_id: str, activity: ExternalActivity, summary: SyncSummary
    ) -> None:
        label = activity.id or "unknown"
        try:
            outcome = self._engine.ingest(activity, manager_id)
        except LedgerError as e:
            self._logger.warning("activity_failed", activity_id=label, error=e.message)
            summary.failed.append(label)
            return
        except Exception:
            self._logger.exception("activity_error", activity_id=label)
            summary.failed.append(label)
            return

        if outcome is IngestOutcome.SYNCED:
            summary.synced += 1
        elif outcome is IngestOutcome.EXCLUDED:
            summary.excluded += 1
        else:
            summary.duplicates += 1

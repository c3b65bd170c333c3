"""Append-only ledger store backed by a JSON document.

Layout on disk::

    {"version": 1, "entries": {"<manager_id>": [<entry>, ...]}}

Entries are kept in insertion order per manager. The whole document is
rewritten atomically on every append, before ``append`` returns, so a reader
that looks up an external id right after an append always sees it.
"""

import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import structlog

from ranch_ledger.errors import ConsistencyError, ValidationError
from ranch_ledger.models import LedgerEntry, entry_to_dict, parse_entry
from ranch_ledger.storage import JsonDocument

logger = structlog.get_logger(__name__)

STORE_VERSION = 1


class LedgerStore:
    """Persisted collection of ledger entries, grouped by manager."""

    def __init__(self, path: Path | str):
        self._document = JsonDocument(path, {"version": STORE_VERSION, "entries": {}})
        self._lock = threading.RLock()
        self._entries: dict[str, list[LedgerEntry]] = {}
        self._by_id: dict[str, LedgerEntry] = {}
        self._by_external_id: dict[str, LedgerEntry] = {}
        self._logger = logger.bind(component="ledger_store", path=str(self._document.path))
        self._load()

    @property
    def path(self) -> Path:
        return self._document.path

    def _load(self) -> None:
        data = self._document.load()
        raw_entries = data.get("entries") or {}
        if not isinstance(raw_entries, dict):
            raise ConsistencyError("ledger 'entries' must be a mapping of manager id to list")

        for manager_id, items in raw_entries.items():
            if not isinstance(items, list):
                raise ConsistencyError(f"ledger entries for {manager_id!r} must be a list")
            for item in items:
                try:
                    entry = parse_entry(item)
                except ValidationError as exc:
                    raise ConsistencyError(
                        f"Stored entry for {manager_id!r} is invalid: {exc.message}"
                    ) from exc
                if entry.manager_id != manager_id:
                    raise ConsistencyError(
                        f"Entry {entry.id} is filed under {manager_id!r} "
                        f"but belongs to {entry.manager_id!r}"
                    )
                self._index(entry)

        self._logger.info(
            "ledger_loaded",
            managers=len(self._entries),
            entries=len(self._by_id),
        )

    def _index(self, entry: LedgerEntry) -> None:
        if entry.id in self._by_id:
            raise ConsistencyError(f"Duplicate ledger entry id {entry.id}")
        self._entries.setdefault(entry.manager_id, []).append(entry)
        self._by_id[entry.id] = entry
        if entry.external_id:
            self._by_external_id[entry.external_id] = entry

    def _unindex(self, entry: LedgerEntry) -> None:
        self._entries[entry.manager_id].remove(entry)
        if not self._entries[entry.manager_id]:
            del self._entries[entry.manager_id]
        del self._by_id[entry.id]
        if entry.external_id:
            self._by_external_id.pop(entry.external_id, None)

    def _snapshot(self) -> dict[str, Any]:
        return {
            "version": STORE_VERSION,
            "entries": {
                manager_id: [entry_to_dict(e) for e in entries]
                for manager_id, entries in self._entries.items()
            },
        }

    def append(self, entry: LedgerEntry | dict[str, Any]) -> LedgerEntry:
        """Validate, persist and return an entry.

        Raises:
            ValidationError: Malformed entry (negative amount, missing fields).
            ConsistencyError: The entry id or external id is already stored.
        """
        if isinstance(entry, dict):
            entry = parse_entry(entry)

        with self._lock:
            if entry.id in self._by_id:
                raise ConsistencyError(f"Ledger entry {entry.id} already exists")
            if entry.external_id and entry.external_id in self._by_external_id:
                raise ConsistencyError(
                    f"External activity {entry.external_id} is already in the ledger"
                )

            self._index(entry)
            try:
                self._document.save(self._snapshot())
            except Exception:
                self._unindex(entry)
                raise

        self._logger.debug(
            "entry_appended",
            entry_id=entry.id,
            manager_id=entry.manager_id,
            kind=entry.kind,
            amount=str(entry.amount),
        )
        return entry

    def list_by_manager(self, manager_id: str) -> list[LedgerEntry]:
        """Entries for one manager in insertion order."""
        with self._lock:
            return list(self._entries.get(manager_id, ()))

    def find_by_external_id(self, external_id: str) -> LedgerEntry | None:
        with self._lock:
            return self._by_external_id.get(external_id)

    def get(self, entry_id: str) -> LedgerEntry | None:
        with self._lock:
            return self._by_id.get(entry_id)

    def manager_ids(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def all_entries(self) -> list[LedgerEntry]:
        """Every entry, grouped by manager, each group in insertion order."""
        with self._lock:
            return [entry for entries in self._entries.values() for entry in entries]

    def __iter__(self) -> Iterator[LedgerEntry]:
        return iter(self.all_entries())

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)

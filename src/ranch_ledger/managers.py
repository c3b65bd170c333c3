"""Manager registry.

Managers are never deleted, only deactivated, so every ledger entry keeps a
valid manager reference.
"""

import re
import threading
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from ranch_ledger.errors import ConsistencyError, NotFoundError, ValidationError
from ranch_ledger.models import Manager, ManagerRole
from ranch_ledger.storage import JsonDocument

logger = structlog.get_logger(__name__)

# "Cliff Dillimore | FIXO: 267"
_FIXO_PATTERN = re.compile(r"FIXO:\s*(\d+)", re.IGNORECASE)


def _snake(name: str) -> str:
    return re.sub(r"\s+", "_", name.strip().lower())


def parse_author(author: str) -> tuple[str, str | None]:
    """Split a feed author string into (display name, FIXO id)."""
    name = author.split("|", 1)[0].strip()
    match = _FIXO_PATTERN.search(author)
    return name, match.group(1) if match else None


class ManagerRegistry:
    """Persisted set of managers and supervisors."""

    def __init__(self, path: Path | str):
        self._document = JsonDocument(path, {"managers": {}})
        self._lock = threading.RLock()
        self._managers: dict[str, Manager] = {}
        self._logger = logger.bind(component="manager_registry")

        stored = self._document.load().get("managers") or {}
        if not isinstance(stored, dict):
            raise ConsistencyError("Stored managers must map ids to managers")
        for manager_id, raw in stored.items():
            try:
                self._managers[manager_id] = Manager.model_validate(raw)
            except (PydanticValidationError, ValidationError) as exc:
                # Bad roles surface as our ValidationError from the role validator
                raise ConsistencyError(
                    f"Stored manager {manager_id} is invalid", details={"error": str(exc)}
                ) from exc

    def _save(self) -> None:
        self._document.save(
            {
                "managers": {
                    manager_id: manager.model_dump(mode="json")
                    for manager_id, manager in self._managers.items()
                }
            }
        )

    def add_or_edit(
        self,
        manager_id: str,
        name: str,
        role: str | ManagerRole,
        active: bool | None = None,
        weekly_payment: Decimal | None = None,
    ) -> Manager:
        """Create a manager, or update name/role/rate of an existing one."""
        if not manager_id or not name:
            raise ValidationError("manager id and name are required")
        parsed_role = role if isinstance(role, ManagerRole) else ManagerRole.parse(role)

        with self._lock:
            existing = self._managers.get(manager_id)
            now = datetime.now(UTC)
            fields: dict[str, Any] = {
                "id": manager_id,
                "name": name,
                "role": parsed_role,
                "active": existing.active if existing and active is None else active is not False,
                "weekly_payment": weekly_payment
                if weekly_payment is not None
                else (existing.weekly_payment if existing else Decimal("0")),
                "created_at": existing.created_at if existing else now,
                "updated_at": now,
            }
            try:
                manager = Manager(**fields)
            except PydanticValidationError as exc:
                raise ValidationError(f"Invalid manager: {exc.errors()[0]['msg']}") from exc

            previous = self._managers.get(manager_id)
            self._managers[manager_id] = manager
            try:
                self._save()
            except Exception:
                if previous is None:
                    del self._managers[manager_id]
                else:
                    self._managers[manager_id] = previous
                raise

        self._logger.info(
            "manager_saved",
            manager_id=manager_id,
            role=manager.role.value,
            created=existing is None,
        )
        return manager

    def deactivate(self, manager_id: str) -> Manager:
        """Mark a manager inactive. History stays attached to the id."""
        with self._lock:
            manager = self.get(manager_id)
            updated = manager.model_copy(
                update={"active": False, "updated_at": datetime.now(UTC)}
            )
            self._managers[manager_id] = updated
            try:
                self._save()
            except Exception:
                self._managers[manager_id] = manager
                raise

        self._logger.info("manager_deactivated", manager_id=manager_id)
        return updated

    def get(self, manager_id: str) -> Manager:
        with self._lock:
            manager = self._managers.get(manager_id)
        if manager is None:
            raise NotFoundError(f"Manager {manager_id} not found")
        return manager

    def find(self, manager_id: str) -> Manager | None:
        with self._lock:
            return self._managers.get(manager_id)

    def require_active(self, manager_id: str) -> Manager:
        manager = self.get(manager_id)
        if not manager.active:
            raise NotFoundError(f"Manager {manager_id} is inactive")
        return manager

    def list(self, include_inactive: bool = False) -> list[Manager]:
        with self._lock:
            managers = list(self._managers.values())
        if not include_inactive:
            managers = [m for m in managers if m.active]
        return sorted(managers, key=lambda m: m.name.lower())

    def resolve_author(self, author: str) -> Manager | None:
        """Find the manager behind a feed author string.

        The FIXO number wins when present; otherwise the display name is
        compared case-insensitively, also in snake_case form.
        """
        name, fixo = parse_author(author)
        with self._lock:
            if fixo and fixo in self._managers:
                return self._managers[fixo]

            wanted = _snake(name)
            for manager in self._managers.values():
                if _snake(manager.name) == wanted or manager.id.lower() == wanted:
                    return manager
        return None

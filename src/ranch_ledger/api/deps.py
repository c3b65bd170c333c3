"""FastAPI dependencies."""

import secrets
from typing import Any

from fastapi import Header, Request

from ranch_ledger.config import get_settings
from ranch_ledger.services import LedgerServices


def get_services(request: Request) -> LedgerServices:
    return request.app.state.services


def is_admin(x_admin_token: str | None = Header(default=None)) -> bool:
    """True when the request carries the configured admin token.

    An unset admin token disables resets entirely.
    """
    expected = get_settings().admin_token.get_secret_value()
    if not expected or not x_admin_token:
        return False
    return secrets.compare_digest(x_admin_token, expected)


def ok(data: Any, **extra: Any) -> dict[str, Any]:
    """Success envelope used by every route."""
    return {"success": True, "data": data, **extra}

"""HTTP API for the ranch ledger."""

from ranch_ledger.api.app import create_app

__all__ = ["create_app"]

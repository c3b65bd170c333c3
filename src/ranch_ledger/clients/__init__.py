"""Clients for external collaborators."""

from ranch_ledger.clients.farm_api import FarmAPIClient

__all__ = ["FarmAPIClient"]

"""Configuration module for the ranch ledger."""

from ranch_ledger.config.categories import CategoryRules, load_category_rules
from ranch_ledger.config.logging import configure_logging, log_context
from ranch_ledger.config.settings import FlatSettings, get_settings

__all__ = [
    "CategoryRules",
    "FlatSettings",
    "configure_logging",
    "get_settings",
    "load_category_rules",
    "log_context",
]

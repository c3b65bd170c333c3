"""Ranch Ledger - manager accountability and money flow for a ranch economy."""

__version__ = "0.1.0"

from ranch_ledger.categorizer import Category, categorize
from ranch_ledger.config import configure_logging, get_settings
from ranch_ledger.errors import (
    AuthorizationError,
    ConsistencyError,
    IntegrationError,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from ranch_ledger.liability import Liability, LiabilityTracker
from ranch_ledger.managers import ManagerRegistry
from ranch_ledger.monitor import (
    LiabilityStatus,
    StockStatus,
    ThresholdMonitor,
    evaluate_liability,
    evaluate_stock,
    restock_suggestion,
)
from ranch_ledger.reconciliation import (
    DepositResult,
    IngestOutcome,
    PayrollResult,
    ReconciliationEngine,
)
from ranch_ledger.store import LedgerStore
from ranch_ledger.sync import SyncGateway, SyncSummary

__all__ = [
    # Version
    "__version__",
    # Ledger
    "LedgerStore",
    "Category",
    "categorize",
    "Liability",
    "LiabilityTracker",
    "ReconciliationEngine",
    "DepositResult",
    "PayrollResult",
    "IngestOutcome",
    "ManagerRegistry",
    # Monitoring
    "ThresholdMonitor",
    "StockStatus",
    "LiabilityStatus",
    "evaluate_stock",
    "evaluate_liability",
    "restock_suggestion",
    # Sync
    "SyncGateway",
    "SyncSummary",
    # Errors
    "LedgerError",
    "ValidationError",
    "NotFoundError",
    "ConsistencyError",
    "AuthorizationError",
    "IntegrationError",
    # Config
    "get_settings",
    "configure_logging",
]

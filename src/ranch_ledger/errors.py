"""Error taxonomy for the ledger.

Every error carries an HTTP status so the API boundary can map it without
knowing about individual call sites.
"""

from typing import Any


class LedgerError(Exception):
    """Base exception for ledger errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(LedgerError):
    """Malformed or out-of-range input. No state was changed."""

    status_code = 400


class NotFoundError(LedgerError):
    """A referenced manager, entry or stock config does not exist."""

    status_code = 404


class AuthorizationError(LedgerError):
    """The caller lacks the capability for an audited operation."""

    status_code = 403


class ConsistencyError(LedgerError):
    """The operation would leave the ledger in a nonsensical state."""

    status_code = 409


class IntegrationError(LedgerError):
    """The external feed or inventory collaborator failed."""

    status_code = 502

from typing import Any, Dict, List, Optional


class LedgerError(Exception):
    """Base class for errors raised by the ledger services."""

    status_code = 500

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class ValidationError(LedgerError):
    """Malformed or missing input. The caller has to fix the request."""

    status_code = 400


class NotFoundError(LedgerError):
    status_code = 404


class PersistenceError(LedgerError):
    """The storage layer failed or timed out. Reads may be retried."""

    status_code = 503


class ConcurrencyError(LedgerError):
    """Invoice number allocation collided with a concurrent writer."""

    status_code = 409

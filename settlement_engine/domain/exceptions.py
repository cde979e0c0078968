"""Domain-specific exceptions"""

from typing import Any, Dict, Optional


class DomainException(Exception):
    """Base exception for domain layer"""

    status_code = 400

    def __init__(self, message: str, details: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.context = context or {}


class ValidationError(DomainException):
    """Malformed input, rejected before any write"""

    status_code = 400


class NotFoundError(DomainException):
    """Referenced record does not exist"""

    status_code = 404


class EligibilityError(DomainException):
    """Credit, overdue or payment-method policy blocks the operation"""

    status_code = 422

    def __init__(self, message: str, code: str, details: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details, context=context)
        self.code = code


class ConsistencyError(DomainException):
    """Operation would break a balance or payment invariant"""

    status_code = 409


class PostCommitError(DomainException):
    """Best-effort integration failed after the financial record was committed"""

    pass


class StoreError(DomainException):
    """Database transaction aborted; nothing was persisted"""

    status_code = 500


class GatewayError(DomainException):
    """Payment gateway returned an error or is unavailable"""

    status_code = 502

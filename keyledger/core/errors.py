"""
Typed error taxonomy for the keyledger core.

Every failure raised by a ledger operation is a ``LedgerError`` subclass
carrying the operation name and the record address it concerns, plus a
category so callers can tell a permission problem from a quota problem
from a validation problem without parsing messages.
"""
from enum import Enum
from typing import Dict, Optional


class ErrorKind(str, Enum):
    ALREADY_EXISTS = "AlreadyExists"
    NOT_FOUND = "NotFound"
    INVALID_NAME = "InvalidName"
    INVALID_RATE_LIMIT = "InvalidRateLimit"
    TOO_MANY_SCOPES = "TooManyScopes"
    SCOPE_TOO_LONG = "ScopeTooLong"
    EXPIRATION_IN_PAST = "ExpirationInPast"
    UNAUTHORIZED = "Unauthorized"
    KEY_INACTIVE = "KeyInactive"
    KEY_EXPIRED = "KeyExpired"
    INSUFFICIENT_PERMISSIONS = "InsufficientPermissions"
    RATE_LIMIT_EXCEEDED = "RateLimitExceeded"
    CONCURRENT_MODIFICATION = "ConcurrentModification"


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    PERMISSION = "permission"
    QUOTA = "quota"
    STATE = "state"
    LOOKUP = "lookup"
    CONFLICT = "conflict"


class LedgerError(Exception):
    """Base class for all ledger operation failures."""

    kind: ErrorKind
    category: ErrorCategory
    status_code: int = 400
    default_message: str = "Ledger operation failed"

    def __init__(
        self,
        operation: str,
        address: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.operation = operation
        self.address = address
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "error": self.kind.value,
            "category": self.category.value,
            "operation": self.operation,
            "address": self.address,
            "detail": self.message,
        }

    def __str__(self) -> str:
        where = f" at {self.address}" if self.address else ""
        return f"{self.kind.value} during {self.operation}{where}: {self.message}"


class AlreadyExists(LedgerError):
    kind = ErrorKind.ALREADY_EXISTS
    category = ErrorCategory.STATE
    status_code = 409
    default_message = "Record already exists"


class NotFound(LedgerError):
    kind = ErrorKind.NOT_FOUND
    category = ErrorCategory.LOOKUP
    status_code = 404
    default_message = "Record not found"


class InvalidName(LedgerError):
    kind = ErrorKind.INVALID_NAME
    category = ErrorCategory.VALIDATION
    status_code = 422
    default_message = "Name exceeds maximum length"


class InvalidRateLimit(LedgerError):
    kind = ErrorKind.INVALID_RATE_LIMIT
    category = ErrorCategory.VALIDATION
    status_code = 422
    default_message = "Rate limit out of range"


class TooManyScopes(LedgerError):
    kind = ErrorKind.TOO_MANY_SCOPES
    category = ErrorCategory.VALIDATION
    status_code = 422
    default_message = "Too many scopes specified"


class ScopeTooLong(LedgerError):
    kind = ErrorKind.SCOPE_TOO_LONG
    category = ErrorCategory.VALIDATION
    status_code = 422
    default_message = "Scope name exceeds maximum length"


class ExpirationInPast(LedgerError):
    kind = ErrorKind.EXPIRATION_IN_PAST
    category = ErrorCategory.VALIDATION
    status_code = 422
    default_message = "Expiration date must be in the future"


class Unauthorized(LedgerError):
    kind = ErrorKind.UNAUTHORIZED
    category = ErrorCategory.PERMISSION
    status_code = 403
    default_message = "Caller is not permitted to perform this operation"


class KeyInactive(LedgerError):
    kind = ErrorKind.KEY_INACTIVE
    category = ErrorCategory.STATE
    status_code = 403
    default_message = "API key is not active"


class KeyExpired(LedgerError):
    kind = ErrorKind.KEY_EXPIRED
    category = ErrorCategory.STATE
    status_code = 403
    default_message = "API key has expired"


class InsufficientPermissions(LedgerError):
    kind = ErrorKind.INSUFFICIENT_PERMISSIONS
    category = ErrorCategory.PERMISSION
    status_code = 403
    default_message = "Insufficient permissions for this scope"


class RateLimitExceeded(LedgerError):
    kind = ErrorKind.RATE_LIMIT_EXCEEDED
    category = ErrorCategory.QUOTA
    status_code = 429
    default_message = "Rate limit exceeded"


class ConcurrentModification(LedgerError):
    kind = ErrorKind.CONCURRENT_MODIFICATION
    category = ErrorCategory.CONFLICT
    status_code = 409
    default_message = "Record was modified concurrently, retry the operation"


# Storage-internal signals, translated by the services layer.

class StaleRecordError(Exception):
    """A compare-and-swap update found a newer version than expected."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Stale record at {address}")


class RecordExistsError(Exception):
    """An insert collided with an existing record at the same address."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Record already exists at {address}")

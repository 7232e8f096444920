from enum import Enum
from typing import Any, Dict, Optional
from fastapi import HTTPException, status

class JournalErrorCode(Enum):
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    ALREADY_CLOSED = "already_closed"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    TRANSACTION_REFERENCED = "transaction_referenced"

class JournalError(Exception):
    """Base class for business rule failures raised by the journal services"""

    code = JournalErrorCode.CONFLICT
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

class ValidationError(JournalError):
    """Malformed or out-of-range input, rejected before any write"""

    code = JournalErrorCode.VALIDATION_ERROR
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if field:
            details.setdefault("field", field)
        super().__init__(message, details)
        self.field = field

class NotFoundError(JournalError):
    code = JournalErrorCode.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND

class ConflictError(JournalError):
    code = JournalErrorCode.CONFLICT
    status_code = status.HTTP_409_CONFLICT

class AlreadyClosedError(ConflictError):
    code = JournalErrorCode.ALREADY_CLOSED

class InsufficientBalanceError(ConflictError):
    code = JournalErrorCode.INSUFFICIENT_BALANCE

class ReferencedTransactionError(ConflictError):
    code = JournalErrorCode.TRANSACTION_REFERENCED

def journal_http_error(error: JournalError) -> HTTPException:
    return HTTPException(
        status_code=error.status_code,
        detail={
            "error": error.code.value,
            "message": error.message,
            "details": error.details
        }
    )

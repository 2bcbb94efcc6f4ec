from typing import Any, Dict, Optional
from fastapi import status

class BaseAppException(Exception):
    """
    Parent class for every custom error raised by the access layer.
    Keeps a uniform error format for callers and for the HTTP handlers.
    """
    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)

# =========================================================
# 1. COMMON ERRORS
# =========================================================

class BadRequestException(BaseAppException):
    """400: invalid request (wrong logic, missing parameter...)"""
    def __init__(self, message: str = "Bad Request", details: dict = None, code: str = "BAD_REQUEST"):
        super().__init__(
            message=message,
            code=code,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )

class NotFoundException(BaseAppException):
    """404: resource not found"""
    def __init__(self, message: str = "Resource not found"):
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND
        )

# =========================================================
# 2. PERSISTENCE ERRORS
# =========================================================

class ConfigurationError(BaseAppException):
    """
    Connection configuration is invalid or unreachable, or the stored
    schema is incompatible with the requested schema mode. Fatal; never retried.
    """
    def __init__(self, message: str, details: dict = None):
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details
        )

class TransactionStateError(BaseAppException):
    """
    An operation was attempted outside its required transaction or
    session state (commit without begin, write after commit, closed session).
    """
    def __init__(self, message: str):
        super().__init__(
            message=message,
            code="TRANSACTION_STATE_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

class PersistenceError(BaseAppException):
    """
    409: a staged write conflicts with storage (constraint violation,
    stale or missing row). The transaction is left rolled back.
    """
    def __init__(self, message: str, details: dict = None):
        super().__init__(
            message=message,
            code="PERSISTENCE_ERROR",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )

class InvalidQueryError(BadRequestException):
    """400: predicate could not be parsed or its parameters could not be bound."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message=message, details=details, code="INVALID_QUERY")

class MultipleResultsError(BaseAppException):
    """409: exactly one row was expected but the query matched several."""
    def __init__(self, message: str, count: int):
        super().__init__(
            message=message,
            code="MULTIPLE_RESULTS",
            status_code=status.HTTP_409_CONFLICT,
            details={"count": count}
        )

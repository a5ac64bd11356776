"""
Translation of domain errors into HTTP responses
"""

from fastapi import HTTPException, status

from ..exceptions import (
    AccountBlockedError,
    AccountHasTransactionsError,
    AccountNotFoundError,
    DomainError,
    NoTransactionsError,
)


# Checked in order; anything else in DomainError is a bad request
_STATUS_CODES = (
    (AccountNotFoundError, status.HTTP_404_NOT_FOUND),
    (NoTransactionsError, status.HTTP_404_NOT_FOUND),
    (AccountBlockedError, status.HTTP_409_CONFLICT),
    (AccountHasTransactionsError, status.HTTP_409_CONFLICT),
    (DomainError, status.HTTP_400_BAD_REQUEST),
)


def status_code_for(error: Exception) -> int:
    """HTTP status for a domain error or a rejected input value"""
    for error_type, code in _STATUS_CODES:
        if isinstance(error, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def http_error(error: Exception) -> HTTPException:
    """
    Build the HTTPException for a caught DomainError or ValueError.

    Storage errors are never passed here: they propagate and surface as 500.
    """
    return HTTPException(status_code=status_code_for(error), detail=str(error))

import logging

from fastapi import HTTPException, status

from ..domain.errors import (
    AuthorizationError,
    BookingCodeCollisionError,
    DomainError,
    InvalidStateTransitionError,
    NotFoundError,
    QuotaExceededError,
    SlotConflictError,
    SubscriptionInactiveError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[DomainError], int]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (SlotConflictError, status.HTTP_409_CONFLICT),
    (InvalidStateTransitionError, status.HTTP_409_CONFLICT),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (QuotaExceededError, status.HTTP_403_FORBIDDEN),
    (SubscriptionInactiveError, status.HTTP_403_FORBIDDEN),
    (BookingCodeCollisionError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def http_error(exc: DomainError) -> HTTPException:
    """Translate a domain failure into the HTTP response the client sees."""
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, mapped in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = mapped
            break
    if isinstance(exc, BookingCodeCollisionError):
        logger.error("booking code collision: %s", exc.booking_code)
    detail = {"code": exc.code, "message": exc.message, **exc.details()}
    return HTTPException(status_code=status_code, detail=detail)


def audit_failure() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"code": "audit_log_failed", "message": "change was saved but could not be audited"},
    )

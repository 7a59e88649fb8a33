from typing import Optional

from ..models import Booking, BookingStatus
from ..utils.audit_log import AuditAction, AuditInitiator, emit_audit_log
from .errors import audit_failure


def audit_booking(
    *,
    action: AuditAction,
    initiator: AuditInitiator,
    booking: Booking,
    status_from: Optional[BookingStatus],
    message: Optional[str] = None,
    extra: Optional[dict[str, object]] = None,
) -> None:
    """Write the audit record for a committed booking change; a logging failure becomes HTTP 500."""
    try:
        emit_audit_log(
            action=action,
            initiator=initiator,
            booking_id=booking.id,
            booking_code=booking.code,
            venue_id=booking.venue_id,
            court_id=booking.court_id,
            user_id=booking.user_id,
            slot_ids=booking.slot_ids,
            amount=booking.amount,
            status_from=status_from,
            status_to=booking.status,
            version=booking.version,
            message=message,
            extra=extra,
        )
    except RuntimeError as exc:
        raise audit_failure() from exc

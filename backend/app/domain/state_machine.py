"""
Transition tables for trips and invoices.

Both entities carry a closed status enum; every status write in the domain
layer goes through one of the checks below.
"""

from backend.app.core.exceptions import InvalidStateError
from backend.app.models.billing_enums import InvoiceStatus
from backend.app.models.trip_enums import TripStatus, TERMINAL_TRIP_STATUSES

_ALL_TRIP_STATUSES = frozenset(TripStatus)

# Manual transitions. The reconciler uses the NOT_STARTED -> IN_PROGRESS and
# IN_PROGRESS -> COMPLETED_LATE edges only. A finished trip may be corrected to
# another terminal status but never reactivated: its resources are released.
TRIP_TRANSITIONS = {
    TripStatus.NOT_STARTED: _ALL_TRIP_STATUSES - {TripStatus.NOT_STARTED},
    TripStatus.IN_PROGRESS: _ALL_TRIP_STATUSES - {TripStatus.IN_PROGRESS},
    TripStatus.COMPLETED_ON_TIME: TERMINAL_TRIP_STATUSES - {TripStatus.COMPLETED_ON_TIME},
    TripStatus.COMPLETED_LATE: TERMINAL_TRIP_STATUSES - {TripStatus.COMPLETED_LATE},
    TripStatus.CANCELLED: TERMINAL_TRIP_STATUSES - {TripStatus.CANCELLED},
}

INVOICE_TRANSITIONS = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.PENDING}),
    InvoiceStatus.PENDING: frozenset({InvoiceStatus.STAMPED, InvoiceStatus.ERROR}),
    InvoiceStatus.ERROR: frozenset({InvoiceStatus.DRAFT}),
    InvoiceStatus.STAMPED: frozenset({InvoiceStatus.CANCELLED}),
    InvoiceStatus.CANCELLED: frozenset(),
}


def is_terminal(status: TripStatus) -> bool:
    return status in TERMINAL_TRIP_STATUSES


def ensure_trip_transition(current: TripStatus, target: TripStatus) -> bool:
    """
    Validate a manual trip status change.

    Returns False when the write would be a no-op (same status), True when
    it must be applied. Raises InvalidStateError for moves that would
    reactivate a finished trip.
    """
    if current == target:
        return False
    if target not in TRIP_TRANSITIONS[current]:
        raise InvalidStateError(
            f"Trip cannot move from {current.value} to {target.value}",
            details={"current": current.value, "requested": target.value},
        )
    return True


def ensure_invoice_transition(current: InvoiceStatus, target: InvoiceStatus) -> None:
    if target not in INVOICE_TRANSITIONS[current]:
        raise InvalidStateError(
            f"Invoice is {current.value}, cannot move to {target.value}",
            details={"current": current.value, "requested": target.value},
        )

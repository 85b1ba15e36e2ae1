"""Appointment ledger view model."""

from clinic_os.ledger.filters import DateBucket, LedgerFilter, matches, order_bookings, paginate, week_bounds
from clinic_os.ledger.view_model import LedgerViewModel

__all__ = [
    "DateBucket",
    "LedgerFilter",
    "LedgerViewModel",
    "matches",
    "order_bookings",
    "paginate",
    "week_bounds",
]

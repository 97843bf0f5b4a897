"""
Issuance lifecycle helpers.

An issuance is Open(Permanent), Open(Temporary, due=return_date) or
Closed(returned_date). Closed is terminal; a return is final and a later
re-issue is a new record. Overdue status is derived on demand and never stored.
"""
from datetime import datetime, timedelta

from equiptrack.models import IssuanceRecord, IssuanceStatus
from equiptrack.utils.dates import ensure_utc

ONE_DAY = timedelta(days=1)


def whole_days(start: datetime, end: datetime) -> int:
    """floor((end - start) in days)."""
    return (ensure_utc(end) - ensure_utc(start)) // ONE_DAY


def is_overdue(issuance: IssuanceRecord, now: datetime) -> bool:
    return (
        issuance.status == IssuanceStatus.TEMPORARY
        and issuance.is_open
        and issuance.return_date is not None
        and ensure_utc(now) > ensure_utc(issuance.return_date)
    )


def days_overdue(issuance: IssuanceRecord, now: datetime) -> int:
    if not is_overdue(issuance, now):
        return 0
    return whole_days(issuance.return_date, now)

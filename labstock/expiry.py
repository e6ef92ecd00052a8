"""
Expiry rules — isolated, testable, reusable.

A batch is usable while its expiration_date is strictly after the
reference date. EXPIRED is derived from the date; nothing has to run
at midnight for a batch to stop being allocatable.

Examples:
    - expires 2026-02-01, as_of 2026-01-31: usable
    - expires 2026-02-01, as_of 2026-02-01: expired
    - no expiration_date: never expires
"""

from datetime import date, datetime

from django.db.models import Q

from labstock.enums import BatchStatus


def as_date(as_of: date | datetime | None) -> date:
    """Normalize a reference timestamp to a date (None = today)."""
    if as_of is None:
        return date.today()
    if isinstance(as_of, datetime):
        return as_of.date()
    return as_of


def is_expired(expiration_date: date | None, as_of: date | datetime | None = None) -> bool:
    if expiration_date is None:
        return False
    return expiration_date <= as_date(as_of)


def effective_status(batch, as_of: date | datetime | None = None) -> BatchStatus:
    """
    Status of a batch at ``as_of``.

    Stored non-AVAILABLE statuses win; an AVAILABLE batch past its date
    reads as EXPIRED, and one with nothing left reads as DEPLETED.
    """
    status = BatchStatus(batch.status)
    if status != BatchStatus.AVAILABLE:
        return status
    if is_expired(batch.expiration_date, as_of):
        return BatchStatus.EXPIRED
    if batch.quantity_remaining <= 0:
        return BatchStatus.DEPLETED
    return BatchStatus.AVAILABLE


def is_allocatable(batch, as_of: date | datetime | None = None) -> bool:
    return effective_status(batch, as_of) == BatchStatus.AVAILABLE


def filter_allocatable(batches, as_of: date | datetime | None = None):
    """
    Queryset-level version of is_allocatable.

    Args:
        batches: ConsumableBatch model QuerySet
        as_of: reference date (None = today)
    """
    reference = as_date(as_of)
    return batches.filter(
        status=BatchStatus.AVAILABLE,
        quantity_remaining__gt=0,
    ).filter(
        Q(expiration_date__isnull=True) | Q(expiration_date__gt=reference)
    )

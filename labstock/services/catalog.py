"""
Batch catalog — read-only FEFO view of consumable batches.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable

from labstock.exceptions import ValidationError
from labstock.expiry import as_date, is_allocatable
from labstock.protocols.storage import BatchFilter, ConsumableBatch, StorageBackend

logger = logging.getLogger('labstock')


def fefo_key(batch: ConsumableBatch):
    """Expiration ascending, no expiration last, ties by batch id."""
    return (
        batch.expiration_date is None,
        batch.expiration_date or date.max,
        str(batch.id),
    )


def fefo_sorted(batches: Iterable[ConsumableBatch]) -> list[ConsumableBatch]:
    return sorted(batches, key=fefo_key)


def batch_filter(nomenclature_id=None, container_type_id=None) -> BatchFilter:
    """
    Build a filter with exactly one reference set.

    Raises:
        ValidationError: both or neither reference given
    """
    if (nomenclature_id is None) == (container_type_id is None):
        raise ValidationError(
            message='Exactly one of nomenclature_id / container_type_id is required',
            nomenclature_id=nomenclature_id,
            container_type_id=container_type_id,
        )
    return BatchFilter(
        nomenclature_id=None if nomenclature_id is None else str(nomenclature_id),
        container_type_id=None if container_type_id is None else str(container_type_id),
    )


class BatchCatalog:
    """Snapshot reads over a storage backend."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    def list_available(self, nomenclature_id=None, container_type_id=None,
                       as_of: date | datetime | None = None) -> list[ConsumableBatch]:
        """
        Allocatable batches of one nomenclature or container type, FEFO order.

        Allocatable means status AVAILABLE, positive remaining and
        expiration_date strictly after ``as_of`` (or none).
        """
        flt = batch_filter(nomenclature_id, container_type_id)
        return self.available(flt, as_of)

    def available(self, flt: BatchFilter, as_of: date | datetime | None = None) -> list[ConsumableBatch]:
        batches = self.backend.read_batches(flt)
        return fefo_sorted(b for b in batches if is_allocatable(b, as_of))

    def expiring_before(self, before: date | datetime,
                        as_of: date | datetime | None = None) -> list[ConsumableBatch]:
        """
        Still-allocatable batches whose expiration falls on or before ``before``.

        Reporting helper; batches already expired at ``as_of`` are excluded.
        """
        limit = as_date(before)
        batches = self.backend.read_batches(BatchFilter())
        return fefo_sorted(
            b for b in batches
            if b.expiration_date is not None
            and b.expiration_date <= limit
            and is_allocatable(b, as_of)
        )

"""
Storage Backend Protocol — Interface to the remote data store.

Labstock never talks to a database directly from its services. It needs
a handful of capabilities, none of which spans more than one record:

    read_batches()        snapshot read of consumable batches
    decrement_batch()     conditional, per-batch atomic decrement
    increment_batch()     restore (compensation only)
    create_entity()       persist culture / lot / container / medium
    delete_entity()       compensation of create_entity()
    append_ledger_entry() append-only write-off ledger

Implementations: labstock.adapters.memory.InMemoryBackend (arena keyed by
batch id) and labstock.adapters.django_orm.DjangoBackend.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from labstock.enums import BatchStatus, EntityKind, WriteOffReason
from labstock.units import MeasurementUnit, Quantity, get_unit, to_decimal


@dataclass(frozen=True)
class ConsumableBatch:
    """Snapshot of one consumable batch as read from the store."""

    id: str
    quantity_remaining: Decimal
    unit: MeasurementUnit
    expiration_date: date | None = None
    status: BatchStatus = BatchStatus.AVAILABLE
    nomenclature_id: str | None = None
    container_type_id: str | None = None
    batch_number: str = ''

    def __post_init__(self):
        object.__setattr__(self, 'unit', get_unit(self.unit))
        object.__setattr__(self, 'quantity_remaining', to_decimal(self.quantity_remaining))

    @property
    def quantity(self) -> Quantity:
        return Quantity(self.quantity_remaining, self.unit)


@dataclass(frozen=True)
class BatchFilter:
    """Which batches to read. Exactly one reference is normally set."""

    nomenclature_id: str | None = None
    container_type_id: str | None = None


@dataclass(frozen=True)
class WriteOffEntry:
    """
    Immutable ledger record.

    ``reverses`` is set on REVERSAL entries and points to the entry they
    compensate. ``id`` is None until the backend appended it.
    """

    batch_id: str
    amount: Decimal
    unit: str
    reason: WriteOffReason
    target_id: str | None
    timestamp: datetime
    quantity_after: Decimal | None = None
    reverses: str | None = None
    id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def quantity(self) -> Quantity:
        return Quantity(self.amount, self.unit)

    @property
    def is_reversal(self) -> bool:
        return self.reason == WriteOffReason.REVERSAL


@runtime_checkable
class StorageBackend(Protocol):
    """
    Protocol for the persistence service.

    Every method touches a single record. Multi-record atomicity is the
    coordinator's job (see services/coordinator.py).
    """

    def read_batches(self, flt: BatchFilter) -> list[ConsumableBatch]:
        """Snapshot of batches matching the filter, any status."""
        ...

    def get_batch(self, batch_id: str) -> ConsumableBatch:
        """
        Raises:
            EntityNotFound: unknown batch id
        """
        ...

    def decrement_batch(self, batch_id: str, amount: Decimal,
                        expected_min_remaining: Decimal) -> Decimal:
        """
        Atomically check remaining >= expected_min_remaining and subtract amount.

        Returns:
            Remaining quantity after the decrement

        Raises:
            ConcurrentModification: the check failed
        """
        ...

    def increment_batch(self, batch_id: str, amount: Decimal) -> Decimal:
        """Add amount back to a batch. Returns the new remaining."""
        ...

    def set_batch_status(self, batch_id: str, status: BatchStatus) -> None:
        ...

    def create_entity(self, kind: EntityKind, fields: dict[str, Any]) -> str:
        """Persist a primary entity. Returns its id."""
        ...

    def delete_entity(self, kind: EntityKind, entity_id: str) -> None:
        """Remove a primary entity (compensation). Missing ids are a no-op."""
        ...

    def append_ledger_entry(self, entry: WriteOffEntry) -> str:
        """Append an entry. Returns its id."""
        ...

    def list_ledger_entries(self, target_id: str | None = None,
                            batch_id: str | None = None) -> list[WriteOffEntry]:
        """Entries in append order, optionally filtered."""
        ...

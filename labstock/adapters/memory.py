"""
In-memory storage backend.

An arena of batches keyed by batch id, guarded by one lock. Used by the
test suite and by callers that want to dry-run a workflow without
touching the database.

Usage:
    backend = InMemoryBackend()
    backend.add_batch('B1', '100', 'ml', expiration_date=date(2026, 2, 1),
                      nomenclature_id='DMEM')
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import defaultdict
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any

from labstock.enums import BatchStatus, EntityKind
from labstock.exceptions import ConcurrentModification, EntityNotFound
from labstock.protocols.storage import BatchFilter, ConsumableBatch, WriteOffEntry
from labstock.units import to_decimal

logger = logging.getLogger('labstock')


class InMemoryBackend:
    """StorageBackend holding everything in dicts."""

    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._batches: dict[str, ConsumableBatch] = {}
        self._entities: dict[EntityKind, dict[str, dict[str, Any]]] = defaultdict(dict)
        self._ledger: list[WriteOffEntry] = []

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    # ── seeding / inspection ──

    def add_batch(self, batch_id: str | None, quantity_remaining, unit,
                  expiration_date: date | None = None,
                  status: BatchStatus = BatchStatus.AVAILABLE,
                  nomenclature_id: str | None = None,
                  container_type_id: str | None = None,
                  batch_number: str = '') -> ConsumableBatch:
        """Seed a batch. A None id is generated."""
        with self._lock:
            batch = ConsumableBatch(
                id=batch_id or self._next_id('batch'),
                quantity_remaining=quantity_remaining,
                unit=unit,
                expiration_date=expiration_date,
                status=BatchStatus(status),
                nomenclature_id=nomenclature_id,
                container_type_id=container_type_id,
                batch_number=batch_number,
            )
            self._batches[batch.id] = batch
            return batch

    def entities(self, kind: EntityKind) -> dict[str, dict[str, Any]]:
        """Copy of the persisted entities of one kind, keyed by id."""
        with self._lock:
            return {key: dict(value) for key, value in self._entities[EntityKind(kind)].items()}

    # ── StorageBackend ──

    def read_batches(self, flt: BatchFilter) -> list[ConsumableBatch]:
        with self._lock:
            batches = list(self._batches.values())
        if flt.nomenclature_id is not None:
            batches = [b for b in batches if b.nomenclature_id == flt.nomenclature_id]
        if flt.container_type_id is not None:
            batches = [b for b in batches if b.container_type_id == flt.container_type_id]
        return batches

    def get_batch(self, batch_id: str) -> ConsumableBatch:
        with self._lock:
            return self._get(batch_id)

    def _get(self, batch_id: str) -> ConsumableBatch:
        try:
            return self._batches[batch_id]
        except KeyError:
            raise EntityNotFound(batch_id=batch_id) from None

    def decrement_batch(self, batch_id: str, amount: Decimal,
                        expected_min_remaining: Decimal) -> Decimal:
        amount = to_decimal(amount)
        with self._lock:
            batch = self._get(batch_id)
            floor = max(to_decimal(expected_min_remaining), amount)
            if batch.quantity_remaining < floor:
                raise ConcurrentModification(
                    batch_id=batch_id,
                    remaining=batch.quantity_remaining,
                    requested=amount,
                )
            remaining = batch.quantity_remaining - amount
            self._batches[batch_id] = replace(batch, quantity_remaining=remaining)
            return remaining

    def increment_batch(self, batch_id: str, amount: Decimal) -> Decimal:
        amount = to_decimal(amount)
        with self._lock:
            batch = self._get(batch_id)
            remaining = batch.quantity_remaining + amount
            self._batches[batch_id] = replace(batch, quantity_remaining=remaining)
            return remaining

    def set_batch_status(self, batch_id: str, status: BatchStatus) -> None:
        with self._lock:
            batch = self._get(batch_id)
            self._batches[batch_id] = replace(batch, status=BatchStatus(status))

    def create_entity(self, kind: EntityKind, fields: dict[str, Any]) -> str:
        kind = EntityKind(kind)
        with self._lock:
            entity_id = self._next_id(kind.value)
            self._entities[kind][entity_id] = dict(fields)
        logger.debug("labstock.memory.entity_created", extra={"kind": kind.value, "id": entity_id})
        return entity_id

    def delete_entity(self, kind: EntityKind, entity_id: str) -> None:
        with self._lock:
            self._entities[EntityKind(kind)].pop(entity_id, None)

    def append_ledger_entry(self, entry: WriteOffEntry) -> str:
        with self._lock:
            entry_id = self._next_id('wo')
            self._ledger.append(replace(entry, id=entry_id))
            return entry_id

    def list_ledger_entries(self, target_id: str | None = None,
                            batch_id: str | None = None) -> list[WriteOffEntry]:
        with self._lock:
            entries = list(self._ledger)
        if target_id is not None:
            entries = [e for e in entries if e.target_id == target_id]
        if batch_id is not None:
            entries = [e for e in entries if e.batch_id == batch_id]
        return entries

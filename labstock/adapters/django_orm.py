"""
Django ORM storage backend.

Each method touches one row. The batch decrement is a conditional
UPDATE, so two writers racing for the same batch cannot both win:

    UPDATE labstock_batch
       SET quantity_remaining = quantity_remaining - %s
     WHERE id = %s AND quantity_remaining >= %s

Settings:
    LABSTOCK = {
        "STORAGE_BACKEND": "labstock.adapters.django_orm.DjangoBackend",
    }
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from django.apps import apps
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from labstock.enums import BatchStatus, EntityKind, WriteOffReason
from labstock.exceptions import ConcurrentModification, EntityNotFound
from labstock.protocols.storage import BatchFilter, ConsumableBatch, WriteOffEntry
from labstock.units import to_decimal

logger = logging.getLogger('labstock')


ENTITY_MODELS = {
    EntityKind.CULTURE: 'labstock.Culture',
    EntityKind.LOT: 'labstock.Lot',
    EntityKind.CONTAINER: 'labstock.Container',
    EntityKind.READY_MEDIUM: 'labstock.ReadyMedium',
}


def _optional_id(value) -> str | None:
    return None if value is None else str(value)


class DjangoBackend:
    """StorageBackend on top of the labstock models. Ids are str(pk)."""

    @staticmethod
    def _batch_model():
        return apps.get_model('labstock', 'Batch')

    @staticmethod
    def _writeoff_model():
        return apps.get_model('labstock', 'WriteOff')

    @staticmethod
    def _entity_model(kind: EntityKind):
        return apps.get_model(ENTITY_MODELS[EntityKind(kind)])

    @staticmethod
    def _snapshot(batch) -> ConsumableBatch:
        return ConsumableBatch(
            id=str(batch.pk),
            quantity_remaining=batch.quantity_remaining,
            unit=batch.unit,
            expiration_date=batch.expiration_date,
            status=BatchStatus(batch.status),
            nomenclature_id=_optional_id(batch.nomenclature_id),
            container_type_id=_optional_id(batch.container_type_id),
            batch_number=batch.batch_number,
        )

    @staticmethod
    def _entry(writeoff) -> WriteOffEntry:
        return WriteOffEntry(
            id=str(writeoff.pk),
            batch_id=str(writeoff.batch_id),
            amount=writeoff.amount,
            unit=writeoff.unit,
            reason=WriteOffReason(writeoff.reason),
            target_id=writeoff.target_id or None,
            timestamp=writeoff.timestamp,
            quantity_after=writeoff.quantity_after,
            reverses=_optional_id(writeoff.reverses_id),
            metadata=writeoff.metadata,
        )

    # ── batches ──

    def read_batches(self, flt: BatchFilter) -> list[ConsumableBatch]:
        qs = self._batch_model().objects.all()
        if flt.nomenclature_id is not None:
            qs = qs.filter(nomenclature_id=flt.nomenclature_id)
        if flt.container_type_id is not None:
            qs = qs.filter(container_type_id=flt.container_type_id)
        return [self._snapshot(batch) for batch in qs.fefo()]

    def get_batch(self, batch_id: str) -> ConsumableBatch:
        Batch = self._batch_model()
        try:
            return self._snapshot(Batch.objects.get(pk=batch_id))
        except (Batch.DoesNotExist, ValueError):
            raise EntityNotFound(batch_id=batch_id) from None

    def decrement_batch(self, batch_id: str, amount: Decimal,
                        expected_min_remaining: Decimal) -> Decimal:
        Batch = self._batch_model()
        amount = to_decimal(amount)
        floor = max(to_decimal(expected_min_remaining), amount)

        with transaction.atomic():
            updated = Batch.objects.filter(
                pk=batch_id,
                quantity_remaining__gte=floor,
            ).update(
                quantity_remaining=F('quantity_remaining') - amount,
                updated_at=timezone.now(),
            )
            if not updated:
                remaining = (
                    Batch.objects.filter(pk=batch_id)
                    .values_list('quantity_remaining', flat=True)
                    .first()
                )
                if remaining is None:
                    raise EntityNotFound(batch_id=batch_id)
                raise ConcurrentModification(
                    batch_id=batch_id,
                    remaining=remaining,
                    requested=amount,
                )
            return Batch.objects.values_list('quantity_remaining', flat=True).get(pk=batch_id)

    def increment_batch(self, batch_id: str, amount: Decimal) -> Decimal:
        Batch = self._batch_model()
        with transaction.atomic():
            updated = Batch.objects.filter(pk=batch_id).update(
                quantity_remaining=F('quantity_remaining') + to_decimal(amount),
                updated_at=timezone.now(),
            )
            if not updated:
                raise EntityNotFound(batch_id=batch_id)
            return Batch.objects.values_list('quantity_remaining', flat=True).get(pk=batch_id)

    def set_batch_status(self, batch_id: str, status: BatchStatus) -> None:
        updated = self._batch_model().objects.filter(pk=batch_id).update(
            status=BatchStatus(status),
            updated_at=timezone.now(),
        )
        if not updated:
            raise EntityNotFound(batch_id=batch_id)

    # ── primary entities ──

    def create_entity(self, kind: EntityKind, fields: dict[str, Any]) -> str:
        instance = self._entity_model(kind).objects.create(**fields)
        return str(instance.pk)

    def delete_entity(self, kind: EntityKind, entity_id: str) -> None:
        self._entity_model(kind).objects.filter(pk=entity_id).delete()

    # ── ledger ──

    def append_ledger_entry(self, entry: WriteOffEntry) -> str:
        writeoff = self._writeoff_model().objects.create(
            batch_id=entry.batch_id,
            amount=entry.amount,
            unit=entry.unit,
            reason=entry.reason,
            target_id=entry.target_id or '',
            quantity_after=entry.quantity_after,
            reverses_id=entry.reverses,
            metadata=entry.metadata,
            timestamp=entry.timestamp,
        )
        return str(writeoff.pk)

    def list_ledger_entries(self, target_id: str | None = None,
                            batch_id: str | None = None) -> list[WriteOffEntry]:
        qs = self._writeoff_model().objects.all()
        if target_id is not None:
            qs = qs.filter(target_id=target_id)
        if batch_id is not None:
            qs = qs.filter(batch_id=batch_id)
        return [self._entry(writeoff) for writeoff in qs.order_by('timestamp', 'pk')]

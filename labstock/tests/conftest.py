"""
Pytest fixtures for Labstock tests.
"""

from datetime import date
from decimal import Decimal

import pytest

from labstock.adapters import InMemoryBackend, reset_storage_backend
from labstock.enums import NomenclatureCategory
from labstock.exceptions import LabstockError
from labstock.models import Batch, ContainerType, Nomenclature
from labstock.services import BatchCatalog, CreationCoordinator, LabWorkflows, WriteOffLedger


class FlakyBackend(InMemoryBackend):
    """
    In-memory backend that fails on demand.

    fail_create_at: 1-based index of the create_entity call that fails
    fail_decrement_on: batch id whose decrement fails (as if a concurrent
        writer emptied it)
    fail_delete: number of delete_entity calls that fail before succeeding
    fail_increment: number of increment_batch calls that fail
    fail_append_at: 1-based index of the append_ledger_entry call that fails
    fail_status: number of set_batch_status calls that fail
    """

    def __init__(self):
        super().__init__()
        self.fail_create_at = None
        self.fail_decrement_on = None
        self.fail_delete = 0
        self.fail_increment = 0
        self.fail_append_at = None
        self.fail_status = 0
        self.append_calls = 0
        self.create_calls = 0
        self.delete_calls = 0

    def create_entity(self, kind, fields):
        self.create_calls += 1
        if self.create_calls == self.fail_create_at:
            raise LabstockError(message=f'store rejected {kind}')
        return super().create_entity(kind, fields)

    def decrement_batch(self, batch_id, amount, expected_min_remaining):
        if batch_id == self.fail_decrement_on:
            batch = self.get_batch(batch_id)
            super().decrement_batch(batch_id, batch.quantity_remaining, batch.quantity_remaining)
        return super().decrement_batch(batch_id, amount, expected_min_remaining)

    def delete_entity(self, kind, entity_id):
        self.delete_calls += 1
        if self.fail_delete:
            self.fail_delete -= 1
            raise ConnectionError('store unavailable')
        return super().delete_entity(kind, entity_id)

    def increment_batch(self, batch_id, amount):
        if self.fail_increment:
            self.fail_increment -= 1
            raise ConnectionError('store unavailable')
        return super().increment_batch(batch_id, amount)

    def append_ledger_entry(self, entry):
        self.append_calls += 1
        if self.append_calls == self.fail_append_at:
            raise ConnectionError('store unavailable')
        return super().append_ledger_entry(entry)

    def set_batch_status(self, batch_id, status):
        if self.fail_status:
            self.fail_status -= 1
            raise ConnectionError('store unavailable')
        return super().set_batch_status(batch_id, status)


@pytest.fixture(autouse=True)
def _reset_backend():
    """Cached backend must not leak between tests."""
    reset_storage_backend()
    yield
    reset_storage_backend()


@pytest.fixture
def as_of():
    """Reference date used by the FEFO scenarios."""
    return date(2026, 1, 15)


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def flaky():
    return FlakyBackend()


@pytest.fixture
def catalog(backend):
    return BatchCatalog(backend)


@pytest.fixture
def ledger(backend):
    return WriteOffLedger(backend)


@pytest.fixture
def coordinator(backend):
    return CreationCoordinator(backend)


@pytest.fixture
def workflows(backend):
    return LabWorkflows(CreationCoordinator(backend))


@pytest.fixture
def dmem_batches(backend):
    """B1 100 ml expiring 2026-02-01, B2 100 ml expiring 2026-03-01."""
    b1 = backend.add_batch('B1', '100', 'ml', expiration_date=date(2026, 2, 1), nomenclature_id='DMEM')
    b2 = backend.add_batch('B2', '100', 'ml', expiration_date=date(2026, 3, 1), nomenclature_id='DMEM')
    return b1, b2


@pytest.fixture
def flask_stock(backend):
    """C1: 5 T75 flasks."""
    return backend.add_batch('C1', '5', 'pcs', expiration_date=date(2027, 1, 1), container_type_id='T75')


# ── Django store ──


@pytest.fixture
def fbs(db):
    return Nomenclature.objects.create(
        code='FBS',
        name='Fetal bovine serum',
        category=NomenclatureCategory.SERUM,
        unit='ml',
    )


@pytest.fixture
def glucose(db):
    return Nomenclature.objects.create(
        code='GLC',
        name='D-glucose',
        category=NomenclatureCategory.REAGENT,
        unit='mg',
        molecular_weight=Decimal('180.1600'),
    )


@pytest.fixture
def t75(db):
    return ContainerType.objects.create(code='T75', name='Flask T75')


@pytest.fixture
def fbs_batches(fbs):
    """Two FBS batches, the later-expiring one created first."""
    late = Batch.objects.create(
        batch_number='FBS-02',
        nomenclature=fbs,
        quantity_remaining=Decimal('100'),
        unit='ml',
        expiration_date=date(2026, 3, 1),
    )
    early = Batch.objects.create(
        batch_number='FBS-01',
        nomenclature=fbs,
        quantity_remaining=Decimal('100'),
        unit='ml',
        expiration_date=date(2026, 2, 1),
    )
    return early, late


@pytest.fixture
def t75_batch(t75):
    return Batch.objects.create(
        batch_number='T75-2026',
        container_type=t75,
        quantity_remaining=Decimal('5'),
        unit='pcs',
    )

"""
Tests for the Django ORM backend and the inventory facade on top of it.
"""

from datetime import date
from decimal import Decimal

import pytest
from django.core.exceptions import ImproperlyConfigured

from labstock import inventory, LabstockError
from labstock.adapters import DjangoBackend, InMemoryBackend, get_storage_backend, reset_storage_backend
from labstock.enums import BatchStatus, EntityKind, ReadyMediumStatus, WriteOffReason
from labstock.exceptions import ConcurrentModification, EntityNotFound, InsufficientStock, PartialFailureRollback
from labstock.models import Batch, Container, Culture, Lot, ReadyMedium, WriteOff
from labstock.services.allocator import AllocationRequest
from labstock.services.workflows import Consumable, ContainerGroup, MediumComponent
from labstock.units import Concentration, Quantity


pytestmark = pytest.mark.django_db


AS_OF = date(2026, 1, 15)


class TestBackendLoader:
    """Tests for get_storage_backend()."""

    def test_default_is_django(self):
        assert isinstance(get_storage_backend(), DjangoBackend)
        assert get_storage_backend() is get_storage_backend()

    def test_configured_backend(self, settings):
        settings.LABSTOCK = {'STORAGE_BACKEND': 'labstock.adapters.memory.InMemoryBackend'}
        reset_storage_backend()

        assert isinstance(get_storage_backend(), InMemoryBackend)

    def test_bad_path(self, settings):
        settings.LABSTOCK = {'STORAGE_BACKEND': 'labstock.adapters.nowhere.Backend'}
        reset_storage_backend()

        with pytest.raises(ImproperlyConfigured):
            get_storage_backend()

    def test_empty_path(self, settings):
        settings.LABSTOCK = {'STORAGE_BACKEND': ''}
        reset_storage_backend()

        with pytest.raises(ImproperlyConfigured):
            get_storage_backend()


class TestDjangoBackend:
    """Tests for DjangoBackend primitives."""

    def test_read_batches_fefo(self, fbs, fbs_batches):
        early, late = fbs_batches

        batches = inventory.list_available(nomenclature_id=fbs.pk, as_of=AS_OF)

        assert [b.id for b in batches] == [str(early.pk), str(late.pk)]
        assert batches[0].nomenclature_id == str(fbs.pk)
        assert batches[0].unit.code == 'ml'

    def test_conditional_decrement(self, fbs_batches):
        early, _ = fbs_batches
        backend = DjangoBackend()

        assert backend.decrement_batch(str(early.pk), Decimal('60'), Decimal('60')) == Decimal('40')
        with pytest.raises(ConcurrentModification) as exc:
            backend.decrement_batch(str(early.pk), Decimal('60'), Decimal('60'))

        assert exc.value.batch_id == str(early.pk)
        early.refresh_from_db()
        assert early.quantity_remaining == Decimal('40')

    def test_unknown_batch(self, db):
        with pytest.raises(EntityNotFound):
            DjangoBackend().decrement_batch('999', Decimal('1'), Decimal('1'))
        with pytest.raises(EntityNotFound):
            DjangoBackend().get_batch('999')

    def test_delete_missing_entity_is_noop(self, db):
        DjangoBackend().delete_entity(EntityKind.CULTURE, '999')

    def test_writeoff_is_immutable(self, fbs_batches):
        early, _ = fbs_batches
        writeoff = WriteOff.objects.create(batch=early, amount=Decimal('1'), unit='ml', reason=WriteOffReason.CONSUME)

        with pytest.raises(ValueError):
            writeoff.save()
        with pytest.raises(ValueError):
            writeoff.delete()
        with pytest.raises(ValueError):
            WriteOff.objects.create(batch=early, amount=Decimal('0'), unit='ml', reason=WriteOffReason.CONSUME)


class TestInventoryFacade:
    """Tests for the inventory facade against the database."""

    def test_plan_allocation(self, fbs, fbs_batches):
        early, late = fbs_batches

        plan = inventory.plan_allocation(
            AllocationRequest(Quantity(150, 'ml'), nomenclature_id=fbs.pk),
            as_of=AS_OF,
        )

        assert plan.pairs == [(str(early.pk), Decimal('100')), (str(late.pk), Decimal('50'))]

    def test_plan_allocation_insufficient(self, fbs, fbs_batches):
        with pytest.raises(InsufficientStock) as exc:
            inventory.plan_allocation(
                AllocationRequest(Quantity(250, 'ml'), nomenclature_id=fbs.pk),
                as_of=AS_OF,
            )

        assert exc.value.remaining == Decimal('50')
        assert exc.value.as_dict()['data']['unsatisfied'][0]['remaining'] == '50 ml'

    def test_write_off_and_ledger(self, fbs, fbs_batches):
        early, _ = fbs_batches

        entries = inventory.write_off(
            AllocationRequest(Quantity(100, 'ml'), nomenclature_id=fbs.pk, target='qc-7',
                              reason=WriteOffReason.DISPOSE),
            as_of=AS_OF,
        )

        early.refresh_from_db()
        assert early.quantity_remaining == 0
        assert early.status == BatchStatus.DEPLETED
        assert [e.reason for e in inventory.ledger_for('qc-7')] == [WriteOffReason.DISPOSE]

        inventory.reverse(entries)

        early.refresh_from_db()
        assert early.quantity_remaining == Decimal('100')
        assert early.status == BatchStatus.AVAILABLE
        assert len(inventory.ledger_for('qc-7')) == 2
        assert inventory.ledger_for('qc-7', active_only=True) == []
        assert WriteOff.objects.get(reverses__isnull=False).reverses_id == int(entries[0].id)

    def test_cross_kind_with_nomenclature_context(self, glucose):
        batch = Batch.objects.create(nomenclature=glucose, quantity_remaining=Decimal('1'), unit='g')

        plan = inventory.plan_allocation(
            AllocationRequest(
                Quantity(1, 'mmol'),
                nomenclature_id=glucose.pk,
                context=inventory.context_for(glucose.pk),
            ),
            as_of=AS_OF,
        )

        assert plan.pairs == [(str(batch.pk), Decimal('0.180160'))]

    def test_context_for_unknown(self, db):
        with pytest.raises(EntityNotFound):
            inventory.context_for(999)


class TestWorkflowsOnDatabase:
    """End-to-end workflows persisted through the ORM."""

    def test_culture_from_donation(self, t75, t75_batch):
        result = inventory.create_culture_from_donation(
            'MSC', 'donor-1', 'donation-1', 'enzymatic',
            containers=[ContainerGroup(t75.pk, t75.code, count=3)],
            culture_code='MSC-0001',
            as_of=AS_OF,
        )

        t75_batch.refresh_from_db()
        assert t75_batch.quantity_remaining == Decimal('2')
        assert Culture.objects.count() == 1
        assert Lot.objects.get().culture.code == 'MSC-0001'
        assert list(Container.objects.order_by('code').values_list('code', flat=True)) == [
            'CT-MSC-0001-P0-T75-001',
            'CT-MSC-0001-P0-T75-002',
            'CT-MSC-0001-P0-T75-003',
        ]
        assert WriteOff.objects.count() == 3
        assert set(WriteOff.objects.values_list('target_id', flat=True)) == set(
            result.ids_of(EntityKind.CONTAINER)
        )

    def test_failed_commit_leaves_nothing_behind(self, t75, t75_batch, fbs, fbs_batches):
        early, _ = fbs_batches
        backend = DjangoBackend()
        original = backend.decrement_batch

        def raced(batch_id, amount, expected_min_remaining):
            if batch_id == str(early.pk):
                Batch.objects.filter(pk=early.pk).update(quantity_remaining=Decimal('0'))
            return original(batch_id, amount, expected_min_remaining)

        backend.decrement_batch = raced

        with pytest.raises(PartialFailureRollback) as exc:
            inventory.create_culture_from_donation(
                'MSC', 'd', 'dn', 'enzymatic',
                containers=[ContainerGroup(t75.pk, t75.code, count=2)],
                consumables=[Consumable(fbs.pk, Quantity(150, 'ml'))],
                backend=backend,
                as_of=AS_OF,
            )

        assert isinstance(exc.value.cause, ConcurrentModification)
        assert Culture.objects.count() == 0
        assert Lot.objects.count() == 0
        assert Container.objects.count() == 0
        t75_batch.refresh_from_db()
        assert t75_batch.quantity_remaining == Decimal('5')
        assert all(
            inventory.ledger_for(entity.id, active_only=True) == []
            for entity in exc.value.transaction.entities
        )

    def test_ready_medium(self, fbs, fbs_batches):
        result = inventory.create_ready_medium(
            'FBS 20%', Quantity(500, 'ml'),
            components=[MediumComponent(fbs.pk, concentration=Concentration(20, '%'), label='FBS')],
            as_of=AS_OF,
        )

        medium = ReadyMedium.objects.get(pk=result.id_for('medium'))
        assert medium.status == ReadyMediumStatus.QUARANTINE
        assert medium.volume_ml == Decimal('500')
        assert medium.composition[0]['dose'] == '100 ml'
        assert WriteOff.objects.filter(target_id=str(medium.pk)).count() == 1

    def test_errors_are_labstock_errors(self, fbs):
        with pytest.raises(LabstockError):
            inventory.plan_allocation(
                AllocationRequest(Quantity(1, 'ml'), nomenclature_id=fbs.pk),
                as_of=AS_OF,
            )

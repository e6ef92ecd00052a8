"""
Tests for the write-off ledger and the in-memory backend.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

import pytest

from labstock.enums import BatchStatus, WriteOffReason
from labstock.exceptions import ConcurrentModification, EntityNotFound, RestoreFailed
from labstock.services.allocator import AllocationRequest, allocate
from labstock.services.catalog import BatchCatalog
from labstock.services.ledger import WriteOffLedger
from labstock.units import Quantity


def plan_for(catalog, amount, as_of, nomenclature_id='DMEM'):
    request = AllocationRequest(Quantity(amount, 'ml'), nomenclature_id=nomenclature_id, target='culture-1')
    return allocate(request, catalog.list_available(nomenclature_id=nomenclature_id, as_of=as_of), as_of)


class TestCommit:
    """Tests for WriteOffLedger.commit()."""

    def test_decrements_and_appends(self, backend, catalog, ledger, dmem_batches, as_of):
        entries = ledger.commit(plan_for(catalog, 150, as_of), 'culture-1', WriteOffReason.CONSUME)

        assert [(e.batch_id, e.amount) for e in entries] == [('B1', Decimal('100')), ('B2', Decimal('50'))]
        assert all(e.id for e in entries)
        assert entries[1].quantity_after == Decimal('50')
        assert backend.get_batch('B1').quantity_remaining == 0
        assert backend.get_batch('B2').quantity_remaining == Decimal('50')

    def test_empty_batch_becomes_depleted(self, backend, catalog, ledger, dmem_batches, as_of):
        ledger.commit(plan_for(catalog, 150, as_of), 'culture-1')

        assert backend.get_batch('B1').status == BatchStatus.DEPLETED
        assert backend.get_batch('B2').status == BatchStatus.AVAILABLE

    def test_reason_defaults_to_request_reason(self, catalog, ledger, dmem_batches, as_of):
        entries = ledger.commit(plan_for(catalog, 10, as_of), 'culture-1')

        assert entries[0].reason == WriteOffReason.CONSUME

    def test_concurrent_depletion_aborts_whole_commit(self, flaky, as_of):
        flaky.add_batch('B1', '100', 'ml', expiration_date=date(2026, 2, 1), nomenclature_id='DMEM')
        flaky.add_batch('B2', '100', 'ml', expiration_date=date(2026, 3, 1), nomenclature_id='DMEM')
        plan = plan_for(BatchCatalog(flaky), 150, as_of)
        flaky.fail_decrement_on = 'B2'

        with pytest.raises(ConcurrentModification) as exc:
            WriteOffLedger(flaky).commit(plan, 'culture-1')

        assert exc.value.batch_id == 'B2'
        # B1 decrement was restored, nothing was appended
        assert flaky.get_batch('B1').quantity_remaining == Decimal('100')
        assert flaky.list_ledger_entries() == []

    def test_stale_plan_never_drives_negative(self, backend, catalog, ledger, dmem_batches, as_of):
        stale = plan_for(catalog, 150, as_of)
        ledger.commit(plan_for(catalog, 150, as_of), 'culture-1')

        with pytest.raises(ConcurrentModification):
            ledger.commit(stale, 'culture-2')

        assert backend.get_batch('B1').quantity_remaining == 0
        assert backend.get_batch('B2').quantity_remaining == Decimal('50')
        assert ledger.entries_for('culture-2') == []

    def test_unknown_batch(self, backend):
        with pytest.raises(EntityNotFound):
            backend.decrement_batch('nope', Decimal('1'), Decimal('1'))


class TestReverse:
    """Tests for WriteOffLedger.reverse() and ledger queries."""

    def test_reverse_restores_and_records(self, backend, catalog, ledger, dmem_batches, as_of):
        entries = ledger.commit(plan_for(catalog, 150, as_of), 'culture-1')

        reversals = ledger.reverse(entries)

        assert [r.reverses for r in reversals] == [e.id for e in entries]
        assert all(r.reason == WriteOffReason.REVERSAL for r in reversals)
        assert backend.get_batch('B1').quantity_remaining == Decimal('100')
        assert backend.get_batch('B1').status == BatchStatus.AVAILABLE
        assert backend.get_batch('B2').quantity_remaining == Decimal('100')

    def test_reverse_is_idempotent(self, backend, catalog, ledger, dmem_batches, as_of):
        entries = ledger.commit(plan_for(catalog, 30, as_of), 'culture-1')

        ledger.reverse(entries)
        assert ledger.reverse(entries) == []

        assert backend.get_batch('B1').quantity_remaining == Decimal('100')

    def test_active_entries_hide_reversed(self, catalog, ledger, dmem_batches, as_of):
        first = ledger.commit(plan_for(catalog, 10, as_of), 'culture-1')
        second = ledger.commit(plan_for(catalog, 20, as_of), 'culture-1')
        ledger.reverse(first)

        assert len(ledger.entries_for('culture-1')) == 3
        assert [e.id for e in ledger.active_entries('culture-1')] == [second[0].id]


class TestConcurrency:
    """Racing decrements on one batch."""

    def test_concurrent_decrements_never_exceed_remaining(self, backend):
        backend.add_batch('C1', '5', 'pcs', container_type_id='T75')

        def take_one(_):
            try:
                backend.decrement_batch('C1', Decimal('1'), Decimal('1'))
                return True
            except ConcurrentModification:
                return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(take_one, range(20)))

        assert results.count(True) == 5
        assert backend.get_batch('C1').quantity_remaining == 0


class TestCommitFailures:
    """A commit that fails midway gives back what it took."""

    @pytest.fixture
    def stock(self, flaky):
        flaky.add_batch('B1', '100', 'ml', expiration_date=date(2026, 2, 1), nomenclature_id='DMEM')
        flaky.add_batch('B2', '100', 'ml', expiration_date=date(2026, 3, 1), nomenclature_id='DMEM')
        return flaky

    def test_append_failure_reverses_earlier_entries(self, stock, as_of):
        plan = plan_for(BatchCatalog(stock), 150, as_of)
        stock.fail_append_at = 2
        ledger = WriteOffLedger(stock)

        with pytest.raises(ConnectionError):
            ledger.commit(plan, 'culture-1')

        assert stock.get_batch('B1').quantity_remaining == Decimal('100')
        assert stock.get_batch('B2').quantity_remaining == Decimal('100')
        # the B1 entry stays on record, paired with its REVERSAL
        assert [e.reason for e in ledger.entries_for('culture-1')] == [
            WriteOffReason.CONSUME, WriteOffReason.REVERSAL,
        ]
        assert ledger.active_entries('culture-1') == []

    def test_status_failure_keeps_the_commit(self, stock, as_of):
        plan = plan_for(BatchCatalog(stock), 100, as_of)
        stock.fail_status = 1

        entries = WriteOffLedger(stock).commit(plan, 'culture-1')

        assert [(e.batch_id, e.amount) for e in entries] == [('B1', Decimal('100'))]
        assert stock.get_batch('B1').quantity_remaining == 0
        assert stock.get_batch('B1').status == BatchStatus.AVAILABLE
        assert [b.id for b in BatchCatalog(stock).list_available(nomenclature_id='DMEM', as_of=as_of)] == ['B2']

    def test_transient_restore_failure_is_retried(self, stock, as_of):
        plan = plan_for(BatchCatalog(stock), 150, as_of)
        stock.fail_decrement_on = 'B2'
        stock.fail_increment = 1  # COMPENSATION_RETRIES is 2 in test settings

        with pytest.raises(ConcurrentModification):
            WriteOffLedger(stock).commit(plan, 'culture-1')

        assert stock.get_batch('B1').quantity_remaining == Decimal('100')

    def test_failed_restore_is_reported(self, stock, as_of):
        plan = plan_for(BatchCatalog(stock), 150, as_of)
        stock.fail_decrement_on = 'B2'
        stock.fail_increment = 2

        with pytest.raises(RestoreFailed) as exc:
            WriteOffLedger(stock).commit(plan, 'culture-1')

        error = exc.value
        assert error.code == 'RESTORE_FAILED'
        assert isinstance(error.cause, ConcurrentModification)
        assert isinstance(error.__cause__, ConcurrentModification)
        assert [step.action for step in error.unrestored] == ['restore_batch']
        assert error.data['unrestored'][0]['batch_id'] == 'B1'
        assert error.data['unrestored'][0]['amount'] == '100'
        assert error.data['unrestored'][0]['attempts'] == 2
        assert stock.get_batch('B1').quantity_remaining == 0
        assert stock.list_ledger_entries() == []


class TestReverseFailures:
    """A reversal interrupted by the store can simply be run again."""

    @pytest.fixture
    def stock(self, flaky):
        flaky.add_batch('B1', '100', 'ml', expiration_date=date(2026, 2, 1), nomenclature_id='DMEM')
        return flaky

    def test_status_failure_is_fixed_on_retry(self, stock, as_of):
        ledger = WriteOffLedger(stock)
        entries = ledger.commit(plan_for(BatchCatalog(stock), 100, as_of), 'culture-1')
        assert stock.get_batch('B1').status == BatchStatus.DEPLETED
        stock.fail_status = 1

        with pytest.raises(ConnectionError):
            ledger.reverse(entries)
        assert ledger.reverse(entries) == []

        assert stock.get_batch('B1').quantity_remaining == Decimal('100')
        assert stock.get_batch('B1').status == BatchStatus.AVAILABLE

    def test_append_failure_takes_the_restore_back(self, stock, as_of):
        ledger = WriteOffLedger(stock)
        entries = ledger.commit(plan_for(BatchCatalog(stock), 30, as_of), 'culture-1')
        stock.fail_append_at = stock.append_calls + 1

        with pytest.raises(ConnectionError):
            ledger.reverse(entries)
        assert stock.get_batch('B1').quantity_remaining == Decimal('70')

        assert len(ledger.reverse(entries)) == 1
        assert stock.get_batch('B1').quantity_remaining == Decimal('100')

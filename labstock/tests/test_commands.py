"""
Tests for management commands.
"""

from datetime import date
from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from labstock.enums import BatchStatus
from labstock.models import Batch


pytestmark = pytest.mark.django_db


def run(*args):
    out = StringIO()
    call_command('expiring_batches', *args, stdout=out)
    return out.getvalue()


class TestExpiringBatches:
    """Tests for the expiring_batches command."""

    def test_reports_expired_and_expiring(self, fbs, fbs_batches):
        Batch.objects.create(
            batch_number='FBS-00',
            nomenclature=fbs,
            quantity_remaining=Decimal('1500'),
            unit='ul',
            expiration_date=date(2026, 1, 10),
        )

        output = run('--days', '30', '--as-of', '2026-01-15')

        lines = output.strip().splitlines()
        assert lines[0].startswith('EXPIRED')
        assert 'FBS-00' in lines[0]
        assert '1.5 ml' in lines[0]
        assert lines[1].startswith('EXPIRING')
        assert 'FBS-01' in lines[1]
        assert 'FBS-02' not in output
        assert lines[-1] == '1 expired, 1 expiring by 2026-02-14'

    def test_ignores_depleted_and_quarantined(self, fbs, fbs_batches):
        early, late = fbs_batches
        Batch.objects.filter(pk=early.pk).update(status=BatchStatus.QUARANTINE)
        Batch.objects.filter(pk=late.pk).update(quantity_remaining=Decimal('0'))

        output = run('--days', '90', '--as-of', '2026-01-15')

        assert output.strip() == '0 expired, 0 expiring by 2026-04-15'

    def test_negative_days(self, db):
        with pytest.raises(CommandError):
            run('--days', '-1')

    def test_bad_date(self, db):
        with pytest.raises(CommandError):
            run('--as-of', '15/01/2026')

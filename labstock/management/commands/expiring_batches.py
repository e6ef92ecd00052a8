"""
Management command to report batches close to (or past) expiration.

Usage:
    python manage.py expiring_batches
    python manage.py expiring_batches --days 14
    python manage.py expiring_batches --as-of 2026-03-01
"""

from datetime import date, timedelta

from django.core.management.base import BaseCommand, CommandError

from labstock.enums import BatchStatus
from labstock.expiry import as_date
from labstock.models import Batch
from labstock.units import format_quantity


class Command(BaseCommand):
    """Expiring batches report command."""

    help = 'Lists batches expiring within N days and expired batches still marked AVAILABLE'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=30,
            help='Look-ahead window in days (default: 30)'
        )
        parser.add_argument(
            '--as-of',
            dest='as_of',
            default=None,
            help='Reference date, YYYY-MM-DD (default: today)'
        )

    def handle(self, *args, **options):
        if options['days'] < 0:
            raise CommandError('--days must be zero or positive')
        try:
            as_of = date.fromisoformat(options['as_of']) if options['as_of'] else as_date(None)
        except ValueError:
            raise CommandError(f"Invalid --as-of date: {options['as_of']}") from None

        horizon = as_of + timedelta(days=options['days'])
        available = Batch.objects.filter(status=BatchStatus.AVAILABLE, quantity_remaining__gt=0)

        expired = available.filter(expiration_date__lte=as_of).fefo()
        expiring = available.filter(expiration_date__gt=as_of, expiration_date__lte=horizon).fefo()

        for batch in expired:
            self.stdout.write(self.style.ERROR(self._line('EXPIRED', batch)))
        for batch in expiring:
            self.stdout.write(self.style.WARNING(self._line('EXPIRING', batch)))

        self.stdout.write(
            self.style.SUCCESS(
                f'{expired.count()} expired, {expiring.count()} expiring by {horizon.isoformat()}'
            )
        )

    @staticmethod
    def _line(label, batch):
        item = batch.nomenclature or batch.container_type
        return (
            f'{label:<8} {batch.expiration_date.isoformat()}  '
            f'{batch.batch_number or batch.pk}  {item}  '
            f'{format_quantity(batch.quantity_remaining, batch.unit)}'
        )

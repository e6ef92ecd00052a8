"""
Batch model — a tracked quantity of one nomenclature item.

Each batch has its own expiration date and remaining quantity in its
own unit. Remaining quantity only changes through the write-off ledger
(services/ledger.py) via conditional decrements.

Usage:
    batch = Batch.objects.create(
        batch_number="FBS-2026-014",
        nomenclature=fbs,
        quantity_remaining=Decimal("500"),
        unit="ml",
        expiration_date=date(2026, 11, 30),
    )

    Batch.objects.for_nomenclature(fbs).allocatable()
"""

from datetime import date as date_cls
from decimal import Decimal

from django.db import models
from django.db.models import F, Q
from django.utils.translation import gettext_lazy as _

from labstock.enums import BatchStatus
from labstock.expiry import filter_allocatable, is_expired
from labstock.models.nomenclature import UNIT_CHOICES
from labstock.units import Quantity


class BatchQuerySet(models.QuerySet):
    """Custom QuerySet for Batch with convenience filters."""

    def allocatable(self, as_of=None):
        """AVAILABLE, not empty, not expired at as_of."""
        return filter_allocatable(self, as_of)

    def expiring_before(self, date):
        """Batches expiring on or before the given date."""
        return self.filter(expiration_date__lte=date, expiration_date__isnull=False)

    def expired(self):
        """Batches past their expiration date."""
        return self.expiring_before(date_cls.today())

    def for_nomenclature(self, nomenclature):
        return self.filter(nomenclature=nomenclature)

    def fefo(self):
        """First-expires-first-out order, no expiration last, ties by id."""
        return self.order_by(F('expiration_date').asc(nulls_last=True), 'pk')


class Batch(models.Model):
    """
    Consumable batch (reagent, medium component, container stock).

    Either nomenclature or container_type is set: container stock
    batches are looked up by the container type they supply.
    """

    batch_number = models.CharField(
        max_length=50,
        blank=True,
        default='',
        verbose_name=_('Batch number'),
    )
    nomenclature = models.ForeignKey(
        'labstock.Nomenclature',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='batches',
        verbose_name=_('Nomenclature'),
    )
    container_type = models.ForeignKey(
        'labstock.ContainerType',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='batches',
        verbose_name=_('Container type'),
    )

    quantity_remaining = models.DecimalField(
        max_digits=18,
        decimal_places=6,
        default=Decimal('0'),
        verbose_name=_('Remaining'),
    )
    unit = models.CharField(
        max_length=10,
        choices=UNIT_CHOICES,
        verbose_name=_('Unit'),
    )
    expiration_date = models.DateField(
        null=True,
        blank=True,
        db_index=True,
        verbose_name=_('Expiration date'),
        help_text=_('First day the batch may no longer be used'),
    )
    status = models.CharField(
        max_length=20,
        choices=BatchStatus.choices,
        default=BatchStatus.AVAILABLE,
        db_index=True,
        verbose_name=_('Status'),
    )

    notes = models.TextField(blank=True, default='', verbose_name=_('Notes'))
    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_('Created at'))
    updated_at = models.DateTimeField(auto_now=True)

    objects = BatchQuerySet.as_manager()

    class Meta:
        verbose_name = _('Batch')
        verbose_name_plural = _('Batches')
        ordering = [F('expiration_date').asc(nulls_last=True), 'pk']
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity_remaining__gte=0),
                name='labstock_batch_remaining_non_negative',
            ),
        ]
        indexes = [
            models.Index(fields=['nomenclature', 'status'], name='labstock_ba_nomencl_3f1c2a_idx'),
            models.Index(fields=['container_type', 'status'], name='labstock_ba_contain_8e4b7d_idx'),
        ]

    @property
    def quantity(self) -> Quantity:
        return Quantity(self.quantity_remaining, self.unit)

    @property
    def is_expired(self) -> bool:
        """Is this batch past its expiration date?"""
        return is_expired(self.expiration_date)

    def __str__(self) -> str:
        expiry = f" (exp:{self.expiration_date})" if self.expiration_date else ""
        return f"Batch {self.batch_number or self.pk}{expiry}: {self.quantity}"

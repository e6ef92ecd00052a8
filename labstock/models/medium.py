"""
ReadyMedium model — working medium prepared from component batches.
"""

from decimal import Decimal

from django.db import models
from django.utils.translation import gettext_lazy as _

from labstock.enums import ReadyMediumStatus, SterilizationMethod


class ReadyMedium(models.Model):
    """
    Prepared medium (e.g. DMEM + 10% FBS + 1% P/S).

    Starts in QUARANTINE until released by QC. ``composition`` keeps the
    component doses that were written off, for the passport.
    """

    code = models.CharField(max_length=40, unique=True, verbose_name=_('Code'))
    name = models.CharField(max_length=200, verbose_name=_('Name'))
    volume_ml = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        verbose_name=_('Volume (ml)'),
    )
    current_volume_ml = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        default=Decimal('0'),
        verbose_name=_('Current volume (ml)'),
    )
    status = models.CharField(
        max_length=20,
        choices=ReadyMediumStatus.choices,
        default=ReadyMediumStatus.QUARANTINE,
        verbose_name=_('Status'),
    )
    sterilization_method = models.CharField(
        max_length=20,
        choices=SterilizationMethod.choices,
        blank=True,
        default='',
    )
    prepared_at = models.DateField(null=True, blank=True)
    expiration_date = models.DateField(null=True, blank=True)
    storage_position_ref = models.CharField(max_length=64, blank=True, default='')
    composition = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _('Ready medium')
        verbose_name_plural = _('Ready media')

    def __str__(self) -> str:
        return f"{self.code} {self.name}"

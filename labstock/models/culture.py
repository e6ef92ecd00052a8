"""
Culture, Lot and Container — primary entities of the culture workflow.

Only the fields the allocation engine writes are modelled here; the rest
of the culture record belongs to the presentation layer.
"""

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from labstock.enums import ContainerStatus, CultureStatus


class Culture(models.Model):
    """A cell culture derived from a donation."""

    code = models.CharField(max_length=40, unique=True, verbose_name=_('Code'))
    name = models.CharField(max_length=200, verbose_name=_('Name'))
    culture_type = models.CharField(max_length=30, verbose_name=_('Culture type'))
    donor_ref = models.CharField(max_length=64, blank=True, default='', verbose_name=_('Donor'))
    donation_ref = models.CharField(max_length=64, blank=True, default='', verbose_name=_('Donation'))
    processing_method = models.CharField(max_length=50, blank=True, default='')
    status = models.CharField(
        max_length=20,
        choices=CultureStatus.choices,
        default=CultureStatus.ACTIVE,
        verbose_name=_('Status'),
    )
    passage_number = models.PositiveIntegerField(default=0)
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _('Culture')
        verbose_name_plural = _('Cultures')

    def __str__(self) -> str:
        return self.code


class Lot(models.Model):
    """One passage of a culture."""

    culture = models.ForeignKey(
        'labstock.Culture',
        on_delete=models.CASCADE,
        related_name='lots',
        verbose_name=_('Culture'),
    )
    passage_number = models.PositiveIntegerField(default=0)
    status = models.CharField(
        max_length=20,
        choices=CultureStatus.choices,
        default=CultureStatus.ACTIVE,
    )
    seeded_at = models.DateTimeField(default=timezone.now)
    notes = models.TextField(blank=True, default='')

    class Meta:
        verbose_name = _('Lot')
        verbose_name_plural = _('Lots')

    def __str__(self) -> str:
        return f"{self.culture} P{self.passage_number}"


class Container(models.Model):
    """A flask/plate holding part of a lot."""

    lot = models.ForeignKey(
        'labstock.Lot',
        on_delete=models.CASCADE,
        related_name='containers',
        verbose_name=_('Lot'),
    )
    container_type = models.ForeignKey(
        'labstock.ContainerType',
        on_delete=models.PROTECT,
        related_name='containers',
        verbose_name=_('Container type'),
    )
    code = models.CharField(max_length=80, unique=True, verbose_name=_('Code'))
    qr_code = models.CharField(max_length=100, blank=True, default='')
    position_ref = models.CharField(max_length=64, blank=True, default='', verbose_name=_('Position'))
    status = models.CharField(
        max_length=20,
        choices=ContainerStatus.choices,
        default=ContainerStatus.IN_CULTURE,
    )
    passage_count = models.PositiveIntegerField(default=0)
    confluent_percent = models.PositiveSmallIntegerField(default=0)
    seeded_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = _('Container')
        verbose_name_plural = _('Containers')

    def __str__(self) -> str:
        return self.code

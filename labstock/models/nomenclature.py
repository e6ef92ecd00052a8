"""
Nomenclature and ContainerType — what a batch is a batch of.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _

from labstock.enums import NomenclatureCategory
from labstock.units import ConversionContext, UNITS


UNIT_CHOICES = [(code, code) for code in UNITS]


class Nomenclature(models.Model):
    """
    Catalog item consumed by lab work (medium, serum, reagent, flask...).

    The optional physical constants are the bridges the converter needs
    when a request and a batch are expressed in units of different kind.
    """

    code = models.CharField(
        max_length=50,
        unique=True,
        verbose_name=_('Code'),
    )
    name = models.CharField(max_length=200, verbose_name=_('Name'))
    category = models.CharField(
        max_length=20,
        choices=NomenclatureCategory.choices,
        verbose_name=_('Category'),
    )
    unit = models.CharField(
        max_length=10,
        choices=UNIT_CHOICES,
        verbose_name=_('Default unit'),
    )

    molecular_weight = models.DecimalField(
        max_digits=14, decimal_places=4, null=True, blank=True,
        verbose_name=_('Molecular weight (g/mol)'),
    )
    density = models.DecimalField(
        max_digits=10, decimal_places=6, null=True, blank=True,
        verbose_name=_('Density (g/ml)'),
    )
    specific_activity = models.DecimalField(
        max_digits=14, decimal_places=4, null=True, blank=True,
        verbose_name=_('Specific activity (U/mg)'),
    )

    is_active = models.BooleanField(default=True, verbose_name=_('Active'))
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _('Nomenclature')
        verbose_name_plural = _('Nomenclatures')
        ordering = ['code']

    def conversion_context(self) -> ConversionContext:
        return ConversionContext(
            molecular_weight=self.molecular_weight,
            density=self.density,
            specific_activity=self.specific_activity,
        )

    def __str__(self) -> str:
        return f"{self.code} — {self.name}"


class ContainerType(models.Model):
    """Flask, plate or vial type; container stock batches point here."""

    code = models.CharField(max_length=30, unique=True, verbose_name=_('Code'))
    name = models.CharField(max_length=100, verbose_name=_('Name'))
    is_active = models.BooleanField(default=True, verbose_name=_('Active'))

    class Meta:
        verbose_name = _('Container type')
        verbose_name_plural = _('Container types')
        ordering = ['code']

    def __str__(self) -> str:
        return self.code

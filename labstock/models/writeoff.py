"""
WriteOff model — immutable ledger of batch decrements.
"""

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from labstock.enums import WriteOffReason
from labstock.models.nomenclature import UNIT_CHOICES


class WriteOff(models.Model):
    """
    Immutable record of a batch write-off.

    Rules:
    - NEVER update() or delete()
    - Corrections are new REVERSAL entries pointing at the original
    - The batch balance is changed by the ledger service, not by save()
    """

    batch = models.ForeignKey(
        'labstock.Batch',
        on_delete=models.PROTECT,
        related_name='write_offs',
        verbose_name=_('Batch'),
    )
    amount = models.DecimalField(
        max_digits=18,
        decimal_places=6,
        verbose_name=_('Amount'),
        help_text=_('In the batch unit. Always positive; REVERSAL adds it back.'),
    )
    unit = models.CharField(max_length=10, choices=UNIT_CHOICES, verbose_name=_('Unit'))
    reason = models.CharField(
        max_length=20,
        choices=WriteOffReason.choices,
        verbose_name=_('Reason'),
    )

    # Consuming entity (culture, lot, container, ready medium)
    target_id = models.CharField(
        max_length=64,
        blank=True,
        default='',
        db_index=True,
        verbose_name=_('Target'),
    )
    quantity_after = models.DecimalField(
        max_digits=18,
        decimal_places=6,
        null=True,
        blank=True,
        verbose_name=_('Remaining after'),
    )
    reverses = models.ForeignKey(
        'self',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='reversals',
        verbose_name=_('Reverses'),
    )

    metadata = models.JSONField(default=dict, blank=True, verbose_name=_('Metadata'))
    timestamp = models.DateTimeField(default=timezone.now, db_index=True, verbose_name=_('Timestamp'))

    class Meta:
        verbose_name = _('Write-off')
        verbose_name_plural = _('Write-offs')
        ordering = ['timestamp', 'pk']
        indexes = [
            models.Index(fields=['batch', 'timestamp'], name='labstock_wr_batch_i_5a9d01_idx'),
        ]

    def save(self, *args, **kwargs):
        if self.pk:
            raise ValueError(
                "Write-offs are immutable. "
                "To correct one, append a REVERSAL entry."
            )
        if self.amount is None or self.amount <= 0:
            raise ValueError("Write-off amount must be positive")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError(
            "Write-offs are immutable. "
            "To cancel one, append a REVERSAL entry."
        )

    def __str__(self) -> str:
        sign = '+' if self.reason == WriteOffReason.REVERSAL else '-'
        return f"{sign}{self.amount} {self.unit} | {self.reason} → {self.target_id or '?'}"

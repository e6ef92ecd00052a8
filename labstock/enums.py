"""
Enums for Labstock (model choices and domain variants).
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class UnitKind(models.TextChoices):
    """
    Physical kind of a measurement unit.

    Units of different kind are never converted without an explicit bridge
    (molecular weight, density, molarity, specific activity).
    """
    MASS = 'MASS', _('Mass')              # base: g
    VOLUME = 'VOLUME', _('Volume')        # base: ml
    COUNT = 'COUNT', _('Count')           # base: pcs
    ACTIVITY = 'ACTIVITY', _('Activity')  # base: U
    MOLAR = 'MOLAR', _('Molar amount')    # base: mol


class BatchStatus(models.TextChoices):
    """
    Consumable batch status.

    EXPIRED may also be derived from expiration_date without being stored.
    """
    AVAILABLE = 'AVAILABLE', _('Available')
    QUARANTINE = 'QUARANTINE', _('Quarantine')
    EXPIRED = 'EXPIRED', _('Expired')
    DEPLETED = 'DEPLETED', _('Depleted')


class WriteOffReason(models.TextChoices):
    """Reason code of a ledger entry."""
    CONSUME = 'CONSUME', _('Consumed')
    DISPOSE = 'DISPOSE', _('Disposed')
    CORRECT_MINUS = 'CORRECT_MINUS', _('Correction (minus)')
    REVERSAL = 'REVERSAL', _('Reversal')


class NomenclatureCategory(models.TextChoices):
    """Nomenclature category; each has a default unit (see units.py)."""
    MEDIUM = 'MEDIUM', _('Medium')
    SERUM = 'SERUM', _('Serum')
    BUFFER = 'BUFFER', _('Buffer')
    SUPPLEMENT = 'SUPPLEMENT', _('Supplement')
    ENZYME = 'ENZYME', _('Enzyme')
    REAGENT = 'REAGENT', _('Reagent')
    CONSUMABLE = 'CONSUMABLE', _('Consumable')
    EQUIP = 'EQUIP', _('Equipment')


class EntityKind(models.TextChoices):
    """Primary entities created by composite workflows."""
    CULTURE = 'culture', _('Culture')
    LOT = 'lot', _('Lot')
    CONTAINER = 'container', _('Container')
    READY_MEDIUM = 'ready_medium', _('Ready medium')


class TransactionStatus(models.TextChoices):
    """Composite creation lifecycle."""
    OPEN = 'OPEN', _('Open')
    COMMITTED = 'COMMITTED', _('Committed')
    ROLLED_BACK = 'ROLLED_BACK', _('Rolled back')
    FAILED = 'FAILED', _('Failed')    # compensation failed, manual reconciliation


class CultureStatus(models.TextChoices):
    ACTIVE = 'ACTIVE', _('Active')
    FROZEN = 'FROZEN', _('Frozen')
    DISPOSED = 'DISPOSED', _('Disposed')


class ContainerStatus(models.TextChoices):
    IN_CULTURE = 'IN_CULTURE', _('In culture')
    IN_BANK = 'IN_BANK', _('In bank')
    DISPOSED = 'DISPOSED', _('Disposed')


class ReadyMediumStatus(models.TextChoices):
    QUARANTINE = 'QUARANTINE', _('Quarantine')
    ACTIVE = 'ACTIVE', _('Active')
    EXPIRED = 'EXPIRED', _('Expired')
    DISPOSE = 'DISPOSE', _('Disposed')


class SterilizationMethod(models.TextChoices):
    FILTRATION = 'FILTRATION', _('Filtration')
    AUTOCLAVE = 'AUTOCLAVE', _('Autoclave')

"""
Labstock configuration.

Usage in settings.py:
    LABSTOCK = {
        "STORAGE_BACKEND": "labstock.adapters.django_orm.DjangoBackend",
        "ALLOCATION_TOLERANCE": "0.000001",
        "QUANTITY_PLACES": 6,
        "MIN_DISPENSABLE": {"VOLUME": "0.01 ml", "MASS": "0.1 mg"},
        "COMPENSATION_RETRIES": 3,
    }
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from django.conf import settings


@dataclass
class LabstockSettings:
    """Labstock configuration settings."""

    # Storage backend (dotted path to a StorageBackend class)
    STORAGE_BACKEND: str = "labstock.adapters.django_orm.DjangoBackend"

    # Absolute tolerance when comparing quantities (request or batch unit)
    ALLOCATION_TOLERANCE: Decimal = Decimal("0.000001")

    # Decimal places kept for amounts written to batches and the ledger
    QUANTITY_PLACES: int = 6

    # Minimum dispensable amount per unit kind, e.g. {"VOLUME": "0.01 ml"}
    MIN_DISPENSABLE: dict[str, str] = field(default_factory=dict)

    # Attempts per compensation step before a saga is marked FAILED
    COMPENSATION_RETRIES: int = 3

    def __post_init__(self):
        self.ALLOCATION_TOLERANCE = Decimal(str(self.ALLOCATION_TOLERANCE))
        self.QUANTITY_PLACES = int(self.QUANTITY_PLACES)
        self.COMPENSATION_RETRIES = max(1, int(self.COMPENSATION_RETRIES))

    @property
    def quantum(self) -> Decimal:
        """Smallest stored increment, e.g. Decimal('0.000001')."""
        return Decimal(1).scaleb(-self.QUANTITY_PLACES)


def get_labstock_settings() -> LabstockSettings:
    """Load settings from Django settings."""
    user_settings: dict[str, Any] = getattr(settings, "LABSTOCK", {})
    return LabstockSettings(**{
        k: v for k, v in user_settings.items()
        if k in LabstockSettings.__dataclass_fields__
    })


class _LazySettings:
    """Lazy proxy that re-reads settings on every attribute access."""

    def __getattr__(self, name):
        return getattr(get_labstock_settings(), name)


labstock_settings = _LazySettings()

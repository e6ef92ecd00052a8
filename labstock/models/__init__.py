"""
Labstock Models.

- Nomenclature / ContainerType: what a batch is a batch of
- Batch: remaining quantity, unit, expiration, status
- WriteOff: immutable ledger of decrements
- Culture / Lot / Container / ReadyMedium: entities created by workflows
"""

from labstock.models.batch import Batch
from labstock.models.culture import Container, Culture, Lot
from labstock.models.medium import ReadyMedium
from labstock.models.nomenclature import ContainerType, Nomenclature
from labstock.models.writeoff import WriteOff

__all__ = [
    'Nomenclature',
    'ContainerType',
    'Batch',
    'WriteOff',
    'Culture',
    'Lot',
    'Container',
    'ReadyMedium',
]

"""
Django Labstock — unit conversion and FEFO stock allocation for the lab.

Usage:
    from labstock import inventory, LabstockError

    inventory.convert(10, 'mg', 'mmol', ConversionContext(molecular_weight=180.16))
    inventory.list_available(nomenclature_id=fbs.pk)
    inventory.create_ready_medium('DMEM 10% FBS', Quantity(500, 'ml'), components)
"""


def __getattr__(name):
    """Lazy import to avoid circular imports during app loading."""
    if name == 'inventory':
        from labstock.service import Inventory
        return Inventory
    elif name == 'LabstockError':
        from labstock.exceptions import LabstockError
        return LabstockError
    elif name == 'Quantity':
        from labstock.units import Quantity
        return Quantity
    elif name == 'Concentration':
        from labstock.units import Concentration
        return Concentration
    elif name == 'ConversionContext':
        from labstock.units import ConversionContext
        return ConversionContext
    elif name == 'AllocationRequest':
        from labstock.services.allocator import AllocationRequest
        return AllocationRequest
    elif name == 'ContainerGroup':
        from labstock.services.workflows import ContainerGroup
        return ContainerGroup
    elif name == 'MediumComponent':
        from labstock.services.workflows import MediumComponent
        return MediumComponent
    elif name == 'Batch':
        from labstock.models.batch import Batch
        return Batch
    elif name == 'WriteOff':
        from labstock.models.writeoff import WriteOff
        return WriteOff
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    'inventory',
    'LabstockError',
    'Quantity',
    'Concentration',
    'ConversionContext',
    'AllocationRequest',
    'ContainerGroup',
    'MediumComponent',
    'Batch',
    'WriteOff',
]

__version__ = '0.1.0'

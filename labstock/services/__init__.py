"""
Labstock services — catalog, allocation, ledger, composite creation.

    from labstock.services import BatchCatalog, WriteOffLedger, CreationCoordinator
"""

from labstock.services.allocator import (
    AllocationPlan,
    AllocationRequest,
    PlanLine,
    allocate,
    allocate_many,
)
from labstock.services.catalog import BatchCatalog
from labstock.services.coordinator import (
    CreatedResult,
    CreationCoordinator,
    CreationSpec,
    CreationTransaction,
    EntityDraft,
)
from labstock.services.ledger import CompensationStep, WriteOffLedger
from labstock.services.workflows import Consumable, ContainerGroup, LabWorkflows, MediumComponent

__all__ = [
    'AllocationPlan',
    'AllocationRequest',
    'PlanLine',
    'allocate',
    'allocate_many',
    'BatchCatalog',
    'WriteOffLedger',
    'CompensationStep',
    'CreatedResult',
    'CreationCoordinator',
    'CreationSpec',
    'CreationTransaction',
    'EntityDraft',
    'Consumable',
    'ContainerGroup',
    'LabWorkflows',
    'MediumComponent',
]

"""
Inventory Service — the single public interface of the allocation engine.

Usage:
    from labstock import inventory, LabstockError

    inventory.convert('1.5', 'l', 'ml')                     # Decimal('1500')
    inventory.list_available(nomenclature_id=dmem.pk)       # FEFO order
    plan = inventory.plan_allocation(
        AllocationRequest(Quantity(150, 'ml'), nomenclature_id=dmem.pk)
    )
    result = inventory.create_culture_from_donation(
        'MSC', donor.pk, donation.pk, 'enzymatic',
        containers=[ContainerGroup(flask.pk, 'T75', count=3)],
    )
"""

from __future__ import annotations

import threading
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable

from labstock.adapters import get_storage_backend
from labstock.exceptions import EntityNotFound, InsufficientStock
from labstock.protocols.storage import ConsumableBatch, StorageBackend, WriteOffEntry
from labstock.services.allocator import AllocationPlan, AllocationRequest, allocate
from labstock.services.catalog import BatchCatalog
from labstock.services.coordinator import CreatedResult, CreationCoordinator, CreationSpec
from labstock.services.ledger import WriteOffLedger
from labstock.services.workflows import Consumable, ContainerGroup, LabWorkflows, MediumComponent
from labstock.units import ConversionContext, Quantity, convert


class Inventory:
    """
    Single interface for inventory operations.

    Every method accepts ``backend=`` to run against a specific store;
    by default the configured STORAGE_BACKEND is used.
    """

    # ══════════════════════════════════════════════════════════════
    # UNITS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def convert(cls, amount, from_unit, to_unit, context: ConversionContext | None = None) -> Decimal:
        """See labstock.units.convert."""
        return convert(amount, from_unit, to_unit, context)

    @classmethod
    def context_for(cls, nomenclature_id) -> ConversionContext:
        """Bridge factors stored on a nomenclature item (Django store)."""
        from labstock.models import Nomenclature

        try:
            return Nomenclature.objects.get(pk=nomenclature_id).conversion_context()
        except (Nomenclature.DoesNotExist, ValueError):
            raise EntityNotFound(nomenclature_id=nomenclature_id) from None

    # ══════════════════════════════════════════════════════════════
    # QUERIES
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def list_available(cls, nomenclature_id=None, container_type_id=None,
                       as_of: date | datetime | None = None,
                       backend: StorageBackend | None = None) -> list[ConsumableBatch]:
        return BatchCatalog(backend or get_storage_backend()).list_available(
            nomenclature_id=nomenclature_id,
            container_type_id=container_type_id,
            as_of=as_of,
        )

    @classmethod
    def expiring_before(cls, before: date, as_of: date | datetime | None = None,
                        backend: StorageBackend | None = None) -> list[ConsumableBatch]:
        return BatchCatalog(backend or get_storage_backend()).expiring_before(before, as_of)

    @classmethod
    def ledger_for(cls, target_id, active_only: bool = False,
                   backend: StorageBackend | None = None) -> list[WriteOffEntry]:
        """Write-offs attributed to an entity. ``active_only`` hides reversed ones."""
        ledger = WriteOffLedger(backend or get_storage_backend())
        if active_only:
            return ledger.active_entries(str(target_id))
        return ledger.entries_for(str(target_id))

    # ══════════════════════════════════════════════════════════════
    # ALLOCATION
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def plan_allocation(cls, request: AllocationRequest,
                        as_of: date | datetime | None = None,
                        backend: StorageBackend | None = None) -> AllocationPlan:
        """
        FEFO plan for one request. Nothing is written.

        Raises:
            InsufficientStock: the catalog cannot cover the request;
                ``error.plans[0]`` is the partial plan
        """
        catalog = BatchCatalog(backend or get_storage_backend())
        plan = allocate(request, catalog.available(request.filter, as_of), as_of)
        if not plan.satisfied:
            raise InsufficientStock([plan])
        return plan

    @classmethod
    def write_off(cls, request: AllocationRequest,
                  as_of: date | datetime | None = None,
                  backend: StorageBackend | None = None) -> list[WriteOffEntry]:
        """Plan and commit a single request against an existing target."""
        backend = backend or get_storage_backend()
        plan = cls.plan_allocation(request, as_of=as_of, backend=backend)
        return WriteOffLedger(backend).commit(plan, request.target, request.reason)

    @classmethod
    def reverse(cls, entries: Iterable[WriteOffEntry],
                backend: StorageBackend | None = None) -> list[WriteOffEntry]:
        return WriteOffLedger(backend or get_storage_backend()).reverse(list(entries))

    # ══════════════════════════════════════════════════════════════
    # COMPOSITE CREATION
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def create_with_allocations(cls, spec: CreationSpec,
                                requests: Iterable[AllocationRequest],
                                cancel_event: threading.Event | None = None,
                                as_of: date | datetime | None = None,
                                backend: StorageBackend | None = None) -> CreatedResult:
        coordinator = CreationCoordinator(backend or get_storage_backend())
        return coordinator.create_with_allocations(
            spec, requests, cancel_event=cancel_event, as_of=as_of,
        )

    @classmethod
    def create_culture_from_donation(cls, culture_type_code: str, donor_id, donation_id,
                                     processing_method: str,
                                     containers: Iterable[ContainerGroup],
                                     consumables: Iterable[Consumable] = (),
                                     backend: StorageBackend | None = None,
                                     **options) -> CreatedResult:
        workflows = LabWorkflows(CreationCoordinator(backend or get_storage_backend()))
        return workflows.culture_from_donation(
            culture_type_code, donor_id, donation_id, processing_method,
            containers=containers, consumables=consumables, **options,
        )

    @classmethod
    def create_ready_medium(cls, name: str, volume: Quantity,
                            components: Iterable[MediumComponent],
                            backend: StorageBackend | None = None,
                            **options) -> CreatedResult:
        workflows = LabWorkflows(CreationCoordinator(backend or get_storage_backend()))
        return workflows.ready_medium(name, volume, components, **options)

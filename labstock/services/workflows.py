"""
Lab workflows built on the creation coordinator.

- culture_from_donation: culture + P0 lot + containers, one container-stock
  write-off per container, optional consumables written off to the lot
- ready_medium: prepared medium + one write-off per component
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable

from django.utils import timezone

from labstock.enums import (
    ContainerStatus,
    CultureStatus,
    EntityKind,
    ReadyMediumStatus,
    UnitKind,
    WriteOffReason,
)
from labstock.exceptions import ValidationError
from labstock.services.allocator import AllocationRequest
from labstock.services.coordinator import CreatedResult, CreationCoordinator, CreationSpec, EntityDraft
from labstock.units import Concentration, ConversionContext, Quantity, convert

logger = logging.getLogger('labstock')


@dataclass(frozen=True)
class ContainerGroup:
    """``count`` containers of one type, seeded at P0."""

    container_type_id: str
    type_code: str
    count: int = 1
    position_ref: str = ''

    def __post_init__(self):
        if self.count < 1:
            raise ValidationError('INVALID_QUANTITY', requested=self.count, container_type=self.type_code)


@dataclass(frozen=True)
class Consumable:
    """A consumable written off to the new lot (e.g. medium used at seeding)."""

    nomenclature_id: str
    quantity: Quantity
    context: ConversionContext | None = None


@dataclass(frozen=True)
class MediumComponent:
    """
    A ready-medium ingredient, given either as an explicit quantity or
    as a concentration in the final volume (10 %, 1 x, 2 mM...).
    """

    nomenclature_id: str
    quantity: Quantity | None = None
    concentration: Concentration | None = None
    context: ConversionContext | None = None
    label: str = ''

    def __post_init__(self):
        if (self.quantity is None) == (self.concentration is None):
            raise ValidationError(
                message='Give either quantity or concentration',
                nomenclature_id=self.nomenclature_id,
            )

    def dose(self, volume: Quantity) -> Quantity:
        if self.quantity is not None:
            return self.quantity
        return self.concentration.dose_for(volume)


def generate_culture_code(culture_type_code: str) -> str:
    return f"{culture_type_code}-{uuid.uuid4().hex[:8].upper()}"


def container_code(culture_code: str, type_code: str, index: int) -> str:
    return f"CT-{culture_code}-P0-{type_code}-{index:03d}"


def generate_medium_code(prepared_at: date) -> str:
    return f"RM-{prepared_at:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


class LabWorkflows:
    """Composite creations used by the culture and media screens."""

    def __init__(self, coordinator: CreationCoordinator):
        self.coordinator = coordinator

    def culture_from_donation(self, culture_type_code: str, donor_id: str, donation_id: str,
                              processing_method: str,
                              containers: Iterable[ContainerGroup],
                              consumables: Iterable[Consumable] = (),
                              culture_code: str | None = None,
                              notes: str = '',
                              cancel_event: threading.Event | None = None,
                              as_of: date | datetime | None = None) -> CreatedResult:
        """
        Create a culture from a donation with its P0 lot and containers.

        Every container consumes one piece of container stock of its type.
        Containers are numbered across groups: CT-{culture}-P0-{type}-001, -002...

        Raises:
            InsufficientStock: not enough container stock or consumables
            PartialFailureRollback / CompensationFailed: see CreationCoordinator
        """
        containers = list(containers)
        if not containers:
            raise ValidationError(message='At least one container is required')

        culture_code = culture_code or generate_culture_code(culture_type_code)
        seeded_at = timezone.now()

        drafts = [
            EntityDraft('culture', EntityKind.CULTURE, {
                'code': culture_code,
                'name': f"{culture_type_code}-AUTO",
                'culture_type': culture_type_code,
                'donor_ref': str(donor_id),
                'donation_ref': str(donation_id),
                'processing_method': processing_method,
                'status': CultureStatus.ACTIVE,
                'passage_number': 0,
                'notes': notes,
            }),
            EntityDraft('lot', EntityKind.LOT, {
                'passage_number': 0,
                'status': CultureStatus.ACTIVE,
                'seeded_at': seeded_at,
                'notes': f"Primary culture. Processing: {processing_method}",
            }, links={'culture_id': 'culture'}),
        ]
        requests = []

        index = 0
        for group in containers:
            for _ in range(group.count):
                index += 1
                code = container_code(culture_code, group.type_code, index)
                key = f"container:{index}"
                drafts.append(EntityDraft(key, EntityKind.CONTAINER, {
                    'container_type_id': group.container_type_id,
                    'code': code,
                    'qr_code': f"CNT:{code}",
                    'position_ref': group.position_ref,
                    'status': ContainerStatus.IN_CULTURE,
                    'passage_count': 0,
                    'confluent_percent': 5,
                    'seeded_at': seeded_at,
                }, links={'lot_id': 'lot'}))
                requests.append(AllocationRequest(
                    Quantity(1, 'pcs'),
                    container_type_id=group.container_type_id,
                    target=key,
                ))

        for consumable in consumables:
            requests.append(AllocationRequest(
                consumable.quantity,
                nomenclature_id=consumable.nomenclature_id,
                target='lot',
                context=consumable.context,
            ))

        result = self.coordinator.create_with_allocations(
            CreationSpec(drafts), requests, cancel_event=cancel_event, as_of=as_of,
        )
        logger.info(
            "labstock.culture.created",
            extra={
                "culture_code": culture_code,
                "culture_id": result.id_for('culture'),
                "containers": index,
            },
        )
        return result

    def ready_medium(self, name: str, volume: Quantity,
                     components: Iterable[MediumComponent],
                     expiration_date: date | None = None,
                     sterilization_method: str = '',
                     storage_position_ref: str = '',
                     code: str | None = None,
                     notes: str = '',
                     cancel_event: threading.Event | None = None,
                     as_of: date | datetime | None = None) -> CreatedResult:
        """
        Prepare a ready medium from component batches.

        The medium starts in QUARANTINE. Its composition records the dose
        of every component.
        """
        if volume.kind != UnitKind.VOLUME:
            raise ValidationError(message='Medium volume must be a volume', volume=str(volume))
        if volume.amount <= 0:
            raise ValidationError('INVALID_QUANTITY', requested=volume.amount)
        components = list(components)
        if not components:
            raise ValidationError(message='A ready medium needs at least one component')

        prepared_at = timezone.localdate()
        code = code or generate_medium_code(prepared_at)
        volume_ml = convert(volume.amount, volume.unit, 'ml').quantize(Decimal('0.001'))

        requests = []
        composition = []
        for component in components:
            dose = component.dose(volume)
            requests.append(AllocationRequest(
                dose,
                nomenclature_id=component.nomenclature_id,
                target='medium',
                reason=WriteOffReason.CONSUME,
                context=component.context,
            ))
            composition.append({
                'nomenclature_id': str(component.nomenclature_id),
                'label': component.label,
                'dose': str(dose),
                'concentration': str(component.concentration) if component.concentration else None,
            })

        drafts = [EntityDraft('medium', EntityKind.READY_MEDIUM, {
            'code': code,
            'name': name,
            'volume_ml': volume_ml,
            'current_volume_ml': volume_ml,
            'status': ReadyMediumStatus.QUARANTINE,
            'sterilization_method': sterilization_method,
            'prepared_at': prepared_at,
            'expiration_date': expiration_date,
            'storage_position_ref': storage_position_ref,
            'composition': composition,
            'notes': notes,
        })]

        result = self.coordinator.create_with_allocations(
            CreationSpec(drafts), requests, cancel_event=cancel_event, as_of=as_of,
        )
        logger.info(
            "labstock.medium.created",
            extra={"code": code, "medium_id": result.id_for('medium'), "components": len(components)},
        )
        return result

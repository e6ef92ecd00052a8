"""
FEFO allocator — turns a requested quantity into batch-by-batch plan lines.

Pure planning: nothing here writes to the store. Plans are committed by
the ledger (services/ledger.py).

Usage:
    request = AllocationRequest(Quantity(150, 'ml'), nomenclature_id='DMEM')
    plan = allocate(request, catalog.list_available(nomenclature_id='DMEM'))
    plan.pairs      # [('B1', Decimal('100')), ('B2', Decimal('50'))]
    plan.satisfied  # True
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable

from labstock.conf import LabstockSettings, get_labstock_settings
from labstock.enums import WriteOffReason
from labstock.exceptions import SubMinimumAllocation, ValidationError
from labstock.expiry import is_allocatable
from labstock.protocols.storage import BatchFilter, ConsumableBatch
from labstock.services.catalog import batch_filter, fefo_sorted
from labstock.units import ConversionContext, MeasurementUnit, Quantity, convert

logger = logging.getLogger('labstock')


@dataclass(frozen=True)
class AllocationRequest:
    """
    What to take, from which stock, for whom.

    Exactly one of nomenclature_id / container_type_id selects the
    batches. ``target`` is the consuming entity id, or the key of an
    entity draft when the request is part of a composite creation.
    ``context`` bridges unit kinds when the batches are stocked in a
    different kind than requested (e.g. mg requested from a mmol batch).
    """

    quantity: Quantity
    nomenclature_id: str | None = None
    container_type_id: str | None = None
    target: str | None = None
    reason: WriteOffReason = WriteOffReason.CONSUME
    context: ConversionContext | None = None

    def __post_init__(self):
        quantity = self.quantity
        if isinstance(quantity, str):
            quantity = Quantity.parse(quantity)
        if not isinstance(quantity, Quantity):
            raise ValidationError(message='quantity must be a Quantity', quantity=quantity)
        if quantity.amount <= 0:
            raise ValidationError('INVALID_QUANTITY', requested=quantity.amount)

        flt = batch_filter(self.nomenclature_id, self.container_type_id)

        try:
            reason = WriteOffReason(self.reason)
        except ValueError:
            raise ValidationError(message='Unknown reason code', reason=self.reason) from None
        if reason == WriteOffReason.REVERSAL:
            raise ValidationError(message='REVERSAL is reserved for compensation', reason=reason)

        object.__setattr__(self, 'quantity', quantity)
        object.__setattr__(self, 'nomenclature_id', flt.nomenclature_id)
        object.__setattr__(self, 'container_type_id', flt.container_type_id)
        object.__setattr__(self, 'reason', reason)
        if self.target is not None:
            object.__setattr__(self, 'target', str(self.target))

    @property
    def filter(self) -> BatchFilter:
        return BatchFilter(
            nomenclature_id=self.nomenclature_id,
            container_type_id=self.container_type_id,
        )


@dataclass(frozen=True)
class PlanLine:
    """One batch contribution. ``amount`` is in the batch unit, ``covers`` in the request unit."""

    batch_id: str
    amount: Decimal
    unit: MeasurementUnit
    covers: Decimal

    @property
    def quantity(self) -> Quantity:
        return Quantity(self.amount, self.unit)


@dataclass(frozen=True)
class AllocationPlan:
    request: AllocationRequest
    lines: tuple[PlanLine, ...]
    covered: Decimal
    tolerance: Decimal = Decimal('0.000001')

    @property
    def pairs(self) -> list[tuple[str, Decimal]]:
        return [(line.batch_id, line.amount) for line in self.lines]

    @property
    def total(self) -> Quantity:
        """Covered amount in the request unit."""
        return Quantity(self.covered, self.request.quantity.unit)

    @property
    def remaining(self) -> Quantity:
        """Shortfall in the request unit (zero when satisfied)."""
        shortfall = self.request.quantity.amount - self.covered
        if shortfall <= self.tolerance:
            shortfall = Decimal('0')
        return Quantity(shortfall, self.request.quantity.unit)

    @property
    def satisfied(self) -> bool:
        return self.request.quantity.amount - self.covered <= self.tolerance


def _check_minimum(batch: ConsumableBatch, amount: Decimal, conf: LabstockSettings) -> None:
    minimum_spec = conf.MIN_DISPENSABLE.get(str(batch.unit.kind))
    if not minimum_spec:
        return
    minimum = Quantity.parse(minimum_spec)
    if convert(amount, batch.unit, minimum.unit) < minimum.amount:
        raise SubMinimumAllocation(
            batch_id=batch.id,
            amount=amount,
            unit=batch.unit.code,
            minimum=str(minimum),
        )


def allocate(request: AllocationRequest, catalog: Iterable[ConsumableBatch],
             as_of: date | datetime | None = None) -> AllocationPlan:
    """
    Plan ``request`` against ``catalog`` in FEFO order.

    A batch that fits entirely is taken whole (its exact remaining); the
    last, partial take is converted back to the batch unit, rounded to
    QUANTITY_PLACES and clamped to what the batch holds. Batches that are
    not allocatable at ``as_of`` are skipped even if the caller passes them.

    Returns an unsatisfied plan, never raises, when stock runs out.

    Raises:
        IncompatibleUnitKind / MissingConversionContext: a batch unit
            cannot be expressed in the request unit
        SubMinimumAllocation: a line is below MIN_DISPENSABLE
    """
    conf = get_labstock_settings()
    unit = request.quantity.unit
    needed = request.quantity.amount
    covered = Decimal('0')
    lines: list[PlanLine] = []

    for batch in fefo_sorted(b for b in catalog if is_allocatable(b, as_of)):
        outstanding = needed - covered
        if outstanding <= conf.ALLOCATION_TOLERANCE:
            break

        available = convert(batch.quantity_remaining, batch.unit, unit, request.context)
        if available <= outstanding:
            take, covers = batch.quantity_remaining, available
        else:
            take = convert(outstanding, unit, batch.unit, request.context)
            take = min(take.quantize(conf.quantum, rounding=ROUND_HALF_UP), batch.quantity_remaining)
            covers = outstanding
        if take <= 0:
            continue

        _check_minimum(batch, take, conf)
        lines.append(PlanLine(batch_id=batch.id, amount=take, unit=batch.unit, covers=covers))
        covered += covers

    plan = AllocationPlan(
        request=request,
        lines=tuple(lines),
        covered=covered,
        tolerance=conf.ALLOCATION_TOLERANCE,
    )
    logger.debug(
        "labstock.allocation.planned",
        extra={
            "requested": str(request.quantity),
            "lines": [(line.batch_id, str(line.amount)) for line in lines],
            "satisfied": plan.satisfied,
        },
    )
    return plan


def allocate_many(requests: Iterable[AllocationRequest],
                  load: Callable[[BatchFilter], list[ConsumableBatch]],
                  as_of: date | datetime | None = None) -> list[AllocationPlan]:
    """
    Plan several requests against one working snapshot.

    ``load`` is called once per distinct filter. Each plan's lines are
    subtracted from the snapshot before the next request is planned, so
    requests drawing on the same batch never over-commit it.
    """
    snapshots: dict[BatchFilter, list[str]] = {}
    working: dict[str, ConsumableBatch] = {}
    plans = []

    for request in requests:
        flt = request.filter
        if flt not in snapshots:
            batches = load(flt)
            snapshots[flt] = [batch.id for batch in batches]
            for batch in batches:
                working.setdefault(batch.id, batch)

        plan = allocate(request, [working[batch_id] for batch_id in snapshots[flt]], as_of)
        for line in plan.lines:
            batch = working[line.batch_id]
            working[line.batch_id] = replace(
                batch, quantity_remaining=batch.quantity_remaining - line.amount,
            )
        plans.append(plan)

    return plans

"""
Composite creation coordinator — all-or-nothing creation over a store
without multi-record transactions.

A saga in three steps:

    1. plan     every request against one fresh snapshot (no mutation)
    2. persist  entity drafts in order (culture, lot, containers...)
    3. commit   each plan through the ledger

A failure in step 2 or 3 compensates everything done so far: REVERSAL of
committed write-offs, then deletion of persisted entities in reverse
order. Each compensation step is retried COMPENSATION_RETRIES times; if
one still fails the transaction is FAILED and CompensationFailed lists
what is left for an operator.

Between steps 2 and 3 entities exist whose stock is not written off yet.
Readers may observe that window; the coordinator always closes it by
committing fully or rolling back.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable

from labstock.conf import get_labstock_settings
from labstock.enums import EntityKind, TransactionStatus
from labstock.exceptions import (
    Cancelled,
    CompensationFailed,
    InsufficientStock,
    PartialFailureRollback,
    RestoreFailed,
    ValidationError,
)
from labstock.protocols.storage import StorageBackend, WriteOffEntry
from labstock.services.allocator import AllocationPlan, AllocationRequest, allocate_many
from labstock.services.catalog import BatchCatalog
from labstock.services.ledger import CompensationStep, WriteOffLedger, run_step

logger = logging.getLogger('labstock')


@dataclass
class EntityDraft:
    """
    A primary entity to persist.

    ``links`` maps a field name to the key of an earlier draft; the
    field receives that draft's persisted id, e.g.
    ``EntityDraft('lot', EntityKind.LOT, {...}, links={'culture_id': 'culture'})``.
    """

    key: str
    kind: EntityKind
    fields: dict[str, Any] = field(default_factory=dict)
    links: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.kind = EntityKind(self.kind)


@dataclass
class CreationSpec:
    """Ordered drafts of one composite creation."""

    drafts: list[EntityDraft]

    def __post_init__(self):
        seen: set[str] = set()
        for draft in self.drafts:
            if draft.key in seen:
                raise ValidationError(message='Duplicate draft key', key=draft.key)
            for field_name, key in draft.links.items():
                if key not in seen:
                    raise ValidationError(
                        message='A draft can only link to an earlier draft',
                        key=draft.key,
                        field=field_name,
                        link=key,
                    )
            seen.add(draft.key)

    @property
    def keys(self) -> list[str]:
        return [draft.key for draft in self.drafts]


@dataclass(frozen=True)
class PersistedEntity:
    key: str
    kind: EntityKind
    id: str


@dataclass
class CreationTransaction:
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: TransactionStatus = TransactionStatus.OPEN
    entities: list[PersistedEntity] = field(default_factory=list)
    entries: list[WriteOffEntry] = field(default_factory=list)
    pending: list[CompensationStep] = field(default_factory=list)


@dataclass(frozen=True)
class CreatedResult:
    transaction: CreationTransaction
    ids: dict[str, str]
    plans: tuple[AllocationPlan, ...]

    @property
    def entries(self) -> list[WriteOffEntry]:
        return list(self.transaction.entries)

    def id_for(self, key: str) -> str:
        return self.ids[key]

    def ids_of(self, kind: EntityKind) -> list[str]:
        return [e.id for e in self.transaction.entities if e.kind == EntityKind(kind)]


def _is_set(cancel_event: threading.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


class CreationCoordinator:
    """Runs composite creations against one storage backend."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend
        self.catalog = BatchCatalog(backend)
        self.ledger = WriteOffLedger(backend)

    def plan(self, requests: Iterable[AllocationRequest],
             as_of: date | datetime | None = None) -> list[AllocationPlan]:
        """
        Plan all requests against one snapshot.

        Raises:
            InsufficientStock: listing every unsatisfied plan
        """
        plans = allocate_many(requests, lambda flt: self.catalog.available(flt, as_of), as_of)
        unsatisfied = [plan for plan in plans if not plan.satisfied]
        if unsatisfied:
            raise InsufficientStock(unsatisfied)
        return plans

    def create_with_allocations(self, spec: CreationSpec,
                                requests: Iterable[AllocationRequest],
                                cancel_event: threading.Event | None = None,
                                as_of: date | datetime | None = None) -> CreatedResult:
        """
        Persist ``spec`` and commit ``requests`` as one unit.

        Request targets that name a draft key are resolved to the id the
        draft was persisted under.

        Raises:
            ValidationError / InsufficientStock / IncompatibleUnitKind:
                before anything was written
            Cancelled: cancel_event was set before anything was written
            PartialFailureRollback: a later step failed; all undone
            CompensationFailed: a later step failed and undoing it failed too
        """
        requests = list(requests)
        transaction = CreationTransaction()

        plans = self.plan(requests, as_of)
        if _is_set(cancel_event):
            logger.info("labstock.saga.cancelled", extra={"transaction_id": transaction.id})
            raise Cancelled(transaction_id=transaction.id)

        logger.info(
            "labstock.saga.started",
            extra={
                "transaction_id": transaction.id,
                "drafts": spec.keys,
                "requests": len(requests),
            },
        )

        ids: dict[str, str] = {}
        try:
            for draft in spec.drafts:
                if _is_set(cancel_event):
                    raise Cancelled(transaction_id=transaction.id)
                fields = dict(draft.fields)
                for field_name, key in draft.links.items():
                    fields[field_name] = ids[key]
                entity_id = self.backend.create_entity(draft.kind, fields)
                ids[draft.key] = entity_id
                transaction.entities.append(PersistedEntity(draft.key, draft.kind, entity_id))

            for request, plan in zip(requests, plans):
                if _is_set(cancel_event):
                    raise Cancelled(transaction_id=transaction.id)
                target = ids.get(request.target, request.target)
                transaction.entries.extend(self.ledger.commit(plan, target, request.reason))
        except RestoreFailed as exc:
            # the commit could not give back its own lines; they join the pending steps
            transaction.pending.extend(exc.unrestored)
            self._rollback(transaction, exc.cause, exc)
        except Exception as exc:
            self._rollback(transaction, exc)

        transaction.status = TransactionStatus.COMMITTED
        logger.info(
            "labstock.saga.committed",
            extra={
                "transaction_id": transaction.id,
                "entities": len(transaction.entities),
                "entries": len(transaction.entries),
            },
        )
        return CreatedResult(transaction=transaction, ids=ids, plans=tuple(plans))

    # ── compensation ──

    def _compensation_steps(self, transaction: CreationTransaction) -> list[CompensationStep]:
        steps = []
        for entry in reversed(transaction.entries):
            steps.append(CompensationStep(
                action='reverse_writeoff',
                run=lambda entry=entry: self.ledger.reverse([entry]),
                details={'entry_id': entry.id, 'batch_id': entry.batch_id, 'amount': str(entry.amount)},
            ))
        for entity in reversed(transaction.entities):
            steps.append(CompensationStep(
                action='delete_entity',
                run=lambda entity=entity: self.backend.delete_entity(entity.kind, entity.id),
                details={'kind': entity.kind.value, 'entity_id': entity.id},
            ))
        return steps

    def _rollback(self, transaction: CreationTransaction, cause: Exception,
                  compensation_error: Exception | None = None) -> None:
        """Undo everything in ``transaction`` and raise. Never returns."""
        retries = get_labstock_settings().COMPENSATION_RETRIES
        logger.warning(
            "labstock.saga.rollback",
            extra={
                "transaction_id": transaction.id,
                "cause": repr(cause),
                "entities": len(transaction.entities),
                "entries": len(transaction.entries),
            },
        )

        for step in self._compensation_steps(transaction):
            try:
                run_step(step, retries)
            except Exception as exc:
                compensation_error = compensation_error or exc
                transaction.pending.append(step)

        if transaction.pending:
            transaction.status = TransactionStatus.FAILED
            logger.critical(
                "labstock.saga.compensation_failed",
                extra={
                    "transaction_id": transaction.id,
                    "pending": [step.describe() for step in transaction.pending],
                },
            )
            raise CompensationFailed(cause, transaction, compensation_error) from cause

        transaction.status = TransactionStatus.ROLLED_BACK
        logger.info("labstock.saga.rolled_back", extra={"transaction_id": transaction.id})
        raise PartialFailureRollback(cause, transaction) from cause

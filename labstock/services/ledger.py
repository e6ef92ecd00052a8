"""
Write-off ledger — durable decrements of consumable batches.

commit() turns an AllocationPlan into conditional batch decrements plus
append-only WriteOff entries. reverse() is the compensating action:
it restores the batch and appends a REVERSAL entry. Entries are never
updated or deleted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Callable

from django.utils import timezone

from labstock.conf import get_labstock_settings
from labstock.enums import BatchStatus, WriteOffReason
from labstock.exceptions import RestoreFailed, ValidationError
from labstock.protocols.storage import StorageBackend, WriteOffEntry
from labstock.services.allocator import AllocationPlan, PlanLine

logger = logging.getLogger('labstock')


@dataclass
class CompensationStep:
    """One compensating action, retried as a unit."""

    action: str
    run: Callable[[], Any]
    details: dict[str, Any]
    attempts: int = 0
    error: str | None = None

    def describe(self) -> dict[str, Any]:
        return {
            'action': self.action,
            **self.details,
            'attempts': self.attempts,
            'error': self.error,
        }


def run_step(step: CompensationStep, retries: int) -> None:
    """Run ``step`` up to ``retries`` times; re-raise the last failure."""
    for attempt in range(1, retries + 1):
        step.attempts = attempt
        try:
            step.run()
            step.error = None
            return
        except Exception as exc:
            step.error = repr(exc)
            logger.warning(
                "labstock.compensation.retry",
                extra={"step": step.action, "attempt": attempt, "error": step.error},
            )
            if attempt == retries:
                raise


class WriteOffLedger:
    """Ledger operations over one storage backend."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    def commit(self, plan: AllocationPlan, target_id: str | None,
               reason: WriteOffReason | str | None = None) -> list[WriteOffEntry]:
        """
        Decrement every plan line, then append one entry per line.

        Each decrement is conditional on the batch still holding the line
        amount. When one fails, the decrements already made in this call
        are restored and the error propagates (ConcurrentModification for
        a lost race). No entry is appended unless every decrement held.

        When appending an entry fails, the entries appended before it are
        reversed and the remaining lines restored. The ledger is append-only,
        so those entries stay on record next to their REVERSAL; none of them
        is active afterwards.

        Restores are retried COMPENSATION_RETRIES times. If one still fails,
        RestoreFailed carries the original error and the outstanding steps.

        Batches left at zero (within ALLOCATION_TOLERANCE) are marked
        DEPLETED. That mark is informational: an empty batch is never
        allocatable, so a failed status write is logged and does not undo
        the commit.
        """
        reason = WriteOffReason(reason or plan.request.reason)
        conf = get_labstock_settings()

        applied: list[tuple[PlanLine, Decimal]] = []
        for line in plan.lines:
            try:
                after = self.backend.decrement_batch(
                    line.batch_id, line.amount, expected_min_remaining=line.amount,
                )
            except Exception as exc:
                logger.warning(
                    "labstock.writeoff.aborted",
                    extra={"batch_id": line.batch_id, "amount": str(line.amount), "target": target_id},
                )
                self._undo(exc, [], [line for line, _ in applied])
                raise
            applied.append((line, after))

        now = timezone.now()
        entries: list[WriteOffEntry] = []
        for index, (line, after) in enumerate(applied):
            entry = WriteOffEntry(
                batch_id=line.batch_id,
                amount=line.amount,
                unit=line.unit.code,
                reason=reason,
                target_id=target_id,
                timestamp=now,
                quantity_after=after,
                metadata={
                    'requested': str(plan.request.quantity),
                    'covers': str(line.covers),
                },
            )
            try:
                entry_id = self.backend.append_ledger_entry(entry)
            except Exception as exc:
                logger.warning(
                    "labstock.writeoff.aborted",
                    extra={"batch_id": line.batch_id, "appended": len(entries), "target": target_id},
                )
                self._undo(exc, entries, [line for line, _ in applied[index:]])
                raise
            entries.append(replace(entry, id=entry_id))

        for line, after in applied:
            if after <= conf.ALLOCATION_TOLERANCE:
                self._mark_depleted(line.batch_id)

        logger.info(
            "labstock.writeoff.committed",
            extra={
                "target": target_id,
                "reason": str(reason),
                "entries": [(e.batch_id, str(e.amount), e.unit) for e in entries],
            },
        )
        return entries

    def _undo(self, cause: Exception, entries: list[WriteOffEntry], lines: list[PlanLine]) -> None:
        """
        Give back what an aborted commit took: reverse ``entries``, restore
        ``lines``. Returns normally when everything was given back, so the
        caller re-raises ``cause``.
        """
        steps = [
            CompensationStep(
                action='reverse_writeoff',
                run=lambda entry=entry: self.reverse([entry]),
                details={'entry_id': entry.id, 'batch_id': entry.batch_id, 'amount': str(entry.amount)},
            )
            for entry in reversed(entries)
        ]
        steps += [
            CompensationStep(
                action='restore_batch',
                run=lambda line=line: self.backend.increment_batch(line.batch_id, line.amount),
                details={'batch_id': line.batch_id, 'amount': str(line.amount)},
            )
            for line in lines
        ]

        retries = get_labstock_settings().COMPENSATION_RETRIES
        unrestored = []
        for step in steps:
            try:
                run_step(step, retries)
            except Exception:
                unrestored.append(step)

        if unrestored:
            logger.error(
                "labstock.writeoff.restore_failed",
                extra={"cause": repr(cause), "unrestored": [step.describe() for step in unrestored]},
            )
            raise RestoreFailed(cause, unrestored) from cause

    def _mark_depleted(self, batch_id: str) -> None:
        try:
            self.backend.set_batch_status(batch_id, BatchStatus.DEPLETED)
        except Exception as exc:
            logger.warning(
                "labstock.writeoff.status_failed",
                extra={"batch_id": batch_id, "status": str(BatchStatus.DEPLETED), "error": repr(exc)},
            )

    def reverse(self, entries: list[WriteOffEntry]) -> list[WriteOffEntry]:
        """
        Compensate entries: restore each batch, append a REVERSAL entry.

        Entries that already have a REVERSAL are not restored again, so a
        retried compensation does not restore a batch twice. A DEPLETED
        batch holding stock again is set back to AVAILABLE, on retries too.
        """
        reversals: list[WriteOffEntry] = []

        for entry in entries:
            if entry.is_reversal:
                raise ValidationError(message='A REVERSAL entry cannot be reversed', entry_id=entry.id)
            if entry.id is None:
                raise ValidationError(message='Entry was never appended', batch_id=entry.batch_id)
            if self._reversal_of(entry) is None:
                reversals.append(self._reverse_one(entry))
            self._reopen(entry.batch_id)

        return reversals

    def _reverse_one(self, entry: WriteOffEntry) -> WriteOffEntry:
        after = self.backend.increment_batch(entry.batch_id, entry.amount)
        reversal = WriteOffEntry(
            batch_id=entry.batch_id,
            amount=entry.amount,
            unit=entry.unit,
            reason=WriteOffReason.REVERSAL,
            target_id=entry.target_id,
            timestamp=timezone.now(),
            quantity_after=after,
            reverses=entry.id,
        )
        try:
            entry_id = self.backend.append_ledger_entry(reversal)
        except Exception:
            # no REVERSAL on record, so a retry will restore again
            self.backend.decrement_batch(entry.batch_id, entry.amount, expected_min_remaining=entry.amount)
            raise

        logger.info(
            "labstock.writeoff.reversed",
            extra={"entry_id": entry.id, "batch_id": entry.batch_id, "amount": str(entry.amount)},
        )
        return replace(reversal, id=entry_id)

    def _reopen(self, batch_id: str) -> None:
        batch = self.backend.get_batch(batch_id)
        if (batch.status == BatchStatus.DEPLETED
                and batch.quantity_remaining > get_labstock_settings().ALLOCATION_TOLERANCE):
            self.backend.set_batch_status(batch_id, BatchStatus.AVAILABLE)

    def _reversal_of(self, entry: WriteOffEntry) -> WriteOffEntry | None:
        for other in self.backend.list_ledger_entries(batch_id=entry.batch_id):
            if other.reverses == entry.id:
                return other
        return None

    def entries_for(self, target_id: str) -> list[WriteOffEntry]:
        """All entries attributed to a target, REVERSALs included."""
        return self.backend.list_ledger_entries(target_id=target_id)

    def active_entries(self, target_id: str) -> list[WriteOffEntry]:
        """Write-offs of a target that have not been reversed."""
        entries = self.entries_for(target_id)
        reversed_ids = {e.reverses for e in entries if e.is_reversal}
        return [e for e in entries if not e.is_reversal and e.id not in reversed_ids]

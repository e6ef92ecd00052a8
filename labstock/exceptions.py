"""
Exceptions for Labstock.

All errors are LabstockError with a structured code for programmatic handling.
Subclasses pin the code and expose the context the caller needs.
"""

from decimal import Decimal
from typing import Any


class LabstockError(Exception):
    """
    Structured exception for inventory operations.

    Usage:
        try:
            inventory.plan_allocation(request)
        except LabstockError as e:
            if e.code == 'INSUFFICIENT_STOCK':
                print(e.as_dict())

    Attributes:
        code: Error code for programmatic handling
        message: Human-readable message
        data: Additional context data
    """

    code = 'LABSTOCK_ERROR'

    _default_messages = {
        'LABSTOCK_ERROR': 'Inventory operation failed',
        'INVALID_REQUEST': 'Malformed allocation request',
        'INVALID_QUANTITY': 'Quantity must be positive',
        'UNKNOWN_UNIT': 'Unknown measurement unit',
        'INCOMPATIBLE_UNIT_KIND': 'Units of different kind cannot be converted',
        'MISSING_CONVERSION_CONTEXT': 'Conversion requires a bridging factor',
        'INSUFFICIENT_STOCK': 'Not enough stock to satisfy the request',
        'CONCURRENT_MODIFICATION': 'Batch was modified concurrently',
        'SUB_MINIMUM_ALLOCATION': 'Allocation line below minimum dispensable amount',
        'CANCELLED': 'Workflow cancelled before any change',
        'PARTIAL_FAILURE_ROLLBACK': 'Creation failed and was rolled back',
        'COMPENSATION_FAILED': 'Rollback failed, manual reconciliation required',
        'RESTORE_FAILED': 'Aborted write-off could not give back every batch',
        'NOT_FOUND': 'Record not found',
    }

    def __init__(self, code: str | None = None, message: str | None = None, **data):
        if code is not None:
            self.code = code
        self.message = message or self._default_messages.get(self.code, self.code)
        self.data = data
        super().__init__(f"[{self.code}] {self.message}")

    def as_dict(self) -> dict[str, Any]:
        """Serialize to dict (useful for APIs)."""
        return {
            'code': self.code,
            'message': self.message,
            'data': {
                k: str(v) if isinstance(v, Decimal) else v
                for k, v in self.data.items()
                if not isinstance(v, BaseException)
            }
        }


class ValidationError(LabstockError):
    """Malformed request: non-positive quantity, unknown unit, bad filter."""

    code = 'INVALID_REQUEST'


class IncompatibleUnitKind(LabstockError):
    """Conversion attempted between units of different kind without a bridge."""

    code = 'INCOMPATIBLE_UNIT_KIND'


class MissingConversionContext(IncompatibleUnitKind):
    """
    A bridge exists for the pair (e.g. MASS <-> MOLAR) but the caller
    did not supply its factor.
    """

    code = 'MISSING_CONVERSION_CONTEXT'

    @property
    def missing(self) -> str | None:
        return self.data.get('missing')


class InsufficientStock(LabstockError):
    """One or more requests cannot be satisfied by the catalog."""

    code = 'INSUFFICIENT_STOCK'

    def __init__(self, plans, message: str | None = None, **data):
        self.plans = list(plans)
        super().__init__(
            message=message,
            unsatisfied=[
                {
                    'target': plan.request.target,
                    'requested': str(plan.request.quantity),
                    'remaining': str(plan.remaining),
                }
                for plan in self.plans
            ],
            **data,
        )

    @property
    def remaining(self) -> Decimal:
        """Shortfall of the first unsatisfied plan, in its request unit."""
        if not self.plans:
            return Decimal('0')
        return self.plans[0].remaining.amount


class ConcurrentModification(LabstockError):
    """A batch no longer holds the amount the plan was built against."""

    code = 'CONCURRENT_MODIFICATION'

    @property
    def batch_id(self) -> str | None:
        return self.data.get('batch_id')


class SubMinimumAllocation(LabstockError):
    """A plan line is below the configured minimum dispensable amount."""

    code = 'SUB_MINIMUM_ALLOCATION'


class Cancelled(LabstockError):
    """Caller abandoned the workflow."""

    code = 'CANCELLED'


class EntityNotFound(LabstockError):
    """Batch or entity id unknown to the backend."""

    code = 'NOT_FOUND'


class RestoreFailed(LabstockError):
    """
    A write-off commit failed and undoing its own decrements failed too.

    Attributes:
        cause: The error that aborted the commit
        unrestored: CompensationStep items still outstanding after retries
    """

    code = 'RESTORE_FAILED'

    def __init__(self, cause: BaseException, unrestored, message: str | None = None):
        self.cause = cause
        self.unrestored = list(unrestored)
        super().__init__(
            message=message,
            cause=getattr(cause, 'code', type(cause).__name__),
            unrestored=[item.describe() for item in self.unrestored],
        )


class PartialFailureRollback(LabstockError):
    """
    A creation step failed after mutations began; everything done so far
    was compensated.

    Attributes:
        cause: The original exception
        transaction: The CreationTransaction, status ROLLED_BACK
    """

    code = 'PARTIAL_FAILURE_ROLLBACK'

    def __init__(self, cause: BaseException, transaction, message: str | None = None, **data):
        self.cause = cause
        self.transaction = transaction
        super().__init__(
            message=message,
            cause=getattr(cause, 'code', type(cause).__name__),
            transaction_id=transaction.id,
            outcome=str(transaction.status),
            **data,
        )


class CompensationFailed(PartialFailureRollback):
    """
    Rollback itself failed. The transaction is FAILED and
    ``transaction.pending`` lists what an operator must reconcile.
    """

    code = 'COMPENSATION_FAILED'

    def __init__(self, cause: BaseException, transaction, compensation_error: BaseException,
                 message: str | None = None):
        self.compensation_error = compensation_error
        super().__init__(
            cause,
            transaction,
            message=message,
            pending=[step.describe() for step in transaction.pending],
        )

# Overview: Error taxonomy shared by the ledger, fulfillment and payment services.

"""
Operation errors.

Every failure raised by a service aborts the whole unit of work; there is
no partial-success result. Callers tell the classes apart as follows:

- PreconditionError: the operation cannot start (unknown row, ineligible
  status, missing default location). Never retryable.
- ValidationError: malformed input (non-positive quantity, unknown enum).
- InvariantViolation: the operation would break a ledger/aggregate rule
  (negative stock, over-allocation, over-receipt). When it was caused by a
  concurrent writer, `retryable` is True and the caller may re-read and retry.
"""

from __future__ import annotations


class OperationError(Exception):
    """Base class for service-layer failures."""

    retryable = False

    def __init__(self, message: str, *, retryable: bool | None = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable

    def to_dict(self) -> dict:
        return {"error": str(self), "retryable": self.retryable}


class PreconditionError(OperationError):
    """Raised when an operation's preconditions are not met."""
    pass


class NotFoundError(PreconditionError):
    """Raised when a referenced row does not exist for the tenant."""
    pass


class ValidationError(OperationError):
    """Raised for malformed input values."""
    pass


class OrderStateError(PreconditionError):
    """Raised when an order's status does not allow the operation."""
    pass


class PaymentStateError(PreconditionError):
    """Raised when a payment's status does not allow the operation."""
    pass


class InvariantViolation(OperationError):
    """Raised when an operation would break a ledger or aggregate invariant."""
    pass


class OverFulfillmentError(InvariantViolation):
    """Raised when received/delivered quantity would exceed the ordered quantity."""
    pass


class AllocationError(InvariantViolation):
    """Raised when an allocation would exceed a payment amount or invoice balance."""
    pass


class InsufficientStockError(InvariantViolation):
    """Raised when a position cannot cover an outbound quantity."""

    def __init__(
        self,
        message: str,
        *,
        item_id: int | None = None,
        location_id: int | None = None,
        available: int | None = None,
        requested: int | None = None,
        retryable: bool | None = None,
    ):
        super().__init__(message, retryable=retryable)
        self.item_id = item_id
        self.location_id = location_id
        self.available = available
        self.requested = requested

    @property
    def shortfall(self) -> int | None:
        if self.available is None or self.requested is None:
            return None
        return max(self.requested - self.available, 0)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "item_id": self.item_id,
            "location_id": self.location_id,
            "available": self.available,
            "requested": self.requested,
            "shortfall": self.shortfall,
        })
        return data

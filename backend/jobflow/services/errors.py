"""Typed workflow errors.

Every error here is recoverable at the caller: the failed transition has
left the entity unchanged.  ``ConflictError`` alone means "reload and
retry the whole operation"; the rest mean the request itself is wrong for
the entity's current state.
"""

from fastapi import status

from jobflow.middleware.exceptions import JobFlowException


class WorkflowError(JobFlowException):
    """Base for workflow rule violations."""

    http_status: int = status.HTTP_409_CONFLICT
    code: str = "WORKFLOW_ERROR"

    def __init__(self, message: str):
        super().__init__(message=message, status_code=self.http_status, error_code=self.code)


# ── Access & lookup ──────────────────────────────────────────


class ForbiddenError(WorkflowError):
    http_status = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class NotFoundError(WorkflowError):
    http_status = status.HTTP_404_NOT_FOUND
    code = "RESOURCE_NOT_FOUND"

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class ConflictError(WorkflowError):
    code = "CONFLICT"


# ── State ────────────────────────────────────────────────────


class InvalidStateError(WorkflowError):
    code = "INVALID_STATE"


class InvalidTransitionError(InvalidStateError):
    code = "INVALID_TRANSITION"


class InvoiceHasNoItemsError(InvalidStateError):
    code = "INVOICE_HAS_NO_ITEMS"


class FieldLockedError(WorkflowError):
    code = "FIELD_LOCKED"


# ── Quantity ledger ──────────────────────────────────────────


class InvalidQuantityError(WorkflowError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_QUANTITY"


class QuantityExceedsRequestError(InvalidQuantityError):
    code = "QUANTITY_EXCEEDS_REQUEST"


class QuantityExceedsApprovalError(InvalidQuantityError):
    code = "QUANTITY_EXCEEDS_APPROVAL"


class QuantityExceedsDisbursedError(InvalidQuantityError):
    code = "QUANTITY_EXCEEDS_DISBURSED"


class InsufficientStockError(WorkflowError):
    code = "INSUFFICIENT_STOCK"


class ReasonRequiredError(WorkflowError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "REASON_REQUIRED"


# ── Job card ─────────────────────────────────────────────────


class JobCardClosedError(WorkflowError):
    code = "JOB_CARD_CLOSED"


class AlreadyClosedError(WorkflowError):
    code = "ALREADY_CLOSED"


class AlreadyFrozenError(WorkflowError):
    code = "ALREADY_FROZEN"


class NotFrozenError(WorkflowError):
    code = "NOT_FROZEN"


class JobCardFrozenError(WorkflowError):
    code = "JOB_CARD_FROZEN"


# ── Roster ───────────────────────────────────────────────────


class AlreadyAssignedError(WorkflowError):
    code = "ALREADY_ASSIGNED"


class NotAssignedError(WorkflowError):
    code = "NOT_ASSIGNED"


class InvalidRoleError(WorkflowError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_ROLE"


# ── Payments ─────────────────────────────────────────────────


class AmountExceedsBalanceError(WorkflowError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "AMOUNT_EXCEEDS_BALANCE"


class InvalidAmountError(WorkflowError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_AMOUNT"


class CannotCancelPaidError(WorkflowError):
    code = "CANNOT_CANCEL_PAID"

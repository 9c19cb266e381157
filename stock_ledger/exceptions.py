"""
Typed exception hierarchy for the stock ledger.

Every failure the ledger can report is a subclass of ``StockLedgerError``
with a machine-readable ``code`` class attribute and the offending
identifiers stored as attributes.  Callers catch by type, never by message.

    StockLedgerError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- ProductNotFoundError
    |   +-- BatchNotFoundError
    |   +-- JobNotFoundError
    |   +-- AllocationNotFoundError
    |
    +-- InvalidStateError
    |   +-- BatchAlreadyDecidedError
    |
    +-- NotApprovedError
    +-- AlreadyAllocatedError
    +-- AlreadyApprovedError
    +-- JobClosedError
    +-- InsufficientQuantityError
    +-- NotFullyApprovedError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

Code                      | When raised
--------------------------|------------------------------------------------
VALIDATION_ERROR          | Negative quantity/cost, missing field, bad enum
PRODUCT_NOT_FOUND         | Product id not in the catalog
BATCH_NOT_FOUND           | Batch id does not exist
JOB_NOT_FOUND             | Job id does not exist
ALLOCATION_NOT_FOUND      | No allocation for (batch, job)
INVALID_STATE             | Operation illegal for the current lifecycle state
BATCH_ALREADY_DECIDED     | Approve/reject on a batch that is not pending
NOT_APPROVED              | Allocation from an unapproved or inactive batch
ALREADY_ALLOCATED         | Batch already bound to a job / pair already issued
ALREADY_APPROVED          | Job tab category already approved
JOB_CLOSED                | Mutation against a closed job
INSUFFICIENT_QUANTITY     | Requested quantity exceeds what remains
NOT_FULLY_APPROVED        | Job close attempted with an unapproved tab
OPTIMISTIC_LOCK_CONFLICT  | Concurrent modification could not be re-evaluated
IMMUTABILITY_VIOLATION    | UPDATE/DELETE of an append-only record

None of these are fatal to the process.  Each is scoped to the single
requested operation and the ledger never retries on the caller's behalf.
"""


class StockLedgerError(Exception):
    """
    Base exception for all stock ledger errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "STOCK_LEDGER_ERROR"


class ValidationError(StockLedgerError):
    """Malformed input: negative quantity or cost, missing required field."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Lookup failures


class NotFoundError(StockLedgerError):
    """Base exception for references that do not resolve."""

    code: str = "NOT_FOUND"


class ProductNotFoundError(NotFoundError):
    """Product with given ID was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class BatchNotFoundError(NotFoundError):
    """Batch with given ID was not found."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class JobNotFoundError(NotFoundError):
    """Job with given ID was not found."""

    code: str = "JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class AllocationNotFoundError(NotFoundError):
    """No allocation exists for the batch/job pair."""

    code: str = "ALLOCATION_NOT_FOUND"

    def __init__(self, batch_id: str, job_id: str):
        self.batch_id = batch_id
        self.job_id = job_id
        super().__init__(f"No allocation of batch {batch_id} to job {job_id}")


# Lifecycle failures


class InvalidStateError(StockLedgerError):
    """Operation is illegal for the entity's current lifecycle state."""

    code: str = "INVALID_STATE"

    def __init__(self, entity_type: str, entity_id: str, state: str, operation: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.state = state
        self.operation = operation
        super().__init__(
            f"Cannot {operation} {entity_type} {entity_id} in state '{state}'"
        )


class BatchAlreadyDecidedError(InvalidStateError):
    """
    Batch has already been approved or rejected.

    Raised on a retried decision: the caller may treat it as confirmation
    that the earlier decision landed.
    """

    code: str = "BATCH_ALREADY_DECIDED"

    def __init__(self, batch_id: str, approval_status: str):
        self.approval_status = approval_status
        super().__init__("Batch", batch_id, approval_status, "decide")


class NotApprovedError(StockLedgerError):
    """Batch is not approved and active, so its stock cannot be allocated."""

    code: str = "NOT_APPROVED"

    def __init__(self, batch_id: str, approval_status: str, status: str):
        self.batch_id = batch_id
        self.approval_status = approval_status
        self.status = status
        super().__init__(
            f"Batch {batch_id} is not allocatable "
            f"(approval_status={approval_status}, status={status})"
        )


class AlreadyAllocatedError(StockLedgerError):
    """Batch is already bound to a job, or this pair was already issued."""

    code: str = "ALREADY_ALLOCATED"

    def __init__(self, batch_id: str, job_id: str):
        self.batch_id = batch_id
        self.job_id = job_id
        super().__init__(f"Batch {batch_id} is already allocated to job {job_id}")


class AlreadyApprovedError(StockLedgerError):
    """Job tab category was already approved."""

    code: str = "ALREADY_APPROVED"

    def __init__(self, job_id: str, category: str):
        self.job_id = job_id
        self.category = category
        super().__init__(f"Tab '{category}' of job {job_id} is already approved")


class JobClosedError(StockLedgerError):
    """Job is closed; no further allocation or approval is permitted."""

    code: str = "JOB_CLOSED"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is closed")


class InsufficientQuantityError(StockLedgerError):
    """Requested quantity exceeds the quantity available."""

    code: str = "INSUFFICIENT_QUANTITY"

    def __init__(self, entity_id: str, requested: int, available: int):
        self.entity_id = entity_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Requested {requested} from {entity_id} but only {available} available"
        )


class NotFullyApprovedError(StockLedgerError):
    """Job close attempted while a tab category is still unapproved."""

    code: str = "NOT_FULLY_APPROVED"

    def __init__(self, job_id: str, missing: list[str]):
        self.job_id = job_id
        self.missing = missing
        super().__init__(
            f"Job {job_id} cannot close; unapproved tabs: {', '.join(missing)}"
        )


# Concurrency


class ConcurrencyError(StockLedgerError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability


class ImmutabilityError(StockLedgerError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )

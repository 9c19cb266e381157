"""
ORM-level immutability enforcement for append-only ledger records.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | When Immutable                    | Why
------------------|-----------------------------------|-------------------------------
MovementRecord    | ALWAYS (from creation)            | Replay source of truth
Batch             | quantity/unit_cost/product always | Valuation must be auditable
Batch             | decision fields once decided      | Approver + timestamp set once
Job               | invoice/close fields once closed  | Invoice record is final
JobTabApproval    | approver/timestamp once approved  | Flag moves false->true once

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update / before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

The check inspects SQLAlchemy attribute history: a field whose committed
value was already set and is now changing is a violation.  Bulk SQL issued
outside the ORM is not covered; compensating records are the only sanctioned
way to change stock.

===============================================================================
USAGE
===============================================================================

    from stock_ledger.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect

from stock_ledger.exceptions import ImmutabilityViolationError
from stock_ledger.logging_config import get_logger

logger = get_logger("db.immutability")

# Batch fields frozen at creation
BATCH_CREATION_FIELDS = frozenset({"product_id", "quantity", "unit_cost", "received_date"})

# Batch fields written exactly once by the approval decision
BATCH_DECISION_FIELDS = frozenset({"approval_status", "approved_by_id", "decided_at"})

# Job fields written exactly once by closure
JOB_CLOSURE_FIELDS = frozenset({"invoice_number", "closed_at", "closed_by_id"})

# Tab approval fields written exactly once
TAB_APPROVAL_FIELDS = frozenset({"approved", "approved_by_id", "approved_at"})


def _changed_after_set(target, field_names: frozenset[str]) -> list[str]:
    """Return fields whose previously persisted non-null value is changing."""
    state = inspect(target)
    changed = []
    for name in field_names:
        history = state.attrs[name].history
        if not history.has_changes():
            continue
        previous = history.deleted[0] if history.deleted else None
        if previous not in (None, False, "pending"):
            changed.append(name)
    return changed


def _changed_at_all(target, field_names: frozenset[str]) -> list[str]:
    state = inspect(target)
    return [
        name for name in field_names
        if state.attrs[name].history.has_changes()
        and state.attrs[name].history.deleted
    ]


def _blocked(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_movement_update(mapper, connection, target):
    raise _blocked(
        "MovementRecord", target.id, "UPDATE",
        "Movement records are append-only and cannot be modified",
    )


def _check_movement_delete(mapper, connection, target):
    raise _blocked(
        "MovementRecord", target.id, "DELETE",
        "Movement records are append-only and cannot be deleted",
    )


def _check_batch_update(mapper, connection, target):
    frozen = _changed_at_all(target, BATCH_CREATION_FIELDS)
    if frozen:
        raise _blocked(
            "Batch", target.id, "UPDATE",
            f"Fields fixed at creation cannot change: {sorted(frozen)}",
        )
    redecided = _changed_after_set(target, BATCH_DECISION_FIELDS)
    if redecided:
        raise _blocked(
            "Batch", target.id, "UPDATE",
            f"Approval decision is final: {sorted(redecided)}",
        )


def _check_batch_delete(mapper, connection, target):
    raise _blocked(
        "Batch", target.id, "DELETE",
        "Batches are never deleted; deactivate instead",
    )


def _check_job_update(mapper, connection, target):
    changed = _changed_after_set(target, JOB_CLOSURE_FIELDS)
    if changed:
        raise _blocked(
            "Job", target.id, "UPDATE",
            f"Closed job invoice record cannot change: {sorted(changed)}",
        )


def _check_tab_approval_update(mapper, connection, target):
    changed = _changed_after_set(target, TAB_APPROVAL_FIELDS)
    if changed:
        raise _blocked(
            "JobTabApproval", target.id, "UPDATE",
            f"Tab approval cannot be reverted or re-stamped: {sorted(changed)}",
        )


def _check_tab_approval_delete(mapper, connection, target):
    raise _blocked(
        "JobTabApproval", target.id, "DELETE",
        "Tab approvals cannot be deleted",
    )


def _listeners():
    from stock_ledger.models.batch import Batch
    from stock_ledger.models.job import Job, JobTabApproval
    from stock_ledger.models.movement import MovementRecord

    return [
        (MovementRecord, "before_update", _check_movement_update),
        (MovementRecord, "before_delete", _check_movement_delete),
        (Batch, "before_update", _check_batch_update),
        (Batch, "before_delete", _check_batch_delete),
        (Job, "before_update", _check_job_update),
        (JobTabApproval, "before_update", _check_tab_approval_update),
        (JobTabApproval, "before_delete", _check_tab_approval_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call after the models are importable and before any writes.  Calling
    twice is harmless.
    """
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that deliberately violate the rules.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)

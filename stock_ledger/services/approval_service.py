"""
stock_ledger.services.approval_service -- batch approval decisions.

Responsibility:
    The single write path that moves a batch out of ``pending``.  An
    approval makes the batch's stock count: in one transaction the batch is
    stamped approved and a ``batch_receipt`` movement is appended.  A
    rejection stamps the batch and writes nothing to the log.

Architecture position:
    Ledger > Services.  Transition legality comes from the pure table in
    domain/lifecycle.py.

Invariants enforced:
    - pending -> approved | rejected, once.  Any other starting state
      raises BatchAlreadyDecidedError, so a retried approval never
      double-counts.
    - The receipt movement carries the batch quantity and unit cost, uses
      the batch id as source reference and the received date as effective
      date.  The movement log's dedup key makes the append idempotent even
      if two deciders race past the status check.
    - Approver id and decision timestamp are written exactly once.

Failure modes:
    - BatchNotFoundError for an unknown batch.
    - BatchAlreadyDecidedError when the batch is approved or rejected.
    - InvalidStateError when the batch was deactivated before a decision.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from stock_ledger.domain.clock import Clock
from stock_ledger.domain.lifecycle import (
    TERMINAL_APPROVAL_STATUSES,
    ApprovalStatus,
    BatchStatus,
    Decision,
    MovementType,
    can_transition,
)
from stock_ledger.domain.values import BatchInfo
from stock_ledger.exceptions import BatchAlreadyDecidedError, InvalidStateError
from stock_ledger.logging_config import get_logger
from stock_ledger.services.base import BaseService
from stock_ledger.services.movement_log import MovementLog

logger = get_logger("services.approval")


def receipt_source_ref(batch_id: UUID) -> str:
    return str(batch_id)


class ApprovalService(BaseService):
    """Approves or rejects pending batches."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        movement_log: MovementLog | None = None,
    ):
        super().__init__(session, clock)
        self._movements = movement_log or MovementLog(session, self.clock)

    def decide(
        self,
        batch_id: UUID,
        decision: Decision | str,
        approver_id: UUID,
        reason: str | None = None,
    ) -> BatchInfo:
        """
        Record the approval decision for a pending batch.

        Args:
            batch_id: Batch to decide.
            decision: ``approve`` or ``reject``.
            approver_id: Identity resolved by the caller's role lookup.
            reason: Optional note kept on rejection.

        Returns:
            The batch as decided.
        """
        decision = Decision.parse(decision)
        batch = self._load_batch(batch_id, lock=True)
        current = ApprovalStatus(batch.approval_status)
        target = decision.target_status

        if current in TERMINAL_APPROVAL_STATUSES or not can_transition(current, target):
            logger.warning(
                "batch_decision_rejected_already_decided",
                extra={
                    "batch_id": str(batch_id),
                    "approval_status": current.value,
                    "decision": decision.value,
                },
            )
            raise BatchAlreadyDecidedError(str(batch_id), current.value)
        if batch.status == BatchStatus.INACTIVE.value:
            raise InvalidStateError("Batch", str(batch_id), batch.status, "decide")

        now = self.clock.now()
        batch.approval_status = target.value
        batch.approved_by_id = approver_id
        batch.decided_at = now
        batch.updated_by_id = approver_id
        if target is ApprovalStatus.REJECTED:
            batch.rejection_reason = reason
        self.session.flush()

        if target is ApprovalStatus.APPROVED:
            result = self._movements.append(
                product_id=batch.product_id,
                event_type=MovementType.BATCH_RECEIPT,
                quantity_delta=batch.quantity,
                unit_cost=batch.unit_cost,
                effective_date=batch.received_date,
                source_ref=receipt_source_ref(batch.id),
                actor_id=approver_id,
                batch_id=batch.id,
                notes=f"Receipt of batch {batch.batch_number}",
            )
            logger.info(
                "batch_approved",
                extra={
                    "batch_id": str(batch.id),
                    "product_id": str(batch.product_id),
                    "quantity": batch.quantity,
                    "unit_cost": str(batch.unit_cost),
                    "movement_id": str(result.movement.id),
                    "movement_created": result.created,
                },
            )
        else:
            logger.info(
                "batch_rejected",
                extra={
                    "batch_id": str(batch.id),
                    "product_id": str(batch.product_id),
                    "reason": reason,
                },
            )

        return BatchInfo.from_model(batch)

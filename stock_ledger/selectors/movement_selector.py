"""
Module: stock_ledger.selectors.movement_selector
Responsibility: Reads of the movement log in replay order.

Replay order is total: effective_date, then created_at, then record id.
Two movements on the same day therefore always replay the same way, which
is what makes an as-of query reproducible.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import Select, func, select

from stock_ledger.domain.lifecycle import MovementType
from stock_ledger.domain.values import MovementInfo, MovementLine
from stock_ledger.models.movement import MovementRecord
from stock_ledger.selectors.base import BaseSelector


def replay_order(stmt: Select) -> Select:
    return stmt.order_by(
        MovementRecord.effective_date,
        MovementRecord.created_at,
        MovementRecord.id,
    )


class MovementSelector(BaseSelector):
    """Movement log queries."""

    def movements(
        self,
        product_id: UUID,
        as_of: date | None = None,
        since: date | None = None,
        include_opening: bool = True,
    ) -> list[MovementInfo]:
        """
        Movements of a product in replay order.

        Args:
            as_of: Only movements effective on or before this date.
            since: Only movements effective on or after this date.
            include_opening: Include the opening balance anchor record.
        """
        self._product(product_id)
        stmt = select(MovementRecord).where(MovementRecord.product_id == product_id)
        if as_of is not None:
            stmt = stmt.where(MovementRecord.effective_date <= as_of)
        if since is not None:
            stmt = stmt.where(MovementRecord.effective_date >= since)
        if not include_opening:
            stmt = stmt.where(
                MovementRecord.event_type != MovementType.OPENING_BALANCE.value
            )
        return [MovementInfo.from_model(m) for m in self.session.scalars(replay_order(stmt))]

    def history(self, product_id: UUID, as_of: date | None = None) -> list[MovementLine]:
        """
        Movement history with the running on-hand balance.

        The balance starts from the product's opening quantity; the opening
        anchor record is listed with that balance and adds nothing to it.
        """
        product = self._product(product_id)
        balance = product.opening_quantity
        lines = []
        for movement in self.movements(product_id, as_of=as_of):
            if movement.event_type is not MovementType.OPENING_BALANCE:
                balance += movement.quantity_delta
            lines.append(MovementLine(movement=movement, balance_after=balance))
        return lines

    def for_batch(self, batch_id: UUID) -> list[MovementInfo]:
        stmt = select(MovementRecord).where(MovementRecord.batch_id == batch_id)
        return [MovementInfo.from_model(m) for m in self.session.scalars(replay_order(stmt))]

    def for_source(self, product_id: UUID, source_ref: str) -> list[MovementInfo]:
        stmt = select(MovementRecord).where(
            MovementRecord.product_id == product_id,
            MovementRecord.source_ref == source_ref,
        )
        return [MovementInfo.from_model(m) for m in self.session.scalars(replay_order(stmt))]

    def count(self, product_id: UUID | None = None, event_type: MovementType | None = None) -> int:
        stmt = select(func.count(MovementRecord.id))
        if product_id is not None:
            stmt = stmt.where(MovementRecord.product_id == product_id)
        if event_type is not None:
            stmt = stmt.where(MovementRecord.event_type == MovementType(event_type).value)
        return self.session.execute(stmt).scalar_one()

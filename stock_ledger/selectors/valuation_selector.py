"""
Module: stock_ledger.selectors.valuation_selector
Responsibility: The only code path that computes stock quantities and
    values.  Current figures, as-of-date figures and the valuation reports
    are all derived here from the opening balance, the movement log and
    batch state.

Valuation method: specific identification by batch.  Each batch keeps its
own unit cost until it is fully issued; there is no blended average across
batches.  Manual adjustments carry the unit cost they were recorded at.

Invariants enforced:
    - Replay:      opening_qty + sum(delta) over movements
    - Batch state: opening_qty + sum(remaining of approved batches)
                   + sum(delta of manual adjustments not drawn from a batch)
      The two agree at all times; ``verify_consistency`` checks it.
    - Value:       opening_qty * opening_cost + sum(delta * unit_cost) by
      replay, or opening value + sum(remaining * batch cost) + manual
      adjustment value from batch state.  Both agree.
    - As-of figures are computed only by replay, never from batch state,
      because allocation overwrites batch rows while movements are
      immutable.
    - The opening_balance anchor record is skipped by replay; the opening
      term comes from the product row and is counted once.
    - Pending and rejected batches never count toward stock or value.
    - Approved batches hold at most the on-hand stock: opening stock and
      unbatched adjustments form a separate pool that write-offs drain
      unless they name a batch.

Aggregation is done in Python with Decimal so that no database rounds a
cost through a float sum.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from stock_ledger.db.types import round_money
from stock_ledger.domain.lifecycle import ApprovalStatus, BatchStatus, MovementType
from stock_ledger.domain.values import (
    BatchBreakdownRow,
    ConsistencyReport,
    QuantitySummary,
    ReorderRow,
    ValuationRow,
)
from stock_ledger.logging_config import get_logger
from stock_ledger.models.batch import Batch
from stock_ledger.models.movement import MovementRecord
from stock_ledger.models.product import Product
from stock_ledger.selectors.base import BaseSelector
from stock_ledger.selectors.movement_selector import replay_order

logger = get_logger("selectors.valuation")

_MANUAL_ADJUSTMENTS = (
    MovementType.ADJUSTMENT_IN.value,
    MovementType.ADJUSTMENT_OUT.value,
)

_STOCK_STATUSES = (BatchStatus.ACTIVE.value, BatchStatus.CONSUMED.value)


def _opening_value(product: Product) -> Decimal:
    return Decimal(product.opening_unit_cost) * product.opening_quantity


class ValuationSelector(BaseSelector):
    """Quantity and value of stock, current and historical."""

    # ------------------------------------------------------------------
    # Row sources
    # ------------------------------------------------------------------

    def _replay_rows(self, product_id: UUID, as_of: date | None = None):
        stmt = select(
            MovementRecord.quantity_delta,
            MovementRecord.unit_cost,
        ).where(
            MovementRecord.product_id == product_id,
            MovementRecord.event_type != MovementType.OPENING_BALANCE.value,
        )
        if as_of is not None:
            stmt = stmt.where(MovementRecord.effective_date <= as_of)
        return self.session.execute(replay_order(stmt)).all()

    def _stock_batches(self, product_id: UUID) -> list[Batch]:
        return list(
            self.session.scalars(
                select(Batch).where(
                    Batch.product_id == product_id,
                    Batch.approval_status == ApprovalStatus.APPROVED.value,
                    Batch.status.in_(_STOCK_STATUSES),
                )
            )
        )

    def _manual_adjustment_rows(self, product_id: UUID):
        return self.session.execute(
            select(MovementRecord.quantity_delta, MovementRecord.unit_cost).where(
                MovementRecord.product_id == product_id,
                MovementRecord.batch_id.is_(None),
                MovementRecord.event_type.in_(_MANUAL_ADJUSTMENTS),
            )
        ).all()

    # ------------------------------------------------------------------
    # Quantity
    # ------------------------------------------------------------------

    def current_quantity(self, product_id: UUID) -> int:
        """On-hand quantity by movement replay.  The audit formulation."""
        product = self._product(product_id)
        return product.opening_quantity + sum(
            delta for delta, _ in self._replay_rows(product_id)
        )

    def current_quantity_from_batches(self, product_id: UUID) -> int:
        """On-hand quantity from current batch state."""
        product = self._product(product_id)
        batches = sum(b.remaining_quantity for b in self._stock_batches(product_id))
        manual = sum(delta for delta, _ in self._manual_adjustment_rows(product_id))
        return product.opening_quantity + batches + manual

    def unbatched_quantity(self, product_id: UUID) -> int:
        """Opening stock plus manual adjustments not drawn from a batch."""
        product = self._product(product_id)
        return product.opening_quantity + sum(
            delta for delta, _ in self._manual_adjustment_rows(product_id)
        )

    def unbatched_unit_cost(self, product_id: UUID) -> Decimal:
        """Average cost of the unbatched stock; zero when there is none."""
        product = self._product(product_id)
        quantity = product.opening_quantity
        value = _opening_value(product)
        for delta, unit_cost in self._manual_adjustment_rows(product_id):
            quantity += delta
            value += Decimal(unit_cost) * delta
        if quantity <= 0:
            return Decimal("0")
        return value / quantity

    def quantity_summary(self, product_id: UUID) -> QuantitySummary:
        """
        Approved, pending and total quantity.

        ``approved`` is what approved batches still hold, ``pending`` what
        awaits a decision, ``total`` the usable stock including the
        opening balance.
        """
        self._product(product_id)
        approved = sum(b.remaining_quantity for b in self._stock_batches(product_id))
        pending = sum(
            self.session.scalars(
                select(Batch.quantity).where(
                    Batch.product_id == product_id,
                    Batch.approval_status == ApprovalStatus.PENDING.value,
                    Batch.status == BatchStatus.ACTIVE.value,
                )
            )
        )
        return QuantitySummary(
            product_id=product_id,
            approved=approved,
            pending=pending,
            total=self.current_quantity(product_id),
        )

    def as_of_quantity(self, product_id: UUID, as_of: date) -> int:
        """Opening quantity plus every movement effective on or before ``as_of``."""
        product = self._product(product_id)
        return product.opening_quantity + sum(
            delta for delta, _ in self._replay_rows(product_id, as_of)
        )

    # ------------------------------------------------------------------
    # Value
    # ------------------------------------------------------------------

    def current_value(self, product_id: UUID) -> Decimal:
        """
        Stock value by specific identification, from batch state.

        opening_qty * opening_cost + sum(remaining * unit_cost) over
        approved batches, plus manual adjustments at their recorded cost.
        """
        product = self._product(product_id)
        value = _opening_value(product)
        for batch in self._stock_batches(product_id):
            value += Decimal(batch.unit_cost) * batch.remaining_quantity
        for delta, unit_cost in self._manual_adjustment_rows(product_id):
            value += Decimal(unit_cost) * delta
        return round_money(value)

    def replay_value(self, product_id: UUID, as_of: date | None = None) -> Decimal:
        product = self._product(product_id)
        value = _opening_value(product)
        for delta, unit_cost in self._replay_rows(product_id, as_of):
            value += Decimal(unit_cost) * delta
        return round_money(value)

    def as_of_value(self, product_id: UUID, as_of: date) -> Decimal:
        """Stock value as of a date, by replay."""
        return self.replay_value(product_id, as_of)

    def average_unit_cost(self, product_id: UUID) -> Decimal:
        """Current value divided by current quantity; zero when out of stock."""
        quantity = self.current_quantity(product_id)
        if quantity <= 0:
            return Decimal("0")
        return self.replay_value(product_id) / quantity

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def verify_consistency(self, product_id: UUID) -> ConsistencyReport:
        report = ConsistencyReport(
            product_id=product_id,
            replay_quantity=self.current_quantity(product_id),
            batch_quantity=self.current_quantity_from_batches(product_id),
            replay_value=self.replay_value(product_id),
            batch_value=self.current_value(product_id),
        )
        if not report.is_consistent:
            logger.error(
                "valuation_inconsistency_detected",
                extra={
                    "product_id": str(product_id),
                    "replay_quantity": report.replay_quantity,
                    "batch_quantity": report.batch_quantity,
                    "replay_value": report.replay_value,
                    "batch_value": report.batch_value,
                },
            )
        return report

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def stock_valuation(
        self, as_of: date | None = None, include_zero: bool = False,
    ) -> list[ValuationRow]:
        """Quantity and value of every active product as of a date."""
        as_of = as_of or self.clock.today()
        products = self.session.scalars(
            select(Product)
            .where(Product.is_active.is_(True))
            .order_by(Product.part_number)
        )
        rows = []
        for product in products:
            quantity = self.as_of_quantity(product.id, as_of)
            if quantity == 0 and not include_zero:
                continue
            rows.append(
                ValuationRow(
                    product_id=product.id,
                    part_number=product.part_number,
                    description=product.description,
                    as_of=as_of,
                    quantity=quantity,
                    value=self.as_of_value(product.id, as_of),
                )
            )
        return rows

    def total_stock_value(self, as_of: date | None = None) -> Decimal:
        return round_money(sum((r.value for r in self.stock_valuation(as_of)), Decimal("0")))

    def batch_breakdown(
        self,
        product_id: UUID | None = None,
        as_of: date | None = None,
    ) -> list[BatchBreakdownRow]:
        """
        On-hand quantity and value of each approved batch as of a date.

        Built from the batch's own movements (receipt, issues, releases), so
        a batch that has since been issued still shows what it held then.
        """
        as_of = as_of or self.clock.today()
        stmt = (
            select(MovementRecord.batch_id, MovementRecord.quantity_delta)
            .where(
                MovementRecord.batch_id.is_not(None),
                MovementRecord.effective_date <= as_of,
            )
        )
        if product_id is not None:
            self._product(product_id)
            stmt = stmt.where(MovementRecord.product_id == product_id)

        on_hand: dict[UUID, int] = defaultdict(int)
        for batch_id, delta in self.session.execute(stmt):
            on_hand[batch_id] += delta

        held = [batch_id for batch_id, qty in on_hand.items() if qty > 0]
        if not held:
            return []

        batches = self.session.execute(
            select(Batch, Product.part_number)
            .join(Product, Product.id == Batch.product_id)
            .where(Batch.id.in_(held))
            .order_by(Product.part_number, Batch.received_date, Batch.created_at, Batch.id)
        ).all()
        return [
            BatchBreakdownRow(
                batch_id=batch.id,
                product_id=batch.product_id,
                part_number=part_number,
                batch_number=batch.batch_number,
                received_date=batch.received_date,
                unit_cost=Decimal(batch.unit_cost),
                on_hand=on_hand[batch.id],
                value=round_money(Decimal(batch.unit_cost) * on_hand[batch.id]),
            )
            for batch, part_number in batches
        ]

    def reorder_candidates(self) -> list[ReorderRow]:
        """Active products whose stock has fallen below their reorder point."""
        products = self.session.scalars(
            select(Product)
            .where(Product.is_active.is_(True), Product.reorder_point > 0)
            .order_by(Product.part_number)
        )
        rows = []
        for product in products:
            quantity = self.current_quantity(product.id)
            if quantity >= product.reorder_point:
                continue
            shortage = product.reorder_point - quantity
            rows.append(
                ReorderRow(
                    product_id=product.id,
                    part_number=product.part_number,
                    quantity=quantity,
                    reorder_point=product.reorder_point,
                    minimum_stock=product.minimum_stock,
                    shortage=shortage,
                    suggested_order=max(product.reorder_quantity, shortage),
                    below_minimum=quantity < product.minimum_stock,
                )
            )
        return rows

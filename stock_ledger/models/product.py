"""
Module: stock_ledger.models.product
Responsibility: ORM persistence for part types and their opening balance.
Architecture position: Ledger > Models.  May import from db/ only.

Invariants enforced:
    - part_number is unique.
    - opening_quantity >= 0 and opening_unit_cost >= 0 (check constraints).
    - Products are never deleted while batches or movements reference them
      (foreign keys from batches and movement_records).

Audit relevance:
    The opening balance is the starting term of every valuation.  Its
    effect on stock is also anchored by an ``opening_balance`` movement
    written when the product is registered.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Date, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_ledger.db.base import TrackedBase


class Product(TrackedBase):
    """A part type held in stock."""

    __tablename__ = "products"

    __table_args__ = (
        CheckConstraint("opening_quantity >= 0", name="ck_products_opening_qty"),
        CheckConstraint("opening_unit_cost >= 0", name="ck_products_opening_cost"),
        CheckConstraint("minimum_stock >= 0", name="ck_products_minimum_stock"),
        CheckConstraint("reorder_point >= 0", name="ck_products_reorder_point"),
        CheckConstraint("reorder_quantity >= 0", name="ck_products_reorder_qty"),
    )

    part_number: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    unit_of_measure: Mapped[str] = mapped_column(String(20), nullable=False, default="EA")

    minimum_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reorder_point: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reorder_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Opening balance
    opening_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    opening_unit_cost: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )
    opening_date: Mapped[date] = mapped_column(Date, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Product {self.part_number}: opening {self.opening_quantity} @ {self.opening_unit_cost}>"

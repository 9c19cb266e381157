"""
ProductCatalog -- minimal write path for part types.

The catalog proper is an external collaborator; this service registers a
product and anchors its opening balance in the movement log so the ledger
can be exercised end to end.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_ledger.domain.clock import Clock
from stock_ledger.domain.lifecycle import MovementType
from stock_ledger.domain.values import ProductInfo
from stock_ledger.exceptions import ValidationError
from stock_ledger.logging_config import get_logger
from stock_ledger.models.product import Product
from stock_ledger.services.base import BaseService
from stock_ledger.services.movement_log import MovementLog

logger = get_logger("services.product_catalog")


def opening_source_ref(product_id: UUID) -> str:
    return f"opening:{product_id}"


class ProductCatalog(BaseService):
    """Registers products and their opening balance."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        movement_log: MovementLog | None = None,
    ):
        super().__init__(session, clock)
        self._movements = movement_log or MovementLog(session, self.clock)

    def register(
        self,
        part_number: str,
        actor_id: UUID,
        opening_quantity: int = 0,
        opening_unit_cost: Decimal | int | str = Decimal("0"),
        opening_date: date | None = None,
        description: str | None = None,
        unit_of_measure: str = "EA",
        minimum_stock: int = 0,
        reorder_point: int = 0,
        reorder_quantity: int = 0,
    ) -> ProductInfo:
        """
        Register a product.

        When the opening quantity is positive an ``opening_balance``
        movement is written as the audit anchor of the starting stock.

        Raises:
            ValidationError: Empty part number, a negative opening balance
                or stock level, or a part number already registered.
        """
        part_number = (part_number or "").strip()
        if not part_number:
            raise ValidationError("part_number", "is required")
        cost = self._parse_cost(opening_unit_cost, "opening_unit_cost")
        for field, value in (
            ("opening_quantity", opening_quantity),
            ("opening_unit_cost", cost),
            ("minimum_stock", minimum_stock),
            ("reorder_point", reorder_point),
            ("reorder_quantity", reorder_quantity),
        ):
            if value < 0:
                raise ValidationError(field, "cannot be negative")

        existing = self.session.execute(
            select(Product.id).where(Product.part_number == part_number)
        ).scalar_one_or_none()
        if existing is not None:
            raise ValidationError("part_number", f"'{part_number}' is already registered")

        product = Product(
            part_number=part_number,
            description=description,
            unit_of_measure=unit_of_measure,
            minimum_stock=minimum_stock,
            reorder_point=reorder_point,
            reorder_quantity=reorder_quantity,
            opening_quantity=opening_quantity,
            opening_unit_cost=cost,
            opening_date=opening_date or self.clock.today(),
            created_at=self.clock.now(),
            updated_at=self.clock.now(),
            created_by_id=actor_id,
        )
        try:
            with self.session.begin_nested():
                self.session.add(product)
        except IntegrityError:
            raise ValidationError(
                "part_number", f"'{part_number}' is already registered"
            ) from None

        if opening_quantity > 0:
            self._movements.append(
                product_id=product.id,
                event_type=MovementType.OPENING_BALANCE,
                quantity_delta=opening_quantity,
                unit_cost=cost,
                effective_date=product.opening_date,
                source_ref=opening_source_ref(product.id),
                actor_id=actor_id,
                notes="Opening balance",
            )

        logger.info(
            "product_registered",
            extra={
                "product_id": str(product.id),
                "part_number": part_number,
                "opening_quantity": opening_quantity,
                "opening_unit_cost": str(cost),
            },
        )
        return ProductInfo.from_model(product)

    def get(self, product_id: UUID) -> ProductInfo:
        return ProductInfo.from_model(self._load_product(product_id))

    def list_products(self, active_only: bool = True) -> list[ProductInfo]:
        stmt = select(Product).order_by(Product.part_number)
        if active_only:
            stmt = stmt.where(Product.is_active.is_(True))
        return [ProductInfo.from_model(p) for p in self.session.scalars(stmt)]

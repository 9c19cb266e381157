"""Tests for ProductCatalog -- registration and the opening balance anchor."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from stock_ledger.domain.lifecycle import MovementType
from stock_ledger.exceptions import ProductNotFoundError, ValidationError
from stock_ledger.services.product_catalog import opening_source_ref


class TestRegister:
    def test_opening_balance_anchored(self, ledger, make_product):
        product = make_product(opening_quantity=10, opening_unit_cost="5.00")

        [anchor] = ledger.movements.movements(product.id)
        assert anchor.event_type is MovementType.OPENING_BALANCE
        assert anchor.quantity_delta == 10
        assert anchor.unit_cost == Decimal("5.00")
        assert anchor.effective_date == date(2024, 1, 1)
        assert anchor.source_ref == opening_source_ref(product.id)

    def test_opening_counted_once(self, ledger, make_product):
        product = make_product(opening_quantity=10, opening_unit_cost="5.00")

        assert ledger.get_quantity(product.id).total == 10
        assert ledger.get_value(product.id) == Decimal("50.00")
        assert ledger.get_as_of_quantity(product.id, date(2024, 6, 1)) == 10

    def test_no_anchor_without_opening_stock(self, ledger, make_product):
        product = make_product()
        assert ledger.movements.movements(product.id) == []
        assert ledger.get_quantity(product.id).total == 0

    def test_attributes_kept(self, ledger, make_product):
        product = make_product(
            part_number="PN-1001",
            description="Hydraulic filter",
            unit_of_measure="BOX",
            reorder_point=5,
            reorder_quantity=20,
        )
        fetched = ledger.get_product(product.id)
        assert fetched == product
        assert fetched.unit_of_measure == "BOX"

    def test_duplicate_part_number(self, ledger, make_product, actor_id):
        make_product(part_number="PN-1001")
        with pytest.raises(ValidationError) as exc_info:
            ledger.register_product("PN-1001", actor_id)
        assert exc_info.value.field == "part_number"

    @pytest.mark.parametrize("field", ["opening_quantity", "reorder_point"])
    def test_negative_values_rejected(self, ledger, actor_id, field):
        with pytest.raises(ValidationError) as exc_info:
            ledger.register_product("PN-X", actor_id, **{field: -1})
        assert exc_info.value.field == field

    def test_negative_opening_cost_rejected(self, ledger, actor_id):
        with pytest.raises(ValidationError):
            ledger.register_product("PN-X", actor_id, opening_unit_cost=Decimal("-1"))

    def test_listing_sorted_by_part_number(self, ledger, make_product):
        make_product(part_number="PN-B")
        make_product(part_number="PN-A")
        assert [p.part_number for p in ledger.list_products()] == ["PN-A", "PN-B"]

    def test_unknown_product(self, ledger):
        with pytest.raises(ProductNotFoundError):
            ledger.get_product(uuid4())

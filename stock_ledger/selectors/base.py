"""
Module: stock_ledger.selectors.base
Responsibility: Base class for read-only query selectors.
Architecture position: Ledger > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - Selectors return frozen values from domain/values.py, never ORM rows.
    - There are no stored balances.  Every quantity and value is computed
      from movement records, batches and the product's opening balance.
"""

from abc import ABC
from uuid import UUID

from sqlalchemy.orm import Session

from stock_ledger.domain.clock import Clock, SystemClock
from stock_ledger.exceptions import ProductNotFoundError
from stock_ledger.models.product import Product


class BaseSelector(ABC):
    """
    Abstract base class for selectors.

    Contract:
        Accepts a Session from the caller and performs read-only queries
        inside the caller's transaction.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def _product(self, product_id: UUID) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return product

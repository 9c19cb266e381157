"""Read-only query selectors."""

from stock_ledger.selectors.base import BaseSelector
from stock_ledger.selectors.batch_selector import BatchSelector
from stock_ledger.selectors.movement_selector import MovementSelector
from stock_ledger.selectors.valuation_selector import ValuationSelector

__all__ = [
    "BaseSelector",
    "BatchSelector",
    "MovementSelector",
    "ValuationSelector",
]

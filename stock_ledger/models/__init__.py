"""ORM models for the stock ledger."""

from stock_ledger.models.allocation import Allocation
from stock_ledger.models.batch import Batch
from stock_ledger.models.job import Job, JobTabApproval
from stock_ledger.models.movement import MovementRecord
from stock_ledger.models.product import Product

__all__ = [
    "Allocation",
    "Batch",
    "Job",
    "JobTabApproval",
    "MovementRecord",
    "Product",
]

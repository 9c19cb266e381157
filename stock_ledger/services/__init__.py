"""Ledger write services and the InventoryLedger facade."""

from stock_ledger.services.adjustment_service import AdjustmentDirection, AdjustmentService
from stock_ledger.services.allocation_service import AllocationService
from stock_ledger.services.approval_service import ApprovalService
from stock_ledger.services.base import BaseService
from stock_ledger.services.batch_registry import BatchRegistry
from stock_ledger.services.inventory_ledger import InventoryLedger
from stock_ledger.services.job_tab_service import JobTabService
from stock_ledger.services.movement_log import AppendResult, MovementLog
from stock_ledger.services.product_catalog import ProductCatalog

__all__ = [
    "AdjustmentDirection",
    "AdjustmentService",
    "AllocationService",
    "AppendResult",
    "ApprovalService",
    "BaseService",
    "BatchRegistry",
    "InventoryLedger",
    "JobTabService",
    "MovementLog",
    "ProductCatalog",
]

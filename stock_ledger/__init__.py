"""
Stock Ledger - inventory batch approval and valuation for parts stores.

An append-only stock ledger with:
- One-way batch approval (pending -> approved | rejected)
- Idempotent movement records (unique per product/source/event type)
- Job allocation with compensating release records
- Specific-identification valuation replayable as of any date
- Job tab approval gating job closure
"""

__version__ = "0.1.0"

"""
Module: stock_ledger.db.types
Responsibility: Money precision constants and the sanctioned money
    rounding helper.  Every service and selector uses these definitions so
    costs are stored and reported with identical precision.

CRITICAL: No floats anywhere in the ledger.  Costs are Decimal, quantities
are integers.
"""

from decimal import Decimal, ROUND_HALF_UP

MONEY_DECIMAL_PLACES = 9
REPORT_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def to_money(value: Decimal | int | str) -> Decimal:
    """Coerce to Decimal without going through float."""
    if isinstance(value, float):
        raise TypeError("float is not accepted for monetary values")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def round_money(
    value: Decimal,
    decimal_places: int = REPORT_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    The only sanctioned rounding function for reported values.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)

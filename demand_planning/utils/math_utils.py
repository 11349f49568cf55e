# demand_planning/utils/math_utils.py
import math

from demand_planning.exceptions import CalculationError

def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward positive infinity.

    Unit figures are shared with dashboards that round this way, so
    2.5 -> 3 and -2.5 -> -2 (banker's rounding would give 2 and -2).

    Args:
        value: Value to round

    Returns:
        Rounded integer
    """
    if value is None:
        return 0

    if math.isinf(value) or math.isnan(value):
        raise CalculationError(f"Cannot round non-finite value: {value}")

    return int(math.floor(value + 0.5))

def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Divide, returning a default when the denominator is zero.

    Args:
        numerator: Numerator
        denominator: Denominator
        default: Value returned when denominator is zero

    Returns:
        Quotient or default
    """
    if not denominator:
        return default

    return numerator / denominator

def percentage(part: float, whole: float) -> float:
    """Share of part in whole as a percentage (0 when whole is 0)."""
    return safe_divide(part * 100.0, whole)

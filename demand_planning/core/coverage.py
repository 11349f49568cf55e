# demand_planning/core/coverage.py
from typing import Iterable, Tuple, Union

import numpy as np

from demand_planning.core.types import INFINITE_COVER, CoverageAssessment
from demand_planning.exceptions import CalculationError
from demand_planning.models import StockStatus
from demand_planning.utils.math_utils import round_half_up

DEFAULT_TARGET_DAYS = 30

# Cover / target ratio bounds
CRITICAL_RATIO = 0.5
UNDERSTOCK_RATIO = 1.0
BALANCED_RATIO = 2.0

# Most urgent first
STATUS_ORDER = (
    StockStatus.CRITICAL,
    StockStatus.UNDERSTOCK,
    StockStatus.BALANCED,
    StockStatus.OVERSTOCK
)


def days_of_cover(stock: float, daily_demand: float) -> float:
    """Calculate how many days stock lasts at a daily demand.

    Args:
        stock: On-hand units
        daily_demand: Units consumed per day

    Returns:
        Days of cover; INFINITE_COVER when stock is held against no demand,
        0 when there is neither stock nor demand
    """
    if daily_demand and daily_demand > 0:
        return stock / daily_demand

    if stock > 0:
        return INFINITE_COVER

    return 0.0


def classify(days: float, target_days: float = DEFAULT_TARGET_DAYS) -> StockStatus:
    """Classify days of cover against a target.

    The ratio days / target_days decides the status:
    below 0.5 critical, below 1.0 understock, up to 2.0 balanced, above
    that overstock. With the default 30 day target this gives the
    15 / 30 / 60 day thresholds.

    A location with a target of 0 days is meant to hold nothing, so any
    cover there is overstock and no cover is balanced.

    Args:
        days: Days of cover
        target_days: Target days of cover

    Returns:
        StockStatus
    """
    if target_days is None:
        target_days = DEFAULT_TARGET_DAYS

    if target_days <= 0:
        return StockStatus.BALANCED if days == 0 else StockStatus.OVERSTOCK

    ratio = days / target_days

    if ratio < CRITICAL_RATIO:
        return StockStatus.CRITICAL
    elif ratio < UNDERSTOCK_RATIO:
        return StockStatus.UNDERSTOCK
    elif ratio <= BALANCED_RATIO:
        return StockStatus.BALANCED
    else:
        return StockStatus.OVERSTOCK


def replenishment_needed(stock: float, daily_demand: float, target_days: float) -> int:
    """Calculate units needed to reach target days of cover.

    Args:
        stock: On-hand units
        daily_demand: Units consumed per day
        target_days: Target days of cover

    Returns:
        Units to send, never negative
    """
    if target_days is None or target_days < 0:
        raise CalculationError(f"Invalid target days of cover: {target_days}")

    return max(0, round_half_up(target_days * (daily_demand or 0.0) - stock))


def assess(stock: float, daily_demand: float, target_days: float = DEFAULT_TARGET_DAYS) -> CoverageAssessment:
    """Days of cover, status and replenishment for one stock/demand pair."""
    if target_days is None:
        target_days = DEFAULT_TARGET_DAYS

    cover = days_of_cover(stock, daily_demand)
    return CoverageAssessment(
        stock=stock,
        daily_demand=daily_demand or 0.0,
        target_days=target_days,
        days_of_cover=cover,
        status=classify(cover, target_days),
        replenishment_needed=replenishment_needed(stock, daily_demand, target_days)
    )


def aggregate(items: Iterable[Union[CoverageAssessment, Tuple[float, float]]],
              target_days: float = DEFAULT_TARGET_DAYS) -> CoverageAssessment:
    """Assess a group of locations or SKUs as one.

    Stock and demand are summed first and the formulas applied once; days of
    cover does not add up across locations.

    Args:
        items: CoverageAssessments or (stock, daily_demand) pairs
        target_days: Target days of cover for the group

    Returns:
        CoverageAssessment of the group
    """
    pairs = []
    for item in items:
        if isinstance(item, CoverageAssessment):
            pairs.append((item.stock, item.daily_demand))
        else:
            pairs.append((item[0], item[1]))

    if not pairs:
        return assess(0, 0.0, target_days)

    totals = np.array(pairs, dtype=float).sum(axis=0)
    stock = float(totals[0])
    if stock.is_integer():
        stock = int(stock)

    return assess(stock, float(totals[1]), target_days)


def status_counts(statuses: Iterable[StockStatus]) -> dict:
    counts = {str(status): 0 for status in STATUS_ORDER}
    for status in statuses:
        counts[str(status)] += 1
    return counts

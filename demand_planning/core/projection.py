# demand_planning/core/projection.py
from typing import List, Sequence

from demand_planning.core.types import ForecastMonthConfig, MonthProjection
from demand_planning.utils.date_utils import ensure_consecutive_months, get_days_in_month
from demand_planning.utils.math_utils import round_half_up


def base_units(baseline_drr: float, days_in_month: int) -> int:
    """Units a month would see at the baseline run rate."""
    return round_half_up((baseline_drr or 0.0) * days_in_month)


def compounded_units(configs: Sequence[ForecastMonthConfig], month_index: int) -> float:
    """Unrounded projected units for one month.

    Month 1 applies its lift to its base units. Every later month grows the
    previous month's projection by its own MoM growth and lift, so lifts
    carry forward into every following month. The chain is rebuilt from
    month 1 on each call.

    Args:
        configs: Consecutive month configurations
        month_index: Zero-based index of the month

    Returns:
        Projected units
    """
    first = configs[0]
    first_days = get_days_in_month(first.forecast_month.year, first.forecast_month.month)
    units = base_units(first.baseline_drr, first_days) * (1 + (first.lift_pct or 0.0) / 100.0)

    for month in configs[1:month_index + 1]:
        units = units * (1 + (month.mom_growth_pct or 0.0) / 100.0) * (1 + (month.lift_pct or 0.0) / 100.0)

    return units


def project_months(configs: Sequence[ForecastMonthConfig]) -> List[MonthProjection]:
    """Project monthly units for consecutive month configurations.

    Args:
        configs: Month configurations ordered by month

    Returns:
        One MonthProjection per month

    Raises:
        ValidationError if months are not consecutive first-of-month dates
    """
    if not configs:
        return []

    ensure_consecutive_months([c.forecast_month for c in configs])

    projections = []
    for index, month in enumerate(configs):
        days = get_days_in_month(month.forecast_month.year, month.forecast_month.month)
        projections.append(MonthProjection(
            forecast_month=month.forecast_month,
            days_in_month=days,
            baseline_drr=month.baseline_drr,
            lift_pct=month.lift_pct,
            mom_growth_pct=month.mom_growth_pct,
            base_units=base_units(month.baseline_drr, days),
            final_units=round_half_up(compounded_units(configs, index)),
            distribution_method=month.distribution_method
        ))

    return projections

from .date_utils import convert_to_date, inclusive_days, trailing_window, next_forecast_months
from .math_utils import round_half_up, safe_divide, percentage

__all__ = [
    'convert_to_date',
    'inclusive_days',
    'trailing_window',
    'next_forecast_months',
    'round_half_up',
    'safe_divide',
    'percentage'
]

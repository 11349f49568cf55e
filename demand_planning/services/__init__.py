from .baseline_service import BaselineService
from .forecast_service import ChannelForecastService
from .stock_analysis_service import StockAnalysisService
from .replenishment_service import ReplenishmentService

__all__ = [
    'BaselineService',
    'ChannelForecastService',
    'StockAnalysisService',
    'ReplenishmentService'
]

from .cache import TTLCache
from .base import HttpSource, fan_out
from .demand import AnalyticsDemandSource
from .stock import SheetStockSource
from .open_orders import OpenOrderSource, summarize_pendency

__all__ = [
    'TTLCache',
    'HttpSource',
    'fan_out',
    'AnalyticsDemandSource',
    'SheetStockSource',
    'OpenOrderSource',
    'summarize_pendency'
]

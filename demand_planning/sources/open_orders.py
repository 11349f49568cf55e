# demand_planning/sources/open_orders.py
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Optional, Sequence

import requests

from demand_planning.config import config
from demand_planning.core.network import NetworkConfig
from demand_planning.exceptions import ConfigError, DataUnavailableError, SourceSchemaError
from demand_planning.logging_setup import get_logger
from demand_planning.sources.base import HttpSource
from demand_planning.sources.cache import TTLCache

logger = get_logger(__name__)

OPEN_STATUSES = ('PENDING', 'ALLOCATED', 'PICKING', 'READY_TO_SHIP')

UNMAPPED = 'unmapped'


def page_items(data: Any, required: Sequence[str], source: str) -> List[dict]:
    """Rows of a WMS page envelope ({"items": [...]}), checked for required keys.

    Raises:
        SourceSchemaError if the envelope or a row does not have the expected shape
    """
    items = data.get('items') if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise SourceSchemaError(
            f"{source} returned no items list",
            code='SCHEMA',
            details={'type': type(data).__name__}
        )

    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise SourceSchemaError(
                f"{source} item {index} is {type(item).__name__}, expected an object",
                code='SCHEMA'
            )
        missing = [key for key in required if key not in item]
        if missing:
            raise SourceSchemaError(
                f"{source} item {index} is missing keys: {', '.join(missing)}",
                code='SCHEMA',
                details={'missing': missing}
            )

    return items


class OpenOrderSource(HttpSource):
    """Open (not yet shipped) orders from the warehouse management system."""

    source_name = 'WMS'

    def __init__(self, wms_config: Optional[dict] = None, session: Optional[requests.Session] = None,
                 cache_minutes: float = 5.0):
        self.settings = wms_config or config.wms_config
        super().__init__(self.settings['timeout_seconds'], session)
        self.cache = TTLCache(cache_minutes * 60, name='open_orders')

    @property
    def configured(self) -> bool:
        return bool(self.settings.get('token'))

    def _get(self, path: str):
        response = self._request(
            'GET',
            f"{self.settings['url']}{path}",
            headers={'Authorization': f"Bearer {self.settings['token']}"},
            allow_redirects=True
        )
        return self._json(response)

    def fetch_warehouses(self) -> List[dict]:
        """Active warehouses known to the WMS.

        Raises:
            SourceSchemaError if the warehouse list is malformed
        """
        items = page_items(self._get('/warehouses/'), ('id',), 'WMS warehouse list')
        return [warehouse for warehouse in items if warehouse.get('is_active')]

    def _warehouse_orders(self, warehouse: dict) -> List[dict]:
        try:
            data = self._get(
                f"/orders/?warehouse_id={warehouse['id']}&page=1&page_size={self.settings['page_size']}"
            )
            items = page_items(data, ('status',), f"WMS orders of {warehouse.get('code')}")
        except DataUnavailableError as e:
            logger.warning(f"Failed to fetch orders for {warehouse.get('code')}: {str(e)}")
            return []

        orders = []
        for order in items:
            if order.get('status') not in OPEN_STATUSES:
                continue
            order = dict(order)
            order['warehouse_code'] = warehouse.get('code')
            order['warehouse_name'] = warehouse.get('name')
            orders.append(order)
        return orders

    def fetch_open_orders(self) -> List[dict]:
        """Open orders across all active warehouses.

        Warehouses are read concurrently; a warehouse whose orders cannot be
        read is skipped.

        Raises:
            ConfigError if no WMS token is configured
            DataUnavailableError if the warehouse list cannot be read
        """
        if not self.configured:
            raise ConfigError("WMS_API_TOKEN not configured")

        def load():
            warehouses = self.fetch_warehouses()
            if not warehouses:
                return []

            max_workers = min(config.planning_config['max_workers'], len(warehouses))
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                batches = list(executor.map(self._warehouse_orders, warehouses))

            orders = [order for batch in batches for order in batch]
            logger.info(f"Fetched {len(orders)} open orders from {len(warehouses)} warehouses")
            return orders

        return self.cache.get_or_load(('open_orders',), load)

    def refresh(self) -> None:
        self.cache.invalidate()


def summarize_pendency(orders: Iterable[dict], network: NetworkConfig) -> Dict[str, int]:
    """Count open orders per stock location.

    A warehouse maps to the location whose wms_code equals its code, or
    whose name (or alias) equals its code or name, case-insensitively.
    Orders from warehouses that match no location are counted as 'unmapped'.

    Returns:
        Dictionary location name -> open order count
    """
    lookup = {}
    for location in network.locations:
        keys = [location.name] + list(location.aliases)
        if location.wms_code:
            keys.append(location.wms_code)
        for key in keys:
            lookup.setdefault(key.strip().lower(), location.name)

    counts = OrderedDict()
    for order in orders:
        location = None
        for key in (order.get('warehouse_code'), order.get('warehouse_name')):
            if key and key.strip().lower() in lookup:
                location = lookup[key.strip().lower()]
                break

        location = location or UNMAPPED
        counts[location] = counts.get(location, 0) + 1

    return dict(counts)

# demand_planning/sources/stock.py
import csv
import io
from datetime import datetime
from typing import List, Optional

import pandas as pd
import requests

from demand_planning.config import config
from demand_planning.core.network import NetworkConfig
from demand_planning.core.types import StockSnapshot
from demand_planning.exceptions import SourceSchemaError
from demand_planning.logging_setup import get_logger
from demand_planning.sources.base import HttpSource
from demand_planning.sources.cache import TTLCache

logger = get_logger(__name__)

# SKU cells shorter than this are section labels, not SKUs
MIN_SKU_LENGTH = 2


def _find_marker(header: List[str], marker: str, start: int = 0) -> int:
    for index in range(start, len(header)):
        if marker in header[index].strip().lower():
            return index
    return -1


def _quantities(series: pd.Series) -> pd.Series:
    cleaned = series.fillna('').astype(str).str.replace(',', '', regex=False).str.strip()
    return pd.to_numeric(cleaned, errors='coerce').fillna(0).astype(int)


def parse_stock_sheet(text: str, header_row: int = 2, bulk_total_marker: str = 'wh total',
                      fulfillment_total_marker: str = 'fba - total',
                      network: Optional[NetworkConfig] = None) -> StockSnapshot:
    """Parse the stock sheet CSV into a StockSnapshot.

    Layout: column 0 holds the SKU. Bulk locations run from column 1 up to
    the bulk total column; fulfillment locations start two columns after it
    and run up to the fulfillment total column. Rows after the header row
    hold quantities, e.g. "1,234"; blanks count as 0.

    With a network, columns that are aliases of a location are reported
    under the location's name.

    Raises:
        SourceSchemaError if the header row or a total column is missing
    """
    lines = [line for line in text.splitlines() if line.strip()]
    rows = list(csv.reader(lines))

    if len(rows) <= header_row:
        raise SourceSchemaError(
            f"Stock sheet has {len(rows)} rows, header expected at row {header_row}",
            code='SCHEMA'
        )

    header = [cell.strip() for cell in rows[header_row]]

    bulk_total = _find_marker(header, bulk_total_marker)
    if bulk_total < 0:
        raise SourceSchemaError(
            f"Stock sheet header has no '{bulk_total_marker}' column",
            code='SCHEMA',
            details={'header': header}
        )

    fulfillment_start = bulk_total + 2
    fulfillment_total = _find_marker(header, fulfillment_total_marker, fulfillment_start + 1)
    if fulfillment_total < 0:
        raise SourceSchemaError(
            f"Stock sheet header has no '{fulfillment_total_marker}' column",
            code='SCHEMA',
            details={'header': header}
        )

    def location_name(column):
        if network is None:
            return column
        location = network.find_location(column)
        return location.name if location else column

    bulk_columns = [(i, header[i]) for i in range(1, bulk_total) if header[i]]
    fulfillment_columns = [(i, header[i]) for i in range(fulfillment_start, fulfillment_total) if header[i]]

    width = max(len(row) for row in rows)
    frame = pd.DataFrame([row + [''] * (width - len(row)) for row in rows[header_row + 1:]])
    if frame.empty:
        frame = pd.DataFrame(columns=range(width))

    frame[0] = frame[0].fillna('').astype(str).str.strip()
    frame = frame[frame[0].str.len() >= MIN_SKU_LENGTH]

    stock = {}
    for index, column in bulk_columns + fulfillment_columns:
        name = location_name(column)
        for sku, quantity in zip(frame[0], _quantities(frame[index])):
            if quantity > 0:
                by_location = stock.setdefault(sku, {})
                by_location[name] = by_location.get(name, 0) + int(quantity)

    def unique_names(columns):
        names = []
        for _, column in columns:
            name = location_name(column)
            if name not in names:
                names.append(name)
        return tuple(names)

    return StockSnapshot(
        bulk_locations=unique_names(bulk_columns),
        fulfillment_locations=unique_names(fulfillment_columns),
        stock=stock,
        fetched_at=datetime.now()
    )


class SheetStockSource(HttpSource):
    """Per-location stock read from the published stock sheet."""

    source_name = 'Stock sheet'

    def __init__(self, sheet_config: Optional[dict] = None, network: Optional[NetworkConfig] = None,
                 session: Optional[requests.Session] = None):
        self.settings = sheet_config or config.stock_sheet_config
        super().__init__(self.settings['timeout_seconds'], session)
        self.network = network
        self.cache = TTLCache(self.settings['cache_minutes'] * 60, name='stock')

    def fetch_snapshot(self) -> StockSnapshot:
        """Current stock snapshot (cached).

        Raises:
            DataUnavailableError if the sheet cannot be downloaded
            SourceSchemaError if the layout is not recognised
        """
        def load():
            logger.info("Fetching stock sheet")
            response = self._request('GET', self.settings['url'])
            snapshot = parse_stock_sheet(
                response.text,
                header_row=self.settings['header_row'],
                bulk_total_marker=self.settings['bulk_total_marker'].lower(),
                fulfillment_total_marker=self.settings['fulfillment_total_marker'].lower(),
                network=self.network
            )
            logger.info(
                f"Stock sheet: {len(snapshot.stock)} SKUs, {len(snapshot.bulk_locations)} bulk and "
                f"{len(snapshot.fulfillment_locations)} fulfillment locations"
            )
            return snapshot

        return self.cache.get_or_load(('snapshot',), load)

    def refresh(self) -> None:
        self.cache.invalidate()

# demand_planning/sources/demand.py
from datetime import date
from typing import List, Optional, Sequence

import pandas as pd
import requests

from demand_planning.config import config
from demand_planning.core.types import CountryShareRow, DemandObservation
from demand_planning.exceptions import SourceSchemaError, ValidationError
from demand_planning.logging_setup import get_logger
from demand_planning.sources.base import HttpSource
from demand_planning.sources.cache import TTLCache
from demand_planning.utils.date_utils import convert_to_date

logger = get_logger(__name__)

DEMAND_COLUMNS = ('SKU', 'CHANNEL', 'NEW_COUNTRY_BUCKET', 'RING_COUNT')
SHARE_COLUMNS = ('SKU', 'COUNTRY', 'RING_COUNT')

# Optional columns picked up when the card exposes them
RING_BASIS_COLUMN = 'RING_BASIS'
DATE_COLUMN = 'DATE'


def _date_parameter(tag: str, value: date) -> dict:
    return {
        'type': 'date/single',
        'target': ['variable', ['template-tag', tag]],
        'value': value.isoformat()
    }


def rows_to_frame(rows, required: Sequence[str], source: str) -> pd.DataFrame:
    """Load card rows into a DataFrame and check the expected columns.

    Args:
        rows: List of row dictionaries
        required: Column names that must be present
        source: Source name used in error messages

    Returns:
        DataFrame with upper-cased column names

    Raises:
        SourceSchemaError if rows are not a list or columns are missing
    """
    if not isinstance(rows, list):
        raise SourceSchemaError(
            f"{source} returned {type(rows).__name__}, expected a list of rows",
            code='SCHEMA'
        )

    frame = pd.DataFrame(rows)
    frame.columns = [str(column).strip().upper() for column in frame.columns]

    if frame.empty and not len(frame.columns):
        return pd.DataFrame(columns=list(required))

    missing = [column for column in required if column not in frame.columns]
    if missing:
        raise SourceSchemaError(
            f"{source} is missing columns: {', '.join(missing)}",
            code='SCHEMA',
            details={'missing': missing, 'columns': list(frame.columns)}
        )

    return frame


def _clean_text(series: pd.Series, upper: bool = False) -> pd.Series:
    cleaned = series.fillna('').astype(str).str.strip()
    return cleaned.str.upper() if upper else cleaned


def _units(series: pd.Series) -> pd.Series:
    return pd.to_numeric(series, errors='coerce').fillna(0.0)


def _observed_date(value) -> Optional[date]:
    if not value or pd.isna(value):
        return None
    try:
        return convert_to_date(str(value)[:10])
    except ValidationError as e:
        raise SourceSchemaError(
            f"Demand card has an invalid DATE value {value!r}",
            code='SCHEMA',
            details={'error': str(e)}
        )


def parse_observations(rows) -> List[DemandObservation]:
    """Convert demand card rows into DemandObservations.

    Rows without SKU or channel are dropped; non-numeric counts become 0.
    """
    frame = rows_to_frame(rows, DEMAND_COLUMNS, 'Demand card')
    if frame.empty:
        return []

    frame['SKU'] = _clean_text(frame['SKU'])
    frame['CHANNEL'] = _clean_text(frame['CHANNEL'])
    frame['NEW_COUNTRY_BUCKET'] = _clean_text(frame['NEW_COUNTRY_BUCKET'], upper=True)
    frame['RING_COUNT'] = _units(frame['RING_COUNT'])
    frame = frame[(frame['SKU'] != '') & (frame['CHANNEL'] != '')]

    has_basis = RING_BASIS_COLUMN in frame.columns
    has_date = DATE_COLUMN in frame.columns

    observations = []
    for record in frame.to_dict('records'):
        ring_basis = record.get(RING_BASIS_COLUMN) if has_basis else None
        observed = record.get(DATE_COLUMN) if has_date else None
        observations.append(DemandObservation(
            sku=record['SKU'],
            channel=record['CHANNEL'],
            country=record['NEW_COUNTRY_BUCKET'],
            unit_count=float(record['RING_COUNT']),
            observed_date=_observed_date(observed),
            ring_basis=str(ring_basis).strip() if ring_basis and not pd.isna(ring_basis) else None
        ))

    return observations


def parse_country_shares(rows) -> List[CountryShareRow]:
    frame = rows_to_frame(rows, SHARE_COLUMNS, 'Country share card')
    if frame.empty:
        return []

    frame['SKU'] = _clean_text(frame['SKU'])
    frame['COUNTRY'] = _clean_text(frame['COUNTRY'], upper=True)
    frame['RING_COUNT'] = _units(frame['RING_COUNT'])

    return [
        CountryShareRow(sku=record['SKU'], country=record['COUNTRY'], unit_count=float(record['RING_COUNT']))
        for record in frame.to_dict('records')
    ]


class AnalyticsDemandSource(HttpSource):
    """Historical demand read from analytics saved questions (cards).

    Uses the JSON export endpoint, which has no row cap. Demand rows are
    cached per date range, the country share table as a whole.
    """

    source_name = 'Analytics'

    def __init__(self, analytics_config: Optional[dict] = None, session: Optional[requests.Session] = None):
        self.settings = analytics_config or config.analytics_config
        super().__init__(self.settings['timeout_seconds'], session)

        self.demand_cache = TTLCache(self.settings['demand_cache_minutes'] * 60, name='demand')
        self.share_cache = TTLCache(self.settings['country_share_cache_minutes'] * 60, name='country_shares')

    def _card_url(self, card_id) -> str:
        return f"{self.settings['url']}/api/card/{card_id}/query/json"

    def _query_card(self, card_id, parameters=None):
        response = self._request(
            'POST',
            self._card_url(card_id),
            headers={
                'Content-Type': 'application/json',
                'x-api-key': self.settings['api_key']
            },
            json={'parameters': parameters} if parameters else {}
        )
        return self._json(response)

    def fetch_observations(self, start_date: date, end_date: date) -> List[DemandObservation]:
        """Demand rows between two dates (inclusive).

        Raises:
            DataUnavailableError if the card cannot be read
            SourceSchemaError if expected columns are missing
        """
        def load():
            logger.info(f"Fetching demand card {self.settings['demand_card_id']}: {start_date} to {end_date}")
            rows = self._query_card(self.settings['demand_card_id'], [
                _date_parameter('start_date', start_date),
                _date_parameter('end_date', end_date)
            ])
            observations = parse_observations(rows)
            logger.info(f"Demand card returned {len(observations)} rows")
            return observations

        return self.demand_cache.get_or_load(('demand', start_date, end_date), load)

    def fetch_country_shares(self) -> List[CountryShareRow]:
        """Per-SKU, per-country unit counts used to split parent buckets."""
        def load():
            logger.info(f"Fetching country share card {self.settings['country_share_card_id']}")
            return parse_country_shares(self._query_card(self.settings['country_share_card_id']))

        return self.share_cache.get_or_load(('country_shares',), load)

    def refresh(self) -> None:
        """Drop all cached demand and share rows."""
        self.demand_cache.invalidate()
        self.share_cache.invalidate()

# demand_planning/services/stock_analysis_service.py
from datetime import date
from typing import Dict, Optional

from sqlalchemy.orm import Session

from demand_planning.config import config
from demand_planning.core.coverage import aggregate, assess, status_counts
from demand_planning.core.network import NetworkConfig, load_network_config
from demand_planning.core.routing import route_demand
from demand_planning.core.types import INFINITE_COVER
from demand_planning.exceptions import DatabaseError, ValidationError
from demand_planning.logging_setup import get_logger
from demand_planning.models import LocationTargetDoc
from demand_planning.sources.base import fan_out
from demand_planning.sources.demand import AnalyticsDemandSource
from demand_planning.sources.open_orders import OpenOrderSource, summarize_pendency
from demand_planning.sources.stock import SheetStockSource
from demand_planning.utils.date_utils import trailing_window

logger = get_logger(__name__)


def load_trailing_inputs(demand_source, stock_source, window_days: int, end_date: date,
                         order_source=None) -> Dict:
    """Fetch trailing-window demand and current stock concurrently.

    Returns:
        Dictionary with 'observations', 'snapshot', the window dates and,
        when an order source is given, 'orders'
    """
    start_date, end_date = trailing_window(end_date, window_days)

    loaders = {
        'observations': lambda: demand_source.fetch_observations(start_date, end_date),
        'snapshot': stock_source.fetch_snapshot
    }
    if order_source is not None:
        loaders['orders'] = order_source.fetch_open_orders

    inputs = fan_out(**loaders)
    inputs['start_date'] = start_date
    inputs['end_date'] = end_date
    return inputs


def _cover_sort_key(row):
    return (row['assessment'].days_of_cover, row['sku'])


class StockAnalysisService:
    """Service for the location-routed demand and stock status report."""

    def __init__(self, session: Optional[Session] = None,
                 demand_source: Optional[AnalyticsDemandSource] = None,
                 stock_source: Optional[SheetStockSource] = None,
                 order_source: Optional[OpenOrderSource] = None,
                 network: Optional[NetworkConfig] = None,
                 today: Optional[date] = None):
        """Initialize the stock analysis service.

        Args:
            session: Database session for location targets (defaults only when None)
            demand_source: Historical demand source
            stock_source: Location stock source
            order_source: Open order source for pendency
            network: Network configuration
            today: Last day of the trailing window (defaults to today)
        """
        self.session = session
        self.network = network or load_network_config()
        self.demand_source = demand_source or AnalyticsDemandSource()
        self.stock_source = stock_source or SheetStockSource(network=self.network)
        self.order_source = order_source
        self.today = today

    # Location targets

    def get_location_targets(self) -> Dict[str, int]:
        """Target days of cover per location.

        Network defaults, overridden by saved values.
        """
        targets = {location.name: location.target_days for location in self.network.locations}

        if self.session is not None:
            for row in self.session.query(LocationTargetDoc).all():
                targets[row.location_name] = row.optimal_days

        return targets

    def save_location_targets(self, targets: Dict[str, int], updated_by: Optional[str] = None) -> int:
        """Create or update target days of cover per location.

        Returns:
            Number of locations saved

        Raises:
            NotFoundError if a name matches no location in the network
        """
        if self.session is None:
            raise DatabaseError("Saving location targets needs a database session")

        resolved = {}
        for name, days in targets.items():
            if not isinstance(days, int) or isinstance(days, bool) or days < 0:
                raise ValidationError(
                    f"Target days for {name} must be a non-negative integer, got {days}",
                    details={'location': name}
                )
            resolved[self.network.location(name).name] = days

        try:
            for name, days in resolved.items():
                row = self.session.query(LocationTargetDoc).filter(
                    LocationTargetDoc.location_name == name
                ).first()

                if row is None:
                    row = LocationTargetDoc(location_name=name)
                    self.session.add(row)

                row.optimal_days = days
                row.updated_by = updated_by

            self.session.commit()
        except Exception as e:
            self.session.rollback()
            raise DatabaseError(f"Failed to save location targets: {str(e)}")

        logger.info(f"Saved target days of cover for {len(resolved)} locations")
        return len(resolved)

    # Report

    def build_report(self, include_pendency: bool = False, window_days: Optional[int] = None) -> Dict:
        """Build the stock status report.

        Every SKU with stock or demand somewhere gets a fleet row with its
        per-location stock, routed demand, days of cover and status. A SKU
        with neither stock nor demand at a location is left out of that
        location. Rows are sorted by days of cover, lowest first.

        Args:
            include_pendency: Attach open order counts per location
            window_days: Trailing window length (defaults to configuration)

        Returns:
            Report dictionary

        Raises:
            DataUnavailableError if demand or stock cannot be read
        """
        window_days = window_days or config.planning_config['trailing_window_days']
        default_target = config.planning_config['default_target_days']
        order_source = None
        if include_pendency:
            order_source = self.order_source or OpenOrderSource()
            if not order_source.configured:
                logger.warning("Pendency requested but no WMS token is configured")
                order_source = None

        inputs = load_trailing_inputs(
            self.demand_source, self.stock_source, window_days,
            self.today or date.today(), order_source
        )
        snapshot = inputs['snapshot']
        routed = route_demand(inputs['observations'], self.network, snapshot, window_days)
        targets = self.get_location_targets()

        location_rows = {location: [] for location in snapshot.locations}
        sku_rows = []

        for sku in sorted(set(snapshot.skus) | set(routed.skus)):
            total_stock = snapshot.sku_stock(sku)
            daily_demand = routed.fleet_drr(sku)
            if total_stock == 0 and daily_demand == 0:
                continue

            locations = {}
            for location in snapshot.locations:
                stock = snapshot.quantity(sku, location)
                drr = routed.drr(location, sku)
                if stock == 0 and drr == 0:
                    continue

                assessment = assess(stock, drr, targets.get(location, default_target))
                locations[location] = assessment.to_dict()
                location_rows[location].append({'sku': sku, 'assessment': assessment})

            fleet = assess(total_stock, daily_demand, default_target)
            sku_rows.append({
                'sku': sku,
                'family': self.network.family_for_sku(sku),
                'assessment': fleet,
                'locations': locations,
                'channel_demand': {
                    channel: round(drr, 2) for channel, drr in routed.sku_channel.get(sku, {}).items()
                },
                'unrouted_demand': round(routed.unrouted.get(sku, 0.0), 2)
            })

        sku_rows.sort(key=_cover_sort_key)

        pendency = summarize_pendency(inputs['orders'], self.network) if 'orders' in inputs else None

        location_summaries = []
        for location in snapshot.locations:
            target = targets.get(location, default_target)
            rows = location_rows[location]
            summary = aggregate((row['assessment'] for row in rows), target).to_dict()
            summary.update({
                'location': location,
                'group': str(snapshot.group_of(location)),
                'sku_count': len(rows),
                'status_counts': status_counts(row['assessment'].status for row in rows)
            })
            if pendency is not None:
                summary['open_orders'] = pendency.get(location, 0)
            location_summaries.append(summary)

        report = {
            'window': {
                'start_date': inputs['start_date'].isoformat(),
                'end_date': inputs['end_date'].isoformat(),
                'days': window_days
            },
            'summary': dict(
                status_counts(row['assessment'].status for row in sku_rows),
                total_skus=len(sku_rows),
                infinite_cover_skus=sum(1 for row in sku_rows if row['assessment'].days_of_cover == INFINITE_COVER),
                unrouted_daily_demand=round(sum(routed.unrouted.values()), 2)
            ),
            'locations': location_summaries,
            'skus': [
                dict(row, assessment=row['assessment'].to_dict()) for row in sku_rows
            ]
        }
        if pendency is not None:
            report['pendency'] = pendency

        logger.info(
            f"Stock report: {len(sku_rows)} SKUs across {len(snapshot.locations)} locations, "
            f"{report['summary']['critical']} critical"
        )
        return report

# demand_planning/services/replenishment_service.py
from collections import OrderedDict, defaultdict
from datetime import date, datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from demand_planning.config import config
from demand_planning.core.coverage import aggregate, assess, status_counts
from demand_planning.core.network import Location, NetworkConfig, load_network_config
from demand_planning.core.routing import (
    channel_country_ratios, location_forecast_shares, routable_locations, route_demand
)
from demand_planning.exceptions import ValidationError
from demand_planning.logging_setup import get_logger
from demand_planning.models import ALL_COUNTRIES, DemandForecast, LocationGroup
from demand_planning.services.stock_analysis_service import StockAnalysisService, load_trailing_inputs
from demand_planning.sources.demand import AnalyticsDemandSource
from demand_planning.sources.stock import SheetStockSource
from demand_planning.utils.date_utils import first_of_month
from demand_planning.utils.math_utils import round_half_up

logger = get_logger(__name__)


class ReplenishmentService:
    """Service building the replenishment plan for fulfillment locations."""

    def __init__(self, session: Optional[Session] = None,
                 demand_source: Optional[AnalyticsDemandSource] = None,
                 stock_source: Optional[SheetStockSource] = None,
                 network: Optional[NetworkConfig] = None,
                 today: Optional[date] = None):
        """Initialize the replenishment service.

        Args:
            session: Database session (forecasts and saved targets)
            demand_source: Historical demand source
            stock_source: Location stock source
            network: Network configuration
            today: Last day of the trailing window (defaults to today)
        """
        self.session = session
        self.network = network or load_network_config()
        self.demand_source = demand_source or AnalyticsDemandSource()
        self.stock_source = stock_source or SheetStockSource(network=self.network)
        self.today = today
        self.stock_analysis = StockAnalysisService(
            session, self.demand_source, self.stock_source, network=self.network, today=today
        )

    def _forecast_totals(self) -> Dict:
        """Saved forecast units per (channel, country) and month, from this month on."""
        totals = defaultdict(lambda: defaultdict(int))
        if self.session is None:
            return totals

        start = first_of_month(self.today or date.today())
        rows = self.session.query(DemandForecast).filter(DemandForecast.forecast_month >= start).all()
        for row in rows:
            totals[(row.channel_group, row.country_bucket)][row.forecast_month] += row.forecast_units or 0

        return totals

    def _monthly_forecast(self, location: Location, forecast_totals, ratios, snapshot, locations) -> List[Dict]:
        """Spread saved forecasts onto a location.

        Forecasts saved without geography use the observed country mix of
        their channel; forecasts saved for a country go to the locations
        serving it.
        """
        months = defaultdict(lambda: defaultdict(int))

        for (channel, country), by_month in forecast_totals.items():
            if country == ALL_COUNTRIES:
                channel_ratios = {channel: ratios.get(channel, {})}
            else:
                channel_ratios = {channel: {country: 1.0}}

            share = location_forecast_shares(
                location, channel_ratios, self.network, snapshot, locations
            ).get(channel, 0.0)
            if share <= 0:
                continue

            for month, units in by_month.items():
                months[month][channel] += round_half_up(units * share)

        horizon = config.planning_config['plan_forecast_months']
        return [
            {
                'month': month.strftime('%Y-%m'),
                'forecast_units': sum(channels.values()),
                'channel_breakdown': dict(channels)
            }
            for month, channels in sorted(months.items())[:horizon]
        ]

    def build_plan(self, target_days: Optional[int] = None, window_days: Optional[int] = None) -> Dict:
        """Build the replenishment plan.

        Args:
            target_days: Target days of cover for every location; None uses
                         each location's own target
            window_days: Trailing window length (defaults to configuration)

        Returns:
            Plan dictionary with per-location SKU details, aggregates,
            channel demand, upcoming monthly forecast and summary totals

        Raises:
            ValidationError for a negative target
            DataUnavailableError if demand or stock cannot be read
        """
        if target_days is not None and target_days < 0:
            raise ValidationError(f"Target days of cover must not be negative, got {target_days}")

        window_days = window_days or config.planning_config['trailing_window_days']
        inputs = load_trailing_inputs(
            self.demand_source, self.stock_source, window_days, self.today or date.today()
        )
        observations = inputs['observations']
        snapshot = inputs['snapshot']

        locations = routable_locations(self.network, snapshot)
        routed = route_demand(observations, self.network, snapshot, window_days, locations)
        ratios = channel_country_ratios(observations, self.network)
        forecast_totals = self._forecast_totals()
        targets = self.stock_analysis.get_location_targets()

        plans = []
        for location in locations:
            if location.group != LocationGroup.FULFILLMENT:
                continue

            target = target_days if target_days is not None else targets.get(location.name, location.target_days)

            skus = set(routed.skus_for(location.name))
            skus.update(sku for sku in snapshot.skus if snapshot.quantity(sku, location.name) > 0)

            assessed = sorted(
                ((sku, assess(snapshot.quantity(sku, location.name), routed.drr(location.name, sku), target))
                 for sku in skus),
                key=lambda item: (item[1].days_of_cover, item[0])
            )
            location_assessment = aggregate((assessment for _, assessment in assessed), target)

            sku_details = [
                dict(
                    assessment.to_dict(),
                    sku=sku,
                    family=self.network.family_for_sku(sku),
                    channel_breakdown={
                        channel: round(drr, 2)
                        for channel, drr in routed.channel_drr(location.name, sku).items()
                    }
                )
                for sku, assessment in assessed
            ]

            plans.append((location_assessment, dict(
                location_assessment.to_dict(),
                location=location.name,
                geography=location.label or location.name,
                sku_count=len(sku_details),
                channel_breakdown=[
                    {'channel': channel, 'daily_demand': round(drr, 2)}
                    for channel, drr in sorted(routed.location_channel_drr(location.name).items())
                ],
                monthly_forecast=self._monthly_forecast(location, forecast_totals, ratios, snapshot, locations),
                skus=sku_details
            )))

        plans.sort(key=lambda item: (item[0].days_of_cover, item[1]['location']))

        summary = OrderedDict([
            ('total_locations', len(plans)),
            ('total_units_needed', sum(assessment.replenishment_needed for assessment, _ in plans)),
            ('target_days', target_days)
        ])
        summary.update(status_counts(assessment.status for assessment, _ in plans))

        logger.info(
            f"Replenishment plan: {len(plans)} locations, {summary['total_units_needed']} units needed"
        )

        return {
            'summary': summary,
            'locations': [plan for _, plan in plans],
            'last_updated': datetime.now().isoformat()
        }

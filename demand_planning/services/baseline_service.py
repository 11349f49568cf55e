# demand_planning/services/baseline_service.py
from datetime import date
from typing import Optional

from demand_planning.core.baseline import CountryShareTable, compute_baseline
from demand_planning.core.network import NetworkConfig, load_network_config
from demand_planning.core.types import BaselineRequest, BaselineResult
from demand_planning.exceptions import ValidationError
from demand_planning.logging_setup import get_logger
from demand_planning.sources.demand import AnalyticsDemandSource

logger = get_logger(__name__)


class BaselineService:
    """Service answering baseline queries for a channel/country scope."""

    def __init__(self, demand_source: Optional[AnalyticsDemandSource] = None,
                 network: Optional[NetworkConfig] = None):
        """Initialize the baseline service.

        Args:
            demand_source: Historical demand source
            network: Network configuration
        """
        self.demand_source = demand_source or AnalyticsDemandSource()
        self.network = network or load_network_config()

    def share_table(self, parent: str) -> CountryShareTable:
        """Country share table of a parent bucket.

        Raises:
            DataUnavailableError if the share table cannot be fetched
        """
        group = self.network.sub_regions[parent]
        return CountryShareTable.from_rows(
            self.demand_source.fetch_country_shares(),
            group.members,
            self.network.country_aliases
        )

    def get_baseline(self, request: BaselineRequest) -> BaselineResult:
        """Compute the baseline for a request.

        Args:
            request: Baseline request

        Returns:
            BaselineResult

        Raises:
            ValidationError for an unknown channel or a missing bucket on a
            channel with geography
            DataUnavailableError if the demand source cannot be read
        """
        channel = self.network.channel(request.channel_group)
        if channel.geographic and not request.country_bucket:
            raise ValidationError(f"country_bucket is required for channel {channel.name}")

        logger.info(
            f"Baseline {channel.name}/{request.country_bucket or 'ALL'}: "
            f"{request.start_date} to {request.end_date}"
        )

        observations = self.demand_source.fetch_observations(request.start_date, request.end_date)
        result = compute_baseline(observations, request, self.network, share_loader=self.share_table)

        logger.info(
            f"Baseline {channel.name}/{result.country_bucket or 'ALL'}: {result.total_units} units "
            f"over {result.days} days, DRR {result.daily_run_rate:.2f}"
        )
        return result

    def baseline_for(self, start_date: date, end_date: date, channel_group: str,
                     country_bucket: Optional[str] = None, ring_basis: Optional[str] = None) -> BaselineResult:
        """Convenience wrapper building the request from plain arguments."""
        return self.get_baseline(BaselineRequest(
            start_date=start_date,
            end_date=end_date,
            channel_group=channel_group,
            country_bucket=country_bucket,
            ring_basis=ring_basis
        ))

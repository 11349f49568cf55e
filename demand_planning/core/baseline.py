# demand_planning/core/baseline.py
from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional

from demand_planning.core.network import NetworkConfig
from demand_planning.core.types import (
    BaselineRequest, BaselineResult, CountryShareRow, DemandObservation, SkuShare
)
from demand_planning.exceptions import DataUnavailableError
from demand_planning.logging_setup import get_logger
from demand_planning.utils.date_utils import inclusive_days
from demand_planning.utils.math_utils import percentage, round_half_up, safe_divide

logger = get_logger(__name__)


class CountryShareTable:
    """Per-country and per-SKU unit counts inside one parent bucket.

    Built from the independently sourced share table. Only countries listed
    as members of the parent are counted; country names are normalised
    through the alias map before matching.
    """

    def __init__(self, country_totals: Dict[str, float], sku_country_units: Dict[str, Dict[str, float]]):
        self.country_totals = country_totals
        self.sku_country_units = sku_country_units
        self.total_units = sum(country_totals.values())

    @classmethod
    def from_rows(cls, rows: Iterable[CountryShareRow], members: Iterable[str],
                  aliases: Optional[Dict[str, str]] = None) -> 'CountryShareTable':
        """Build the table from raw share rows.

        Args:
            rows: Share rows
            members: Countries belonging to the parent bucket
            aliases: Map of alternative country names to canonical names

        Returns:
            CountryShareTable
        """
        aliases = aliases or {}
        members = set(m.upper() for m in members)

        country_totals = {}
        sku_country_units = {}

        for row in rows:
            country = (row.country or '').strip().upper()
            country = aliases.get(country, country)
            if country not in members:
                continue

            units = row.unit_count or 0
            by_country = sku_country_units.setdefault(row.sku, {})
            by_country[country] = by_country.get(country, 0) + units
            country_totals[country] = country_totals.get(country, 0) + units

        return cls(country_totals, sku_country_units)

    def proportion(self, country: str) -> float:
        """Share of the parent's units that belong to country (0 when empty)."""
        return safe_divide(self.country_totals.get(country.upper(), 0), self.total_units)

    def combined_proportion(self, countries: Iterable[str]) -> float:
        return sum(self.proportion(country) for country in countries)

    def sku_share(self, country: str, sku: str) -> float:
        """Share of a country's units that belong to one SKU."""
        country = country.upper()
        units = self.sku_country_units.get(sku, {}).get(country, 0)
        return safe_divide(units, self.country_totals.get(country, 0))


ShareLoader = Callable[[str], CountryShareTable]


def channel_rows(observations: Iterable[DemandObservation], channel_group: str,
                 network: NetworkConfig, ring_basis: Optional[str] = None) -> List[DemandObservation]:
    """Rows belonging to a channel group.

    Excluded SKU prefixes for the channel are dropped. Ring basis is only
    applied when the channel exposes it and the row carries one.
    """
    channel = network.channel(channel_group)
    selected = []

    for observation in observations:
        if not channel.matches(observation.channel):
            continue

        if channel.excludes_sku(observation.sku):
            continue

        if (channel.ring_basis and ring_basis and observation.ring_basis
                and observation.ring_basis.lower() != ring_basis.lower()):
            continue

        selected.append(observation)

    return selected


def sum_by_sku(observations: Iterable[DemandObservation]) -> Dict[str, float]:
    sku_units = OrderedDict()
    for observation in observations:
        sku = observation.sku or 'Unknown'
        sku_units[sku] = sku_units.get(sku, 0) + (observation.unit_count or 0)
    return sku_units


def scale_sku_units(sku_units: Dict[str, float], proportion: float) -> Dict[str, int]:
    """Apply a proportion to each SKU, dropping SKUs that round to zero."""
    scaled = OrderedDict()
    for sku, units in sku_units.items():
        allocated = round_half_up(units * proportion)
        if allocated > 0:
            scaled[sku] = allocated
    return scaled


def _bucket_rows(rows, bucket):
    bucket = bucket.upper()
    return [row for row in rows if (row.country or '').strip().upper() == bucket]


def _aggregate_rows(rows, network):
    enumerated = set(network.explicit_buckets) | set(network.sub_region_buckets)
    return [row for row in rows if (row.country or '').strip().upper() not in enumerated]


def compute_baseline(observations: Iterable[DemandObservation], request: BaselineRequest,
                     network: NetworkConfig, share_loader: Optional[ShareLoader] = None) -> BaselineResult:
    """Reduce raw demand rows to a daily run rate and per-SKU share.

    Buckets are resolved in this order:

    - the aggregate bucket takes every row whose bucket is not enumerated
    - otherwise rows matching the bucket exactly
    - a sub-region with no direct rows takes the parent's per-SKU units
      scaled by the sub-region's share of the parent
    - a parent bucket is scaled down by the share of all its sub-regions;
      if the share table cannot be loaded the unadjusted numbers are kept

    Channels without geography skip every bucket rule.

    Args:
        observations: Demand rows for the request window
        request: Baseline request
        network: Network configuration
        share_loader: Callable returning the CountryShareTable of a parent bucket

    Returns:
        BaselineResult

    Raises:
        DataUnavailableError if a sub-region split needs a share table that
        cannot be loaded
    """
    channel = network.channel(request.channel_group)
    ring_basis = request.ring_basis or network.default_ring_basis
    rows = channel_rows(observations, channel.name, network, ring_basis)

    bucket = (request.country_bucket or '').strip().upper() if channel.geographic else None
    fallback_region = None
    warnings = []

    if bucket is None:
        sku_units = sum_by_sku(rows)
    elif bucket == network.aggregate_bucket:
        fallback_region = f"{bucket} (aggregated)"
        sku_units = sum_by_sku(_aggregate_rows(rows, network))
    else:
        sku_units = sum_by_sku(_bucket_rows(rows, bucket))

        parent = network.parent_of(bucket)
        if sum(sku_units.values()) == 0 and parent and share_loader is not None:
            logger.info(f"No direct data for {channel.name}/{bucket}, splitting from {parent}")
            fallback_region = f"{parent} (proportional split)"

            shares = share_loader(parent)
            proportion = shares.proportion(bucket)
            parent_units = sum_by_sku(_bucket_rows(rows, parent))
            sku_units = scale_sku_units(parent_units, proportion)

            logger.info(
                f"{bucket} proportion of {parent}: {proportion * 100:.1f}%, "
                f"{sum(parent_units.values())} -> {sum(sku_units.values())} units"
            )

        elif bucket in network.sub_regions and sum(sku_units.values()) > 0 and share_loader is not None:
            children = network.sub_regions[bucket].children
            try:
                shares = share_loader(bucket)
            except DataUnavailableError as e:
                message = f"Could not adjust {bucket} for {', '.join(children)}, using full data: {str(e)}"
                logger.warning(message)
                warnings.append(message)
            else:
                remaining = max(0.0, 1.0 - shares.combined_proportion(children))
                original_total = sum(sku_units.values())
                sku_units = scale_sku_units(sku_units, remaining)
                logger.info(
                    f"{bucket}: keeping {remaining * 100:.1f}% after sub-regions, "
                    f"{original_total} -> {sum(sku_units.values())} units"
                )

    total_units = sum(sku_units.values())
    days = inclusive_days(request.start_date, request.end_date)

    breakdown = sorted(
        (SkuShare(sku=sku, units=units, auto_weight_pct=percentage(units, total_units))
         for sku, units in sku_units.items()),
        key=lambda share: (-share.units, share.sku)
    )

    return BaselineResult(
        channel_group=channel.name,
        country_bucket=bucket,
        ring_basis=ring_basis,
        start_date=request.start_date,
        end_date=request.end_date,
        total_units=total_units,
        days=days,
        daily_run_rate=safe_divide(total_units, days),
        sku_breakdown=tuple(breakdown),
        fallback_region=fallback_region,
        warnings=tuple(warnings)
    )

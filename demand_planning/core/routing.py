# demand_planning/core/routing.py
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from demand_planning.core.network import Location, NetworkConfig
from demand_planning.core.types import DemandObservation, StockSnapshot
from demand_planning.exceptions import RoutingError
from demand_planning.logging_setup import get_logger
from demand_planning.utils.math_utils import safe_divide

logger = get_logger(__name__)


@dataclass
class RoutedDemand:
    """Daily demand per location and SKU over a trailing window.

    All figures are daily run rates (units / window_days). Units are not
    rounded while routing.
    """

    window_days: int
    location_sku: Dict[str, Dict[str, float]] = field(default_factory=dict)
    location_sku_channel: Dict[str, Dict[str, Dict[str, float]]] = field(default_factory=dict)
    sku_total: Dict[str, float] = field(default_factory=dict)
    sku_channel: Dict[str, Dict[str, float]] = field(default_factory=dict)
    unrouted: Dict[str, float] = field(default_factory=dict)

    def drr(self, location: str, sku: str) -> float:
        return self.location_sku.get(location, {}).get(sku, 0.0)

    def channel_drr(self, location: str, sku: str) -> Dict[str, float]:
        return dict(self.location_sku_channel.get(location, {}).get(sku, {}))

    def location_channel_drr(self, location: str) -> Dict[str, float]:
        totals = defaultdict(float)
        for channels in self.location_sku_channel.get(location, {}).values():
            for channel, drr in channels.items():
                totals[channel] += drr
        return dict(totals)

    def skus_for(self, location: str) -> List[str]:
        return sorted(self.location_sku.get(location, {}))

    def fleet_drr(self, sku: str) -> float:
        return self.sku_total.get(sku, 0.0)

    @property
    def skus(self) -> List[str]:
        return sorted(self.sku_total)


def stock_shares(sku: str, locations: Sequence[str], snapshot: Optional[StockSnapshot]) -> np.ndarray:
    """Fraction of a SKU's demand each sharing location receives.

    Proportional to each location's on-hand stock of the SKU; even when the
    locations hold none of it.
    """
    count = len(locations)
    if snapshot is None:
        return np.full(count, 1.0 / count)

    stocks = np.array([snapshot.quantity(sku, location) for location in locations], dtype=float)
    total = stocks.sum()
    if total <= 0:
        return np.full(count, 1.0 / count)

    return stocks / total


def routable_locations(network: NetworkConfig, snapshot: Optional[StockSnapshot] = None) -> List[Location]:
    """Network locations that demand may be routed to.

    With a snapshot, only locations the snapshot reports are kept.
    """
    if snapshot is None:
        return list(network.locations)

    present = set(snapshot.locations)
    return [location for location in network.locations if location.name in present]


def route_demand(observations: Iterable[DemandObservation], network: NetworkConfig,
                 snapshot: Optional[StockSnapshot] = None, window_days: int = 30,
                 locations: Optional[Sequence[Location]] = None) -> RoutedDemand:
    """Route trailing-window demand onto stock locations.

    Each observation is mapped to its channel group and country. Inside each
    location group (bulk, fulfillment) the explicit locations serving that
    pair share the units by on-hand stock of the SKU. Wildcard locations get
    the SKU's total demand. Units no explicit location serves are reported
    as unrouted.

    Args:
        observations: Demand rows of the trailing window
        network: Network configuration
        snapshot: Stock snapshot used for shared splits
        window_days: Window length in days
        locations: Locations to route to (defaults to routable_locations)

    Returns:
        RoutedDemand
    """
    if window_days < 1:
        raise RoutingError(f"Routing window must be at least one day, got {window_days}")

    if locations is None:
        locations = routable_locations(network, snapshot)

    explicit = [location for location in locations if not location.is_wildcard]
    wildcard = [location for location in locations if location.is_wildcard]

    location_units = defaultdict(lambda: defaultdict(float))
    location_channel_units = defaultdict(lambda: defaultdict(lambda: defaultdict(float)))
    sku_units = defaultdict(float)
    sku_channel_units = defaultdict(lambda: defaultdict(float))
    unrouted_units = defaultdict(float)

    # Matching explicit locations per (channel, country) do not depend on the SKU
    serving_cache = {}

    for observation in observations:
        units = observation.unit_count or 0
        if not observation.sku or units == 0:
            continue

        sku = observation.sku
        channel = network.channel_group_for(observation.channel)
        country = network.normalize_country(observation.country)

        sku_units[sku] += units
        sku_channel_units[sku][channel] += units

        key = (channel, country)
        if key not in serving_cache:
            serving_cache[key] = {}
            for location in explicit:
                if location.serves(channel, country):
                    serving_cache[key].setdefault(location.group, []).append(location.name)
        serving = serving_cache[key]

        if not serving:
            unrouted_units[sku] += units
            continue

        for group_locations in serving.values():
            if len(group_locations) == 1:
                shares = [1.0]
            else:
                shares = stock_shares(sku, group_locations, snapshot)

            for name, share in zip(group_locations, shares):
                location_units[name][sku] += units * float(share)
                location_channel_units[name][sku][channel] += units * float(share)

    for location in wildcard:
        for sku, units in sku_units.items():
            location_units[location.name][sku] += units
            for channel, channel_units in sku_channel_units[sku].items():
                location_channel_units[location.name][sku][channel] += channel_units

    def per_day(values):
        return {key: value / window_days for key, value in values.items()}

    routed = RoutedDemand(
        window_days=window_days,
        location_sku={name: per_day(skus) for name, skus in location_units.items()},
        location_sku_channel={
            name: {sku: per_day(channels) for sku, channels in skus.items()}
            for name, skus in location_channel_units.items()
        },
        sku_total=per_day(sku_units),
        sku_channel={sku: per_day(channels) for sku, channels in sku_channel_units.items()},
        unrouted=per_day(unrouted_units)
    )

    logger.debug(
        f"Routed {len(routed.sku_total)} SKUs onto {len(routed.location_sku)} locations, "
        f"{len(routed.unrouted)} SKUs with unrouted demand"
    )
    return routed


def channel_country_ratios(observations: Iterable[DemandObservation],
                           network: NetworkConfig) -> Dict[str, Dict[str, float]]:
    """Share of each country within each channel's units.

    Args:
        observations: Demand rows
        network: Network configuration mapping raw channels and countries

    Returns:
        Dictionary channel -> country -> ratio (each channel sums to 1)
    """
    units = defaultdict(lambda: defaultdict(float))
    for observation in observations:
        channel = network.channel_group_for(observation.channel)
        country = network.normalize_country(observation.country)
        units[channel][country] += observation.unit_count or 0

    ratios = {}
    for channel, countries in units.items():
        total = sum(countries.values())
        ratios[channel] = {country: safe_divide(value, total) for country, value in countries.items()}
    return ratios


def location_forecast_shares(location: Location, ratios: Dict[str, Dict[str, float]],
                             network: NetworkConfig, snapshot: Optional[StockSnapshot] = None,
                             locations: Optional[Sequence[Location]] = None) -> Dict[str, float]:
    """Fraction of each channel's forecast that lands on a location.

    The location takes the ratio of every country it serves in the channel.
    Where other locations of the same group serve the same pair, the ratio
    is shared by each location's total on-hand stock (evenly when none).

    Returns:
        Dictionary channel -> fraction
    """
    if location.is_wildcard:
        return {channel: 1.0 for channel in ratios}

    if locations is None:
        locations = routable_locations(network, snapshot)
    peers = [other for other in locations if other.group == location.group and not other.is_wildcard]

    shares = {}
    for channel, countries in ratios.items():
        fraction = 0.0
        for country, ratio in countries.items():
            if not location.serves(channel, country):
                continue

            sharing = [other.name for other in peers if other.serves(channel, country)]
            if location.name not in sharing:
                sharing.append(location.name)

            if len(sharing) <= 1 or snapshot is None:
                weight = 1.0 / max(1, len(sharing))
            else:
                totals = np.array([snapshot.location_total(name) for name in sharing], dtype=float)
                if totals.sum() > 0:
                    weight = float(totals[sharing.index(location.name)] / totals.sum())
                else:
                    weight = 1.0 / len(sharing)

            fraction += ratio * weight

        if fraction > 0:
            shares[channel] = fraction

    return shares

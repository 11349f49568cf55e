# demand_planning/core/network.py
"""Channel, geography and location network definition.

The network is a versioned JSON resource (``data/network.json`` by default)
describing:

- channel groups and the raw channel values that belong to them
- which channels carry no geography and which expose a ring basis
- the explicit country buckets, the aggregate bucket and sub-regions
- SKU families by prefix
- stock locations with their group, target days of cover and routes

It is loaded once and validated before use so that adding a location or a
country is a data change only.
"""
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from demand_planning.config import config
from demand_planning.core.types import DemandRoute
from demand_planning.exceptions import ConfigError, NotFoundError, ValidationError
from demand_planning.logging_setup import get_logger
from demand_planning.models import LocationGroup

logger = get_logger(__name__)

DEFAULT_NETWORK_PATH = Path(__file__).resolve().parent.parent / 'data' / 'network.json'

OTHER_FAMILY = 'Other'


@dataclass(frozen=True)
class ChannelGroup:
    name: str
    raw_values: Tuple[str, ...]
    geographic: bool = True
    ring_basis: bool = False
    excluded_sku_prefixes: Tuple[str, ...] = ()

    def matches(self, raw_channel: str) -> bool:
        value = (raw_channel or '').strip().lower()
        return any(value == raw.lower() for raw in self.raw_values)

    def excludes_sku(self, sku: str) -> bool:
        return (sku or '')[:2].upper() in self.excluded_sku_prefixes


@dataclass(frozen=True)
class SubRegionGroup:
    """A reported bucket whose demand also covers smaller buckets."""

    parent: str
    children: Tuple[str, ...]
    members: Tuple[str, ...]


@dataclass(frozen=True)
class Location:
    name: str
    group: LocationGroup
    target_days: int
    routes: Optional[Tuple[DemandRoute, ...]] = None
    label: Optional[str] = None
    aliases: Tuple[str, ...] = ()
    wms_code: Optional[str] = None

    @property
    def is_wildcard(self) -> bool:
        return self.routes is None

    def serves(self, channel_group: str, country: str) -> bool:
        if self.is_wildcard:
            return True
        return any(route.matches(channel_group, country) for route in self.routes)

    def known_as(self, column: str) -> bool:
        return column == self.name or column in self.aliases


@dataclass(frozen=True)
class NetworkConfig:
    version: int
    channels: Dict[str, ChannelGroup]
    explicit_buckets: Tuple[str, ...]
    aggregate_bucket: str
    sub_regions: Dict[str, SubRegionGroup]
    country_aliases: Dict[str, str]
    locations: Tuple[Location, ...]
    sku_families: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    default_ring_basis: str = 'activated'

    def channel(self, name: str) -> ChannelGroup:
        """Look up a channel group by name (case-insensitive).

        Raises:
            ValidationError if the channel group is unknown
        """
        for channel_name, channel in self.channels.items():
            if channel_name.lower() == (name or '').lower():
                return channel
        raise ValidationError(
            f"Invalid channel group: {name}",
            details={'valid': sorted(self.channels)}
        )

    def channel_group_for(self, raw_channel: str) -> str:
        """Channel group a raw channel value belongs to (the value itself if none)."""
        for channel in self.channels.values():
            if channel.matches(raw_channel):
                return channel.name
        return (raw_channel or '').strip()

    def is_geographic(self, channel_name: str) -> bool:
        return self.channel(channel_name).geographic

    def parent_of(self, bucket: str) -> Optional[str]:
        """Parent bucket of a sub-region, None when the bucket is not one."""
        upper = (bucket or '').upper()
        for group in self.sub_regions.values():
            if upper in group.children:
                return group.parent
        return None

    @property
    def sub_region_buckets(self) -> Tuple[str, ...]:
        children = []
        for group in self.sub_regions.values():
            children.extend(group.children)
        return tuple(children)

    def normalize_country(self, country: str) -> str:
        upper = (country or '').strip().upper()
        return self.country_aliases.get(upper, upper)

    def family_for_sku(self, sku: str) -> str:
        prefix = (sku or '')[:2].upper()
        for family, prefixes in self.sku_families.items():
            if prefix in prefixes:
                return family
        return OTHER_FAMILY

    def location(self, name: str) -> Location:
        for location in self.locations:
            if location.known_as(name):
                return location
        raise NotFoundError(f"Unknown location: {name}", details={'location': name})

    def find_location(self, column: str) -> Optional[Location]:
        for location in self.locations:
            if location.known_as(column):
                return location
        return None


def _parse_routes(location_name, raw_routes, channel_names):
    if raw_routes == DemandRoute.WILDCARD:
        return None

    if not isinstance(raw_routes, list) or not raw_routes:
        raise ConfigError(
            f"Location {location_name} needs a route list or '*'",
            details={'location': location_name}
        )

    routes = []
    for raw in raw_routes:
        channel = str(raw.get('channel', '')).strip()
        country = str(raw.get('country', '')).strip().upper()
        if not channel or not country:
            raise ConfigError(f"Location {location_name} has an incomplete route: {raw}")
        if channel != DemandRoute.WILDCARD and channel not in channel_names:
            raise ConfigError(
                f"Location {location_name} routes unknown channel {channel}",
                details={'location': location_name, 'channel': channel}
            )
        routes.append(DemandRoute(channel=channel, country=country))

    return tuple(routes)


def parse_network_config(data: dict) -> NetworkConfig:
    """Build and validate a NetworkConfig from its JSON representation.

    Raises:
        ConfigError if the definition is incomplete or inconsistent
    """
    if not isinstance(data, dict):
        raise ConfigError("Network configuration must be a JSON object")

    channels = {}
    for name, raw in (data.get('channels') or {}).items():
        raw_values = tuple(str(value) for value in raw.get('raw_values') or [])
        if not raw_values:
            raise ConfigError(f"Channel group {name} has no raw channel values")
        channels[name] = ChannelGroup(
            name=name,
            raw_values=raw_values,
            geographic=bool(raw.get('geographic', True)),
            ring_basis=bool(raw.get('ring_basis', False)),
            excluded_sku_prefixes=tuple(p.upper() for p in raw.get('excluded_sku_prefixes') or [])
        )

    if not channels:
        raise ConfigError("Network configuration defines no channel groups")

    geography = data.get('geography') or {}
    explicit_buckets = tuple(b.upper() for b in geography.get('explicit_buckets') or [])
    aggregate_bucket = str(geography.get('aggregate_bucket') or 'ROW').upper()

    sub_regions = {}
    for parent, raw in (geography.get('sub_regions') or {}).items():
        parent = parent.upper()
        if parent not in explicit_buckets:
            raise ConfigError(
                f"Sub-region parent {parent} is not an explicit bucket",
                details={'parent': parent}
            )
        children = tuple(c.upper() for c in raw.get('children') or [])
        if not children:
            raise ConfigError(f"Sub-region parent {parent} has no children")
        members = tuple(m.upper() for m in raw.get('members') or children)
        sub_regions[parent] = SubRegionGroup(parent=parent, children=children, members=members)

    country_aliases = {k.upper(): v.upper() for k, v in (geography.get('country_aliases') or {}).items()}

    sku_families = {
        family: tuple(p.upper() for p in prefixes)
        for family, prefixes in (data.get('sku_families') or {}).items()
    }

    locations = []
    seen = set()
    for raw in data.get('locations') or []:
        name = str(raw.get('name', '')).strip()
        if not name:
            raise ConfigError(f"Location without a name: {raw}")
        if name in seen:
            raise ConfigError(f"Duplicate location: {name}")
        seen.add(name)

        try:
            group = LocationGroup(raw.get('group'))
        except ValueError:
            raise ConfigError(f"Location {name} has an invalid group: {raw.get('group')}")

        target_days = raw.get('target_days', config.planning_config['default_target_days'])
        if not isinstance(target_days, int) or target_days < 0:
            raise ConfigError(f"Location {name} has an invalid target: {target_days}")

        locations.append(Location(
            name=name,
            group=group,
            target_days=target_days,
            routes=_parse_routes(name, raw.get('routes'), channels),
            label=raw.get('label'),
            aliases=tuple(raw.get('aliases') or []),
            wms_code=raw.get('wms_code')
        ))

    return NetworkConfig(
        version=int(data.get('version', 1)),
        channels=channels,
        explicit_buckets=explicit_buckets,
        aggregate_bucket=aggregate_bucket,
        sub_regions=sub_regions,
        country_aliases=country_aliases,
        locations=tuple(locations),
        sku_families=sku_families,
        default_ring_basis=data.get('default_ring_basis', 'activated')
    )


_loaded = {}


def load_network_config(path=None) -> NetworkConfig:
    """Load the network definition, once per path.

    Args:
        path: Optional path to a network JSON file. Defaults to the
              PLANNING network_config setting, then the packaged file.

    Returns:
        Validated NetworkConfig
    """
    path = Path(path or config.planning_config['network_config'] or DEFAULT_NETWORK_PATH)
    key = str(path.resolve())

    if key not in _loaded:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read network configuration {path}: {str(e)}")

        network = parse_network_config(data)
        logger.info(
            f"Loaded network configuration v{network.version} from {path}: "
            f"{len(network.channels)} channels, {len(network.locations)} locations"
        )
        _loaded[key] = network

    return _loaded[key]

# demand_planning/core/types.py
"""Value objects passed between the sources, the calculators and the services.

All of them are immutable; a computation produces new instances rather than
updating existing ones.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from demand_planning.exceptions import ValidationError
from demand_planning.models import DistributionMethod, LocationGroup, StockStatus

# Days of cover for stock that no demand consumes
INFINITE_COVER = float('inf')

# How infinite cover is rendered in reports
INFINITE_COVER_DISPLAY = 9999


@dataclass(frozen=True)
class DemandObservation:
    """One upstream demand row: units for a SKU in a channel and country."""

    sku: str
    channel: str
    country: str
    unit_count: float
    observed_date: Optional[date] = None
    ring_basis: Optional[str] = None


@dataclass(frozen=True)
class CountryShareRow:
    """One row of the per-SKU, per-country share table."""

    sku: str
    country: str
    unit_count: float


@dataclass(frozen=True)
class BaselineRequest:
    """Parameters of a baseline query."""

    start_date: date
    end_date: date
    channel_group: str
    country_bucket: Optional[str] = None
    ring_basis: Optional[str] = None

    def __post_init__(self):
        if not self.channel_group:
            raise ValidationError("channel_group is required")
        if self.start_date is None or self.end_date is None:
            raise ValidationError("start_date and end_date are required")


@dataclass(frozen=True)
class SkuShare:
    sku: str
    units: float
    auto_weight_pct: float

    def to_dict(self):
        return {
            'sku': self.sku,
            'units': self.units,
            'auto_weight_pct': self.auto_weight_pct
        }


@dataclass(frozen=True)
class BaselineResult:
    """Daily run rate and per-SKU share for one channel/country scope.

    sku_breakdown is ordered by units, largest first. fallback_region names
    the rule that produced the numbers when they do not come from direct
    rows (sub-region split or the aggregate bucket). warnings carries
    non-fatal problems met while computing, e.g. a share table that could
    not be fetched.
    """

    channel_group: str
    country_bucket: Optional[str]
    ring_basis: str
    start_date: date
    end_date: date
    total_units: float
    days: int
    daily_run_rate: float
    sku_breakdown: Tuple[SkuShare, ...] = ()
    fallback_region: Optional[str] = None
    warnings: Tuple[str, ...] = ()

    def to_dict(self):
        return {
            'channel_group': self.channel_group,
            'country_bucket': self.country_bucket,
            'ring_basis': self.ring_basis,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'total_units': self.total_units,
            'days': self.days,
            'daily_run_rate': self.daily_run_rate,
            'fallback_region': self.fallback_region,
            'warnings': list(self.warnings),
            'sku_breakdown': [share.to_dict() for share in self.sku_breakdown]
        }


@dataclass(frozen=True)
class ForecastMonthConfig:
    """Projection parameters for one month of one channel/country scope."""

    forecast_month: date
    baseline_drr: float = 0.0
    lift_pct: float = 0.0
    mom_growth_pct: float = 0.0
    distribution_method: DistributionMethod = DistributionMethod.HISTORICAL
    channel_group: Optional[str] = None
    country_bucket: Optional[str] = None
    baseline_start_date: Optional[date] = None
    baseline_end_date: Optional[date] = None


@dataclass(frozen=True)
class MonthProjection:
    forecast_month: date
    days_in_month: int
    baseline_drr: float
    lift_pct: float
    mom_growth_pct: float
    base_units: int
    final_units: int
    distribution_method: DistributionMethod = DistributionMethod.HISTORICAL

    def to_dict(self):
        return {
            'forecast_month': self.forecast_month.isoformat(),
            'days_in_month': self.days_in_month,
            'baseline_drr': self.baseline_drr,
            'lift_pct': self.lift_pct,
            'mom_growth_pct': self.mom_growth_pct,
            'base_units': self.base_units,
            'final_units': self.final_units,
            'distribution_method': str(self.distribution_method)
        }


@dataclass(frozen=True)
class SkuWeight:
    """Historical and manual weight of one SKU inside a scope.

    A row flagged as override must carry the manual percentage.
    """

    sku: str
    auto_weight_pct: float = 0.0
    manual_weight_pct: Optional[float] = None
    is_override: bool = False

    def __post_init__(self):
        if self.is_override and self.manual_weight_pct is None:
            raise ValidationError(
                f"SKU {self.sku} is marked as override but has no manual weight",
                details={'sku': self.sku}
            )


@dataclass(frozen=True)
class EffectiveWeight:
    sku: str
    auto_weight_pct: float
    manual_weight_pct: Optional[float]
    is_override: bool
    effective_pct: float

    def to_dict(self):
        return {
            'sku': self.sku,
            'auto_weight_pct': self.auto_weight_pct,
            'manual_weight_pct': self.manual_weight_pct,
            'is_override': self.is_override,
            'effective_pct': self.effective_pct
        }


@dataclass(frozen=True)
class MaterializedForecast:
    sku: str
    forecast_month: date
    forecast_units: int
    channel_group: Optional[str] = None
    country_bucket: Optional[str] = None


@dataclass(frozen=True)
class DemandRoute:
    """A (channel group, country) pair served by a location.

    A channel of '*' matches every channel.
    """

    channel: str
    country: str

    WILDCARD = '*'

    def matches(self, channel: str, country: str) -> bool:
        if self.country.upper() != (country or '').upper():
            return False
        return self.channel == self.WILDCARD or self.channel.lower() == (channel or '').lower()


@dataclass(frozen=True)
class StockSnapshot:
    """On-hand quantity per SKU and location at one point in time.

    stock maps SKU -> location -> quantity; zero quantities are not stored.
    """

    bulk_locations: Tuple[str, ...]
    fulfillment_locations: Tuple[str, ...]
    stock: Dict[str, Dict[str, float]] = field(default_factory=dict)
    fetched_at: Optional[datetime] = None

    @property
    def locations(self) -> List[str]:
        return list(self.bulk_locations) + list(self.fulfillment_locations)

    @property
    def skus(self) -> List[str]:
        return sorted(self.stock.keys())

    def group_of(self, location: str) -> Optional[LocationGroup]:
        if location in self.bulk_locations:
            return LocationGroup.BULK
        if location in self.fulfillment_locations:
            return LocationGroup.FULFILLMENT
        return None

    def quantity(self, sku: str, location: str) -> float:
        return self.stock.get(sku, {}).get(location, 0)

    def sku_stock(self, sku: str, locations=None) -> float:
        """Total on-hand for a SKU, optionally restricted to some locations."""
        by_location = self.stock.get(sku, {})
        if locations is None:
            return sum(by_location.values())
        return sum(by_location.get(location, 0) for location in locations)

    def location_total(self, location: str) -> float:
        return sum(by_location.get(location, 0) for by_location in self.stock.values())


@dataclass(frozen=True)
class CoverageAssessment:
    """Days of cover, status and replenishment for one stock/demand pair."""

    stock: float
    daily_demand: float
    target_days: float
    days_of_cover: float
    status: StockStatus
    replenishment_needed: int

    @property
    def is_infinite(self) -> bool:
        return self.days_of_cover == INFINITE_COVER

    def to_dict(self):
        if self.is_infinite:
            days_of_cover = INFINITE_COVER_DISPLAY
        else:
            days_of_cover = round(self.days_of_cover, 1)

        return {
            'stock': self.stock,
            'daily_demand': round(self.daily_demand, 2),
            'target_days': self.target_days,
            'days_of_cover': days_of_cover,
            'status': str(self.status),
            'replenishment_needed': self.replenishment_needed
        }

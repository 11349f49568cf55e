# demand_planning/models.py
from sqlalchemy import (
    Column, Integer, String, Float, Date, DateTime, Boolean, Enum, Index, UniqueConstraint
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
import enum

Base = declarative_base()

# Country bucket stored for channels that carry no geography
ALL_COUNTRIES = 'ALL'


class DistributionMethod(enum.Enum):
    """How a month's units are split across SKUs.

    Values:
        HISTORICAL ('historical'): Split by historical SKU share (with overrides)
        DESIRED ('desired'): Split by a separately supplied distribution
    """
    HISTORICAL = 'historical'
    DESIRED = 'desired'

    def __str__(self):
        """Return the string value of the enum."""
        return self.value

    @classmethod
    def from_string(cls, value: str) -> 'DistributionMethod':
        """Create a DistributionMethod from a string value.

        Raises:
            ValueError if the string value is not valid
        """
        if isinstance(value, cls):
            return value
        try:
            return cls((value or 'historical').lower())
        except ValueError:
            raise ValueError(f"Invalid distribution method: {value}. Valid values are: historical, desired")


class StockStatus(enum.Enum):
    CRITICAL = 'critical'
    UNDERSTOCK = 'understock'
    BALANCED = 'balanced'
    OVERSTOCK = 'overstock'

    def __str__(self):
        return self.value


class LocationGroup(enum.Enum):
    BULK = 'bulk'                # Warehouses holding stock in bulk
    FULFILLMENT = 'fulfillment'  # Customer-facing marketplaces / FBA nodes

    def __str__(self):
        return self.value


class ChannelForecastSetting(Base):
    """Per-month projection parameters for one channel/country scope."""
    __tablename__ = 'channel_forecast_settings'

    id = Column(Integer, primary_key=True)
    channel_group = Column(String(20), nullable=False)
    country_bucket = Column(String(50), nullable=False)
    forecast_month = Column(Date, nullable=False)

    baseline_drr = Column(Float, default=0.0)
    lift_pct = Column(Float, default=0.0)
    mom_growth_pct = Column(Float, default=0.0)
    distribution_method = Column(Enum(DistributionMethod), default=DistributionMethod.HISTORICAL)

    # Window the baseline was measured over
    baseline_start_date = Column(Date)
    baseline_end_date = Column(Date)
    ring_basis = Column(String(20), default='activated')

    updated_by = Column(String(255))
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('channel_group', 'country_bucket', 'forecast_month', name='uq_cfs_scope_month'),
        Index('idx_cfs_channel_country', 'channel_group', 'country_bucket'),
    )

    def __repr__(self):
        return f"<ChannelForecastSetting {self.channel_group}/{self.country_bucket} {self.forecast_month}>"


class ChannelSkuDistribution(Base):
    """Per-SKU weight within a channel/country scope."""
    __tablename__ = 'channel_sku_distribution'

    id = Column(Integer, primary_key=True)
    channel_group = Column(String(20), nullable=False)
    country_bucket = Column(String(50), nullable=False)
    sku = Column(String(100), nullable=False)

    auto_weight_pct = Column(Float, default=0.0)
    manual_weight_pct = Column(Float)  # Only meaningful when is_override is set
    is_override = Column(Boolean, default=False)

    updated_by = Column(String(255))
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('channel_group', 'country_bucket', 'sku', name='uq_csd_scope_sku'),
        Index('idx_csd_channel_country', 'channel_group', 'country_bucket'),
    )

    def __repr__(self):
        return f"<ChannelSkuDistribution {self.channel_group}/{self.country_bucket} {self.sku}>"


class DemandForecast(Base):
    """Materialized per-SKU monthly forecast units."""
    __tablename__ = 'demand_forecasts'

    id = Column(Integer, primary_key=True)
    channel_group = Column(String(20), nullable=False)
    country_bucket = Column(String(50), nullable=False)
    sku = Column(String(100), nullable=False)
    forecast_month = Column(Date, nullable=False)
    forecast_units = Column(Integer, default=0)

    created_by = Column(String(255))
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_df_channel_country', 'channel_group', 'country_bucket'),
        Index('idx_df_month', 'forecast_month'),
    )

    def __repr__(self):
        return f"<DemandForecast {self.channel_group}/{self.country_bucket} {self.sku} {self.forecast_month}={self.forecast_units}>"


class LocationTargetDoc(Base):
    """Target days of cover per stock location."""
    __tablename__ = 'location_optimal_doc'

    id = Column(Integer, primary_key=True)
    location_name = Column(String(100), nullable=False, unique=True)
    optimal_days = Column(Integer, nullable=False, default=30)

    updated_by = Column(String(255))
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<LocationTargetDoc {self.location_name}={self.optimal_days}d>"

# demand_planning/services/forecast_service.py
from collections import OrderedDict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from demand_planning.config import config
from demand_planning.core.network import NetworkConfig, load_network_config
from demand_planning.core.projection import project_months
from demand_planning.core.types import BaselineResult, ForecastMonthConfig, SkuWeight
from demand_planning.core.weights import (
    allocate_forecast, distribute_weights, family_shares, merge_auto_weights
)
from demand_planning.exceptions import ForecastError, ValidationError
from demand_planning.logging_setup import get_logger, logger as log_manager
from demand_planning.models import (
    ALL_COUNTRIES, ChannelForecastSetting, ChannelSkuDistribution, DemandForecast, DistributionMethod
)
from demand_planning.utils.date_utils import convert_to_date, month_label, next_forecast_months

logger = get_logger(__name__)


class ChannelForecastService:
    """Service for channel forecast settings, SKU weights and materialized forecasts."""

    def __init__(self, session: Session, network: Optional[NetworkConfig] = None,
                 today: Optional[date] = None):
        """Initialize the channel forecast service.

        Args:
            session: Database session
            network: Network configuration
            today: Reference date for the forecast horizon (defaults to today)
        """
        self.session = session
        self.network = network or load_network_config()
        self.today = today

    def scope(self, channel_group: str, country_bucket: Optional[str] = None):
        """Normalise a channel/country scope.

        Channels without geography are stored under a single 'ALL' bucket.

        Returns:
            Tuple with channel group name and country bucket
        """
        channel = self.network.channel(channel_group)
        if not channel.geographic:
            return channel.name, ALL_COUNTRIES

        if not country_bucket:
            raise ValidationError(f"country_bucket is required for channel {channel.name}")

        return channel.name, country_bucket.strip().upper()

    def horizon_months(self) -> List[date]:
        """The forecast months following the current one."""
        horizon = config.planning_config['forecast_horizon_months']
        return next_forecast_months(self.today or date.today(), horizon)

    # Settings

    def get_settings(self, channel_group: str, country_bucket: Optional[str] = None) -> List[ForecastMonthConfig]:
        """Get saved month settings of a scope, ordered by month."""
        channel, country = self.scope(channel_group, country_bucket)

        rows = self.session.query(ChannelForecastSetting).filter(
            ChannelForecastSetting.channel_group == channel,
            ChannelForecastSetting.country_bucket == country
        ).order_by(ChannelForecastSetting.forecast_month).all()

        return [
            ForecastMonthConfig(
                forecast_month=row.forecast_month,
                baseline_drr=row.baseline_drr or 0.0,
                lift_pct=row.lift_pct or 0.0,
                mom_growth_pct=row.mom_growth_pct or 0.0,
                distribution_method=row.distribution_method or DistributionMethod.HISTORICAL,
                channel_group=row.channel_group,
                country_bucket=row.country_bucket,
                baseline_start_date=row.baseline_start_date,
                baseline_end_date=row.baseline_end_date
            )
            for row in rows
        ]

    def _month_config(self, month: Union[ForecastMonthConfig, dict]) -> ForecastMonthConfig:
        if isinstance(month, ForecastMonthConfig):
            return month

        try:
            return ForecastMonthConfig(
                forecast_month=convert_to_date(month['forecast_month']),
                baseline_drr=float(month.get('baseline_drr') or 0.0),
                lift_pct=float(month.get('lift_pct') or 0.0),
                mom_growth_pct=float(month.get('mom_growth_pct') or 0.0),
                distribution_method=DistributionMethod.from_string(month.get('distribution_method')),
                baseline_start_date=convert_to_date(month['baseline_start_date']) if month.get('baseline_start_date') else None,
                baseline_end_date=convert_to_date(month['baseline_end_date']) if month.get('baseline_end_date') else None
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid month settings {month}: {str(e)}")

    def save_settings(self, channel_group: str, country_bucket: Optional[str],
                      months: Sequence[Union[ForecastMonthConfig, dict]],
                      ring_basis: Optional[str] = None, updated_by: Optional[str] = None) -> int:
        """Create or update month settings of a scope.

        Rows are keyed by channel, country and month. A save may cover any
        of the horizon months; months left out keep what was saved before.
        All months are saved in one transaction.

        Returns:
            Number of months saved

        Raises:
            ValidationError for a month outside the horizon or given twice
        """
        channel, country = self.scope(channel_group, country_bucket)
        configs = sorted((self._month_config(month) for month in months), key=lambda m: m.forecast_month)

        horizon = self.horizon_months()
        seen = set()
        for month in configs:
            if month.forecast_month not in horizon:
                raise ValidationError(
                    f"Forecast month {month.forecast_month.isoformat()} is outside the horizon "
                    f"{horizon[0].isoformat()} to {horizon[-1].isoformat()}",
                    details={'month': month.forecast_month.isoformat()}
                )
            if month.forecast_month in seen:
                raise ValidationError(
                    f"Forecast month {month.forecast_month.isoformat()} given more than once",
                    details={'month': month.forecast_month.isoformat()}
                )
            seen.add(month.forecast_month)

        try:
            for month in configs:
                row = self.session.query(ChannelForecastSetting).filter(
                    ChannelForecastSetting.channel_group == channel,
                    ChannelForecastSetting.country_bucket == country,
                    ChannelForecastSetting.forecast_month == month.forecast_month
                ).first()

                if row is None:
                    row = ChannelForecastSetting(
                        channel_group=channel,
                        country_bucket=country,
                        forecast_month=month.forecast_month
                    )
                    self.session.add(row)

                row.baseline_drr = month.baseline_drr
                row.lift_pct = month.lift_pct
                row.mom_growth_pct = month.mom_growth_pct
                row.distribution_method = month.distribution_method
                row.baseline_start_date = month.baseline_start_date
                row.baseline_end_date = month.baseline_end_date
                row.ring_basis = ring_basis or self.network.default_ring_basis
                row.updated_by = updated_by

            self.session.commit()
        except Exception as e:
            self.session.rollback()
            raise ForecastError(f"Failed to save forecast settings: {str(e)}")

        logger.info(f"Saved {len(configs)} month settings for {channel}/{country}")
        return len(configs)

    # SKU distribution

    def _distribution_rows(self, channel, country):
        return self.session.query(ChannelSkuDistribution).filter(
            ChannelSkuDistribution.channel_group == channel,
            ChannelSkuDistribution.country_bucket == country
        ).order_by(ChannelSkuDistribution.auto_weight_pct.desc(), ChannelSkuDistribution.sku).all()

    def get_sku_distribution(self, channel_group: str, country_bucket: Optional[str] = None) -> List[SkuWeight]:
        """Get saved SKU weights of a scope, largest auto weight first."""
        channel, country = self.scope(channel_group, country_bucket)
        return [
            SkuWeight(
                sku=row.sku,
                auto_weight_pct=row.auto_weight_pct or 0.0,
                manual_weight_pct=row.manual_weight_pct,
                is_override=bool(row.is_override)
            )
            for row in self._distribution_rows(channel, country)
        ]

    def _sku_weight(self, weight: Union[SkuWeight, dict]) -> SkuWeight:
        if isinstance(weight, SkuWeight):
            return weight

        try:
            manual = weight.get('manual_weight_pct')
            return SkuWeight(
                sku=weight['sku'],
                auto_weight_pct=float(weight.get('auto_weight_pct') or 0.0),
                manual_weight_pct=float(manual) if manual is not None else None,
                is_override=bool(weight.get('is_override', False))
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid SKU weight {weight}: {str(e)}")

    def save_sku_distribution(self, channel_group: str, country_bucket: Optional[str],
                              weights: Iterable[Union[SkuWeight, dict]], updated_by: Optional[str] = None,
                              remove_missing: bool = False) -> int:
        """Create or update SKU weights of a scope.

        Args:
            channel_group: Channel group
            country_bucket: Country bucket
            weights: SKU weights
            updated_by: User making the change
            remove_missing: Delete saved SKUs not present in weights

        Returns:
            Number of SKUs saved
        """
        channel, country = self.scope(channel_group, country_bucket)
        weights = [self._sku_weight(weight) for weight in weights]

        try:
            existing = {row.sku: row for row in self._distribution_rows(channel, country)}

            for weight in weights:
                row = existing.pop(weight.sku, None)
                if row is None:
                    row = ChannelSkuDistribution(channel_group=channel, country_bucket=country, sku=weight.sku)
                    self.session.add(row)

                row.auto_weight_pct = weight.auto_weight_pct
                row.manual_weight_pct = weight.manual_weight_pct
                row.is_override = weight.is_override
                row.updated_by = updated_by

            if remove_missing:
                for row in existing.values():
                    self.session.delete(row)

            self.session.commit()
        except Exception as e:
            self.session.rollback()
            raise ForecastError(f"Failed to save SKU distribution: {str(e)}")

        logger.info(f"Saved {len(weights)} SKU weights for {channel}/{country}")
        return len(weights)

    def refresh_auto_weights(self, baseline: BaselineResult, updated_by: Optional[str] = None) -> List[SkuWeight]:
        """Re-derive auto weights of the baseline's scope, keeping overrides.

        Returns:
            The merged SKU weights now saved for the scope
        """
        existing = self.get_sku_distribution(baseline.channel_group, baseline.country_bucket)
        merged = merge_auto_weights(existing, baseline)
        self.save_sku_distribution(
            baseline.channel_group, baseline.country_bucket, merged,
            updated_by=updated_by, remove_missing=True
        )
        return merged

    # Projection

    def months_for(self, channel_group: str, country_bucket: Optional[str] = None) -> List[ForecastMonthConfig]:
        """Month settings over the horizon, filled from what is saved.

        Saved rows outside the horizon are ignored. A horizon month with no
        saved row runs at the run rate of the first saved horizon month
        with no lift or growth, or at zero when nothing is saved.
        """
        channel, country = self.scope(channel_group, country_bucket)
        horizon = self.horizon_months()

        saved = OrderedDict(
            (month.forecast_month, month)
            for month in self.get_settings(channel, country)
            if month.forecast_month in horizon
        )
        default_drr = next(iter(saved.values())).baseline_drr if saved else 0.0

        if not saved:
            logger.info(f"No saved settings for {channel}/{country}, projecting zero demand")
        elif len(saved) < len(horizon):
            logger.info(
                f"{channel}/{country}: {len(horizon) - len(saved)} of {len(horizon)} months unsaved, "
                f"using DRR {default_drr:.2f}"
            )

        return [
            saved.get(month) or ForecastMonthConfig(
                forecast_month=month,
                baseline_drr=default_drr,
                channel_group=channel,
                country_bucket=country
            )
            for month in horizon
        ]

    def get_projection(self, channel_group: str, country_bucket: Optional[str] = None) -> Dict:
        """Monthly projection and SKU table of a scope.

        Returns:
            Dictionary with months, SKU weights, per-SKU monthly units,
            override_total and an over-allocation warning (or None)
        """
        channel, country = self.scope(channel_group, country_bucket)

        projections = project_months(self.months_for(channel, country))
        distribution = distribute_weights(self.get_sku_distribution(channel, country))
        allocations = allocate_forecast(projections, distribution)

        sku_units = OrderedDict((weight.sku, OrderedDict()) for weight in distribution.weights)
        for allocation in allocations:
            sku_units[allocation.sku][allocation.forecast_month.isoformat()] = allocation.forecast_units

        warning = None
        if distribution.is_over_allocated:
            warning = f"Manual overrides total {distribution.override_total:.2f}%, above 100%"
            logger.warning(f"{channel}/{country}: {warning}")

        return {
            'channel_group': channel,
            'country_bucket': country,
            'months': [projection.to_dict() for projection in projections],
            'total_units': sum(projection.final_units for projection in projections),
            'distribution': distribution.to_dict(),
            'families': dict(family_shares(distribution, self.network.family_for_sku)),
            'sku_units': sku_units,
            'override_total': distribution.override_total,
            'warning': warning
        }

    def generate_forecasts(self, channel_group: str, country_bucket: Optional[str] = None,
                           created_by: Optional[str] = None) -> int:
        """Materialize per-SKU monthly forecasts of a scope.

        Replaces every saved forecast of the scope, or of the whole channel
        for channels without geography, in one transaction.

        Returns:
            Number of forecast rows written
        """
        channel, country = self.scope(channel_group, country_bucket)
        with log_manager.operation(f"generate_forecasts {channel}/{country}") as results:
            months = self.months_for(channel, country)
            if any(month.distribution_method == DistributionMethod.DESIRED for month in months):
                logger.info(f"{channel}/{country}: desired distribution not available, using historical weights")

            projections = project_months(months)
            distribution = distribute_weights(self.get_sku_distribution(channel, country))
            if distribution.is_over_allocated:
                logger.warning(
                    f"{channel}/{country}: overrides total {distribution.override_total:.2f}%, generating anyway"
                )

            forecasts = allocate_forecast(projections, distribution, channel, country)

            try:
                query = self.session.query(DemandForecast).filter(DemandForecast.channel_group == channel)
                if self.network.is_geographic(channel):
                    query = query.filter(DemandForecast.country_bucket == country)
                results['deleted'] = query.delete(synchronize_session=False)

                for forecast in forecasts:
                    self.session.add(DemandForecast(
                        channel_group=channel,
                        country_bucket=country,
                        sku=forecast.sku,
                        forecast_month=forecast.forecast_month,
                        forecast_units=forecast.forecast_units,
                        created_by=created_by
                    ))

                self.session.commit()
            except Exception as e:
                self.session.rollback()
                raise ForecastError(f"Failed to save forecasts: {str(e)}")
            results['inserted'] = len(forecasts)

        return len(forecasts)

    def get_forecast_summary(self) -> Dict:
        """Saved forecasts with per-channel completeness.

        Returns:
            Dictionary with forecast totals per channel, country and month
            and, per channel, its regions, month count and last update
        """
        totals = self.session.query(
            DemandForecast.channel_group,
            DemandForecast.country_bucket,
            DemandForecast.forecast_month,
            func.sum(DemandForecast.forecast_units),
            func.count(DemandForecast.sku)
        ).group_by(
            DemandForecast.channel_group,
            DemandForecast.country_bucket,
            DemandForecast.forecast_month
        ).order_by(
            DemandForecast.channel_group,
            DemandForecast.country_bucket,
            DemandForecast.forecast_month
        ).all()

        forecasts = []
        channels = OrderedDict()
        for channel, country, month, units, sku_count in totals:
            forecasts.append({
                'channel_group': channel,
                'country_bucket': country,
                'forecast_month': month.isoformat(),
                'month_label': month_label(month),
                'forecast_units': int(units or 0),
                'sku_count': sku_count
            })

            status = channels.setdefault(channel, {'regions': set(), 'months': set(), 'total_units': 0})
            status['regions'].add(country)
            status['months'].add(month)
            status['total_units'] += int(units or 0)

        last_updates = dict(self.session.query(
            DemandForecast.channel_group, func.max(DemandForecast.updated_at)
        ).group_by(DemandForecast.channel_group).all())

        channel_status = []
        for channel, status in channels.items():
            last_updated = last_updates.get(channel)
            channel_status.append({
                'channel_group': channel,
                'regions': sorted(status['regions']),
                'month_count': len(status['months']),
                'total_units': status['total_units'],
                'last_updated': last_updated.isoformat() if last_updated else None
            })

        return {'forecasts': forecasts, 'channel_status': channel_status}


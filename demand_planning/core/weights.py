# demand_planning/core/weights.py
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

from demand_planning.core.types import (
    BaselineResult, EffectiveWeight, MaterializedForecast, MonthProjection, SkuWeight
)
from demand_planning.utils.math_utils import percentage, round_half_up, safe_divide


@dataclass(frozen=True)
class WeightDistribution:
    """Effective per-SKU percentages for one channel/country scope.

    Overridden SKUs keep their manual percentage as entered, even when the
    overrides add up to more than 100. That state is reported through
    is_over_allocated rather than corrected.
    """

    weights: Tuple[EffectiveWeight, ...]
    override_total: float
    remaining_pct: float
    auto_total: float

    @property
    def is_over_allocated(self) -> bool:
        return self.override_total > 100.0

    @property
    def effective_total(self) -> float:
        return sum(weight.effective_pct for weight in self.weights)

    def effective_pct(self, sku: str) -> float:
        for weight in self.weights:
            if weight.sku == sku:
                return weight.effective_pct
        return 0.0

    def to_dict(self):
        return {
            'override_total': self.override_total,
            'remaining_pct': self.remaining_pct,
            'auto_total': self.auto_total,
            'effective_total': self.effective_total,
            'is_over_allocated': self.is_over_allocated,
            'weights': [weight.to_dict() for weight in self.weights]
        }


def distribute_weights(rows: Sequence[SkuWeight]) -> WeightDistribution:
    """Turn auto and manual SKU weights into effective percentages.

    Non-overridden SKUs share what the overrides leave of 100% in
    proportion to their auto weight.

    Args:
        rows: SKU weights of one scope

    Returns:
        WeightDistribution
    """
    override_total = sum(row.manual_weight_pct for row in rows if row.is_override)
    remaining_pct = max(0.0, 100.0 - override_total)
    auto_total = sum(row.auto_weight_pct or 0.0 for row in rows if not row.is_override)

    weights = []
    for row in rows:
        if row.is_override:
            effective = row.manual_weight_pct
        else:
            effective = safe_divide(row.auto_weight_pct or 0.0, auto_total) * remaining_pct

        weights.append(EffectiveWeight(
            sku=row.sku,
            auto_weight_pct=row.auto_weight_pct or 0.0,
            manual_weight_pct=row.manual_weight_pct,
            is_override=row.is_override,
            effective_pct=effective
        ))

    return WeightDistribution(
        weights=tuple(weights),
        override_total=override_total,
        remaining_pct=remaining_pct,
        auto_total=auto_total
    )


def merge_auto_weights(existing: Iterable[SkuWeight], baseline: BaselineResult) -> List[SkuWeight]:
    """Re-derive auto weights from a new baseline, keeping overrides.

    SKUs in the baseline take its auto weight. Overridden SKUs missing from
    the baseline stay with an auto weight of 0; other missing SKUs drop out.
    """
    existing_by_sku = OrderedDict((row.sku, row) for row in existing)
    merged = []

    for share in baseline.sku_breakdown:
        previous = existing_by_sku.pop(share.sku, None)
        if previous is not None and previous.is_override:
            merged.append(SkuWeight(
                sku=share.sku,
                auto_weight_pct=share.auto_weight_pct,
                manual_weight_pct=previous.manual_weight_pct,
                is_override=True
            ))
        else:
            merged.append(SkuWeight(sku=share.sku, auto_weight_pct=share.auto_weight_pct))

    for row in existing_by_sku.values():
        if row.is_override:
            merged.append(SkuWeight(
                sku=row.sku,
                auto_weight_pct=0.0,
                manual_weight_pct=row.manual_weight_pct,
                is_override=True
            ))

    return merged


def allocate_forecast(projections: Sequence[MonthProjection], distribution: WeightDistribution,
                      channel_group=None, country_bucket=None) -> List[MaterializedForecast]:
    """Split each month's units across SKUs.

    Every (SKU, month) is rounded on its own, so a month's SKU units may
    differ from its total by a small residual.
    """
    forecasts = []
    for projection in projections:
        for weight in distribution.weights:
            forecasts.append(MaterializedForecast(
                sku=weight.sku,
                forecast_month=projection.forecast_month,
                forecast_units=round_half_up(projection.final_units * weight.effective_pct / 100.0),
                channel_group=channel_group,
                country_bucket=country_bucket
            ))
    return forecasts


def family_shares(distribution: WeightDistribution, family_of: Callable[[str], str]) -> Dict[str, dict]:
    """Group SKU weights by product family.

    Each SKU's auto weight is expressed as a share of its family's auto
    total, so each family sums to 100%.

    Args:
        distribution: Weight distribution of one scope
        family_of: Callable mapping a SKU to its family name

    Returns:
        Dictionary family -> {auto_total, override_total, effective_total, skus}
    """
    families = OrderedDict()
    for weight in distribution.weights:
        family = families.setdefault(family_of(weight.sku), {
            'auto_total': 0.0,
            'override_total': 0.0,
            'effective_total': 0.0,
            'skus': []
        })
        family['auto_total'] += weight.auto_weight_pct
        family['effective_total'] += weight.effective_pct
        if weight.is_override:
            family['override_total'] += weight.manual_weight_pct
        family['skus'].append(weight)

    for family in families.values():
        family['skus'] = [
            {
                'sku': weight.sku,
                'family_share_pct': percentage(weight.auto_weight_pct, family['auto_total']),
                'effective_pct': weight.effective_pct,
                'is_override': weight.is_override
            }
            for weight in family['skus']
        ]

    return families

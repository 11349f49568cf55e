from .baseline import CountryShareTable, compute_baseline
from .projection import project_months, compounded_units
from .weights import (
    WeightDistribution, distribute_weights, merge_auto_weights,
    allocate_forecast, family_shares
)
from .routing import RoutedDemand, route_demand, channel_country_ratios
from .coverage import days_of_cover, classify, replenishment_needed, assess, aggregate
from .network import NetworkConfig, load_network_config

__all__ = [
    'CountryShareTable',
    'compute_baseline',
    'project_months',
    'compounded_units',
    'WeightDistribution',
    'distribute_weights',
    'merge_auto_weights',
    'allocate_forecast',
    'family_shares',
    'RoutedDemand',
    'route_demand',
    'channel_country_ratios',
    'days_of_cover',
    'classify',
    'replenishment_needed',
    'assess',
    'aggregate',
    'NetworkConfig',
    'load_network_config'
]

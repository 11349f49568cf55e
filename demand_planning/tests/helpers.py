"""
Shared fixtures for the demand planning tests: a small network and
in-memory stand-ins for the upstream sources.
"""
import unittest
from datetime import date

from demand_planning.core.network import parse_network_config
from demand_planning.core.types import CountryShareRow, DemandObservation, StockSnapshot
from demand_planning.db import db

NETWORK_DATA = {
    'version': 1,
    'channels': {
        'Retail': {'raw_values': ['Retail'], 'geographic': True, 'ring_basis': True},
        'B2C': {'raw_values': ['B2C', 'Website'], 'geographic': False, 'excluded_sku_prefixes': ['WA']},
        'Marketplace': {'raw_values': ['Marketplace'], 'geographic': False}
    },
    'geography': {
        'explicit_buckets': ['UNITED STATES', 'EUROPE UNION', 'INDIA'],
        'aggregate_bucket': 'ROW',
        'sub_regions': {
            'EUROPE UNION': {
                'children': ['FRANCE', 'GERMANY'],
                'members': ['FRANCE', 'GERMANY', 'SPAIN', 'NETHERLANDS']
            }
        },
        'country_aliases': {'THE NETHERLANDS': 'NETHERLANDS'}
    },
    'sku_families': {
        'Ring Air': ['AA', 'AG'],
        'Wabi Sabi': ['WA']
    },
    'locations': [
        {'name': 'WH-A', 'group': 'bulk', 'target_days': 7, 'routes': [{'channel': '*', 'country': 'INDIA'}]},
        {'name': 'WH-B', 'group': 'bulk', 'target_days': 30, 'routes': [{'channel': '*', 'country': 'INDIA'}]},
        {'name': 'US-FBA', 'group': 'fulfillment', 'target_days': 45, 'label': 'United States',
         'routes': [
             {'channel': 'Marketplace', 'country': 'UNITED STATES'},
             {'channel': 'B2C', 'country': 'UNITED STATES'}
         ]},
        {'name': 'TH-1', 'group': 'fulfillment', 'target_days': 45, 'label': 'Thailand',
         'routes': [{'channel': 'Marketplace', 'country': 'THAILAND'}]},
        {'name': 'TH-2', 'group': 'fulfillment', 'target_days': 45, 'label': 'Thailand',
         'aliases': ['TH- 2'], 'wms_code': 'WH-TH2',
         'routes': [{'channel': 'Marketplace', 'country': 'THAILAND'}]}
    ]
}


def make_network(**overrides):
    data = dict(NETWORK_DATA)
    data.update(overrides)
    return parse_network_config(data)


def obs(sku, channel, country, units, ring_basis=None):
    return DemandObservation(sku=sku, channel=channel, country=country, unit_count=units, ring_basis=ring_basis)


def make_snapshot(stock=None):
    return StockSnapshot(
        bulk_locations=('WH-A', 'WH-B'),
        fulfillment_locations=('US-FBA', 'TH-1', 'TH-2'),
        stock=stock or {}
    )


# Trailing 30 day demand used by the stock report and replenishment plan tests
TRAILING_OBSERVATIONS = [
    obs('AA01', 'Marketplace', 'UNITED STATES', 90),
    obs('AA01', 'Marketplace', 'THAILAND', 60),
    obs('AA01', 'B2C', 'INDIA', 30),
    obs('AA01', 'Retail', 'JAPAN', 15)
]

TRAILING_STOCK = {
    'AA01': {'WH-A': 300, 'US-FBA': 90, 'TH-1': 30, 'TH-2': 70},
    'BB02': {'TH-1': 20}
}

SHARE_ROWS = [
    CountryShareRow(sku='AA01', country='FRANCE', unit_count=30),
    CountryShareRow(sku='AA01', country='GERMANY', unit_count=50),
    CountryShareRow(sku='AA01', country='SPAIN', unit_count=20),
    CountryShareRow(sku='AA01', country='JAPAN', unit_count=500)
]


class FakeDemandSource:
    """Demand source returning fixed rows and recording requested windows."""

    def __init__(self, observations=None, share_rows=None, share_error=None):
        self.observations = list(observations or [])
        self.share_rows = list(share_rows or [])
        self.share_error = share_error
        self.windows = []

    def fetch_observations(self, start_date: date, end_date: date):
        self.windows.append((start_date, end_date))
        return list(self.observations)

    def fetch_country_shares(self):
        if self.share_error is not None:
            raise self.share_error
        return list(self.share_rows)


class FakeStockSource:
    def __init__(self, snapshot):
        self.snapshot = snapshot

    def fetch_snapshot(self):
        return self.snapshot


class FakeOrderSource:
    def __init__(self, orders, configured=True):
        self.orders = orders
        self.configured = configured

    def fetch_open_orders(self):
        return list(self.orders)


class DatabaseTestCase(unittest.TestCase):
    """Test case backed by a fresh in-memory SQLite schema."""

    def setUp(self):
        db.initialize('sqlite://')
        db.create_all_tables()
        self.session = db.session()

    def tearDown(self):
        self.session.close()
        db.drop_all_tables()

"""
Unit tests for demand routing and days-of-cover calculations.
"""
import math
import unittest

from demand_planning.core.coverage import (
    aggregate, assess, classify, days_of_cover, replenishment_needed, status_counts
)
from demand_planning.core.routing import (
    channel_country_ratios, location_forecast_shares, route_demand
)
from demand_planning.core.types import INFINITE_COVER, INFINITE_COVER_DISPLAY, StockSnapshot
from demand_planning.exceptions import CalculationError, RoutingError
from demand_planning.models import StockStatus
from demand_planning.tests.helpers import (
    NETWORK_DATA, TRAILING_OBSERVATIONS, TRAILING_STOCK, make_network, make_snapshot, obs
)


class TestRouteDemand(unittest.TestCase):
    """Test cases for route_demand."""

    def setUp(self):
        self.network = make_network()
        self.snapshot = make_snapshot(TRAILING_STOCK)

    def test_single_location_takes_all(self):
        routed = route_demand(TRAILING_OBSERVATIONS, self.network, self.snapshot, 30)

        self.assertAlmostEqual(routed.drr('US-FBA', 'AA01'), 3.0)
        self.assertAlmostEqual(routed.fleet_drr('AA01'), 6.5)
        self.assertEqual(routed.channel_drr('US-FBA', 'AA01'), {'Marketplace': 3.0})

    def test_shared_pair_split_by_stock(self):
        """TH-1 holds 30 and TH-2 70 units, so they take 30% and 70%."""
        routed = route_demand(TRAILING_OBSERVATIONS, self.network, self.snapshot, 30)

        self.assertAlmostEqual(routed.drr('TH-1', 'AA01'), 0.6)
        self.assertAlmostEqual(routed.drr('TH-2', 'AA01'), 1.4)

    def test_shared_pair_without_stock_splits_evenly(self):
        routed = route_demand([obs('CC03', 'Marketplace', 'THAILAND', 10)], self.network, self.snapshot, 10)

        self.assertAlmostEqual(routed.drr('TH-1', 'CC03'), 0.5)
        self.assertAlmostEqual(routed.drr('TH-2', 'CC03'), 0.5)

    def test_bulk_and_fulfillment_are_routed_separately(self):
        routed = route_demand(TRAILING_OBSERVATIONS, self.network, self.snapshot, 30)

        self.assertAlmostEqual(routed.drr('WH-A', 'AA01'), 1.0)
        self.assertEqual(routed.drr('WH-B', 'AA01'), 0.0)

    def test_unserved_demand_is_unrouted(self):
        observations = TRAILING_OBSERVATIONS + [obs('AA01', 'Telegram', 'BRAZIL', 15)]

        routed = route_demand(observations, self.network, self.snapshot, 30)

        # Retail JAPAN and Telegram BRAZIL have no serving location
        self.assertAlmostEqual(routed.unrouted['AA01'], 1.0)
        self.assertAlmostEqual(routed.sku_channel['AA01']['Telegram'], 0.5)
        self.assertAlmostEqual(routed.fleet_drr('AA01'), 7.0)

    def test_wildcard_location_takes_every_sku(self):
        hub = {'name': 'HUB', 'group': 'bulk', 'target_days': 30, 'routes': '*'}
        network = make_network(locations=NETWORK_DATA['locations'] + [hub])

        routed = route_demand(TRAILING_OBSERVATIONS, network, None, 30)

        self.assertAlmostEqual(routed.drr('HUB', 'AA01'), 6.5)
        self.assertAlmostEqual(routed.drr('WH-A', 'AA01'), 0.5)

    def test_locations_missing_from_snapshot_are_skipped(self):
        snapshot = StockSnapshot(
            bulk_locations=('WH-A',), fulfillment_locations=('US-FBA', 'TH-1'), stock=TRAILING_STOCK
        )

        routed = route_demand(TRAILING_OBSERVATIONS, self.network, snapshot, 30)

        self.assertAlmostEqual(routed.drr('TH-1', 'AA01'), 2.0)
        self.assertEqual(routed.drr('TH-2', 'AA01'), 0.0)

    def test_window_must_be_positive(self):
        with self.assertRaises(RoutingError):
            route_demand([], self.network, self.snapshot, 0)


class TestForecastShares(unittest.TestCase):
    """Test cases for channel_country_ratios and location_forecast_shares."""

    def setUp(self):
        self.network = make_network()
        self.snapshot = make_snapshot(TRAILING_STOCK)

    def test_channel_country_ratios(self):
        ratios = channel_country_ratios(TRAILING_OBSERVATIONS, self.network)

        self.assertAlmostEqual(ratios['Marketplace']['UNITED STATES'], 0.6)
        self.assertAlmostEqual(ratios['Marketplace']['THAILAND'], 0.4)
        self.assertEqual(ratios['B2C'], {'INDIA': 1.0})

    def test_shared_location_takes_stock_share(self):
        ratios = {'Marketplace': {'UNITED STATES': 0.6, 'THAILAND': 0.4}}
        location = self.network.location('TH-1')

        shares = location_forecast_shares(location, ratios, self.network, self.snapshot)

        # TH-1 holds 50 of the 120 units at Thai locations
        self.assertAlmostEqual(shares['Marketplace'], 0.4 * 50 / 120)

    def test_unserved_channel_is_absent(self):
        ratios = {'Retail': {'UNITED STATES': 1.0}}
        location = self.network.location('US-FBA')

        self.assertEqual(location_forecast_shares(location, ratios, self.network, self.snapshot), {})


class TestCoverage(unittest.TestCase):
    """Test cases for days of cover, status and replenishment."""

    def test_days_of_cover(self):
        self.assertEqual(days_of_cover(300, 10), 30)
        self.assertEqual(days_of_cover(100, 0), INFINITE_COVER)
        self.assertEqual(days_of_cover(0, 0), 0)
        self.assertEqual(days_of_cover(0, 5), 0)

    def test_infinite_cover_display(self):
        assessment = assess(100, 0.0)

        self.assertTrue(assessment.is_infinite)
        self.assertEqual(assessment.to_dict()['days_of_cover'], INFINITE_COVER_DISPLAY)
        self.assertEqual(assessment.status, StockStatus.OVERSTOCK)
        self.assertEqual(assessment.replenishment_needed, 0)

    def test_default_thresholds(self):
        self.assertEqual(classify(14.9), StockStatus.CRITICAL)
        self.assertEqual(classify(15), StockStatus.UNDERSTOCK)
        self.assertEqual(classify(29.9), StockStatus.UNDERSTOCK)
        self.assertEqual(classify(30), StockStatus.BALANCED)
        self.assertEqual(classify(60), StockStatus.BALANCED)
        self.assertEqual(classify(60.1), StockStatus.OVERSTOCK)
        self.assertEqual(classify(math.inf), StockStatus.OVERSTOCK)

    def test_target_ratio(self):
        self.assertEqual(classify(10, 45), StockStatus.CRITICAL)
        self.assertEqual(classify(30, 45), StockStatus.UNDERSTOCK)
        self.assertEqual(classify(90, 45), StockStatus.BALANCED)
        self.assertEqual(classify(91, 45), StockStatus.OVERSTOCK)

    def test_zero_target(self):
        self.assertEqual(classify(0, 0), StockStatus.BALANCED)
        self.assertEqual(classify(5, 0), StockStatus.OVERSTOCK)

    def test_replenishment_needed(self):
        self.assertEqual(replenishment_needed(100, 10, 30), 200)
        self.assertEqual(replenishment_needed(500, 10, 30), 0)
        self.assertEqual(replenishment_needed(0, 0.25, 30), 8)

        with self.assertRaises(CalculationError):
            replenishment_needed(100, 10, -1)

    def test_aggregate_sums_before_dividing(self):
        group = aggregate([assess(100, 10), (50, 5)], 30)

        self.assertEqual(group.stock, 150)
        self.assertAlmostEqual(group.daily_demand, 15.0)
        self.assertAlmostEqual(group.days_of_cover, 10.0)
        self.assertEqual(group.status, StockStatus.CRITICAL)
        self.assertEqual(group.replenishment_needed, 300)

    def test_aggregate_of_nothing(self):
        self.assertEqual(aggregate([], 30).days_of_cover, 0.0)

    def test_status_counts(self):
        counts = status_counts([StockStatus.CRITICAL, StockStatus.CRITICAL, StockStatus.BALANCED])

        self.assertEqual(counts, {'critical': 2, 'understock': 0, 'balanced': 1, 'overstock': 0})


if __name__ == '__main__':
    unittest.main()
